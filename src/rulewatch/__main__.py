"""CLI entry point for rulewatch.

Rule commands talk to a running daemon over its HTTP API, so the daemon
stays the only writer of the rules file. When no daemon answers they fall
back to editing the rules file directly.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import click

from . import __version__
from .client import DaemonClient, api_url
from .config import DEFAULT_CONFIG_PATH, RulewatchConfig, load_config
from .exceptions import (
    ConfigError,
    DaemonRequestError,
    DaemonUnavailableError,
    RulewatchError,
)
from .reasoning import create_provider
from .rules.compiler import RuleCompiler
from .rules.models import CompiledRule, Rule, RuleSource
from .rules.store import RulesStore
from .rules.validator import validate_compiled_rule_with_intent

# ── Helpers ──────────────────────────────────────────────


def _load(ctx: click.Context) -> RulewatchConfig:
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2))


def _daemon_url(ctx: click.Context, config: RulewatchConfig) -> str | None:
    """--url if given, else the configured API address; None when the API is off."""
    if ctx.obj.get("url"):
        return ctx.obj["url"]
    if not config.api.enabled:
        return None
    return api_url(config.api.host, config.api.port)


def _format_api_error(e: DaemonRequestError) -> str:
    payload = e.payload if isinstance(e.payload, dict) else {}
    message = str(e)
    existing = payload.get("existingRule")
    if isinstance(existing, dict):
        return f"{message}: {existing.get('id')} ({existing.get('name')})"
    details = payload.get("details")
    if isinstance(details, dict):
        if "reason" in details:
            extra = f" ({details['details']})" if details.get("details") else ""
            return f"{message}: {details['reason']}{extra}"
        lines = [f"  {field}: {text}" for field, text in details.items()]
        return message + ":\n" + "\n".join(lines)
    if isinstance(details, list):
        lines = []
        for d in details:
            if not isinstance(d, dict):
                lines.append(f"  {d}")
                continue
            field = d.get("field") or ".".join(str(p) for p in d.get("loc", ()))
            lines.append(f"  {field}: {d.get('message') or d.get('msg')}")
        return message + ":\n" + "\n".join(lines)
    if details:
        return f"{message} ({details})"
    return message


def _call_daemon(url: str | None, method: str, path: str, payload: Any = None) -> Any:
    """One API round-trip.

    DaemonUnavailableError propagates so callers can fall back; API errors
    become ClickExceptions.
    """
    if url is None:
        raise DaemonUnavailableError("Daemon API is disabled (pass --url to reach one)")

    async def _request() -> Any:
        async with DaemonClient(url) as client:
            return await client.request(method, path, payload)

    try:
        return asyncio.run(_request())
    except DaemonRequestError as e:
        raise click.ClickException(_format_api_error(e)) from e
    except DaemonUnavailableError:
        raise
    except RulewatchError as e:
        raise click.ClickException(str(e)) from e


def _require_daemon(url: str | None, method: str, path: str) -> Any:
    try:
        return _call_daemon(url, method, path)
    except DaemonUnavailableError as e:
        raise click.ClickException(f"{e}. Start it with 'rulewatch run'.") from e


def _note_fallback(url: str | None) -> None:
    if url is not None:
        click.echo(f"No daemon at {url}; editing the rules file directly.", err=True)


async def _compile_condition(config: RulewatchConfig, condition: str) -> CompiledRule:
    """Compile with the configured provider; raises ClickException on any failure."""
    provider = create_provider(config.reasoning)
    if provider is None:
        raise click.ClickException("No model provider configured")
    try:
        if not await provider.check_health():
            raise click.ClickException(
                f"LLM unavailable: start the model service and pull {provider.model_name}"
            )
        compiler = RuleCompiler(provider, retries=config.reasoning.retries)
        result = await compiler.compile(condition)
    finally:
        await provider.close()

    if result.reject:
        detail = f" ({result.reject.details})" if result.reject.details else ""
        raise click.ClickException(f"Rule rejected: {result.reject.reason}{detail}")
    if result.rule is None:
        raise click.ClickException("Rule compilation failed: no rule returned")
    return result.rule


def _check_validation(compiled: CompiledRule, condition: str) -> None:
    validation = validate_compiled_rule_with_intent(compiled, condition)
    if not validation.valid:
        lines = [f"  {e.field}: {e.message}" for e in validation.errors]
        raise click.ClickException("Rule validation failed:\n" + "\n".join(lines))


async def _open_store(config: RulewatchConfig) -> RulesStore:
    store = RulesStore(config.rules_file)
    await store.init()
    return store


def _format_time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


# ── CLI Commands ─────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="rulewatch")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option(
    "--url",
    default=None,
    envvar="RULEWATCH_URL",
    help="Daemon API URL (default: from config)",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, url: str | None) -> None:
    """rulewatch: plain-English rules for file changes."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["url"] = url.rstrip("/") if url else None


@main.command()
@click.option("--watch-dir", default=None, help="Override the watched directory")
@click.option("--no-api", is_flag=True, help="Do not start the HTTP API")
@click.pass_context
def run(ctx: click.Context, watch_dir: str | None, no_api: bool) -> None:
    """Watch a directory and evaluate rules until interrupted."""
    from .daemon import run_daemon
    from .log_setup import configure_logging

    config = _load(ctx)
    if watch_dir:
        config.watcher.watch_dir = watch_dir
    if no_api:
        config.api.enabled = False
    configure_logging(config.logging)
    try:
        asyncio.run(run_daemon(config))
    except (ConfigError, FileNotFoundError) as e:
        raise click.ClickException(str(e)) from e


@main.command("compile")
@click.argument("condition")
@click.pass_context
def compile_cmd(ctx: click.Context, condition: str) -> None:
    """Compile CONDITION and print the rule without saving it."""
    config = _load(ctx)
    condition = condition.strip()
    try:
        result = _call_daemon(
            _daemon_url(ctx, config), "POST", "/rules/compile", {"condition": condition}
        )
    except DaemonUnavailableError:
        compiled = asyncio.run(_compile_condition(config, condition))
        _echo_json(compiled.to_json_dict())
        _check_validation(compiled, condition)
        return
    _echo_json(result["compiled"])


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether the daemon is running and what it is watching."""
    config = _load(ctx)
    url = _daemon_url(ctx, config)
    health = _require_daemon(url, "GET", "/health")
    daemon_config = _call_daemon(url, "GET", "/config")
    report = _call_daemon(url, "GET", "/report")
    matches = _call_daemon(url, "GET", "/matches")

    click.echo(f"Health:   {health['status']} ({_format_time(health['timestamp'])})")
    click.echo(f"API:      {url}")
    click.echo(f"WatchDir: {daemon_config['watchDir']}")
    click.echo(f"Ignored:  {', '.join(daemon_config.get('ignored') or []) or 'none'}")
    click.echo(f"Model:    {report['llm'].get('model') or daemon_config.get('ollamaModel')}")
    click.echo(f"Rules:    {report['rules']['total']} ({report['rules']['enabled']} enabled)")
    click.echo(f"Matches:  {matches['count']}")
    click.echo(f"Events:   {report['engine'].get('eventsObserved', 0)}")


@main.command()
@click.option("--limit", default=20, show_default=True, help="Most recent N matches")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def matches(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent rule matches (newest first)."""
    config = _load(ctx)
    data = _require_daemon(_daemon_url(ctx, config), "GET", "/matches")
    recent = data["matches"][: max(limit, 0)]
    if as_json:
        _echo_json(recent)
        return
    if not recent:
        click.echo("No matches yet.")
        return
    for match in recent:
        click.echo(
            f"{_format_time(match['timestamp'])}  {match['ruleName']}: "
            f"{match.get('reason') or match['summary']}"
        )


@main.command()
@click.pass_context
def report(ctx: click.Context) -> None:
    """Print the daemon report (uptime, LLM usage, rule totals)."""
    config = _load(ctx)
    _echo_json(_require_daemon(_daemon_url(ctx, config), "GET", "/report"))


@main.group()
def rules() -> None:
    """Manage stored rules."""


@rules.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def rules_list(ctx: click.Context, as_json: bool) -> None:
    """List all rules."""
    config = _load(ctx)
    url = _daemon_url(ctx, config)
    try:
        data = _call_daemon(url, "GET", "/rules")
        all_rules = [Rule.model_validate(r) for r in data["rules"]]
    except DaemonUnavailableError:

        async def _list():
            store = await _open_store(config)
            try:
                return store.get_all_rules()
            finally:
                await store.close()

        all_rules = asyncio.run(_list())

    if as_json:
        _echo_json([r.to_json_dict() for r in all_rules])
        return
    if not all_rules:
        click.echo("No rules.")
        return
    for rule in all_rules:
        state = "on " if rule.enabled else "off"
        click.echo(
            f"[{state}] {rule.id}  {rule.name}  ({rule.type.value}, "
            f"{rule.match_count} matches)"
        )


def _add_locally(
    config: RulewatchConfig,
    name: str,
    condition: str,
    description: str,
    compiled: CompiledRule | None,
) -> Rule:
    source = RuleSource.MANUAL
    if compiled is None:
        compiled = asyncio.run(_compile_condition(config, condition))
        source = RuleSource.LLM
    _check_validation(compiled, condition)

    async def _add():
        store = await _open_store(config)
        try:
            duplicate = store.find_duplicate_rule(condition, compiled)
            if duplicate is not None:
                return None, duplicate
            rule = await store.add_rule(name, description, condition, compiled, source)
            return rule, None
        finally:
            await store.close()

    try:
        rule, duplicate = asyncio.run(_add())
    except RulewatchError as e:
        raise click.ClickException(str(e)) from e
    if duplicate is not None:
        raise click.ClickException(
            f"Rule already exists: {duplicate.id} ({duplicate.name})"
        )
    return rule


@rules.command("add")
@click.argument("name")
@click.argument("condition")
@click.option("--description", default="", help="Optional description")
@click.option(
    "--compiled",
    "compiled_json",
    default=None,
    help="Pre-compiled rule JSON (skips the LLM)",
)
@click.pass_context
def rules_add(
    ctx: click.Context,
    name: str,
    condition: str,
    description: str,
    compiled_json: str | None,
) -> None:
    """Compile CONDITION and store it as rule NAME."""
    config = _load(ctx)
    name, condition, description = name.strip(), condition.strip(), description.strip()
    compiled = None
    if compiled_json:
        try:
            compiled = CompiledRule.model_validate_json(compiled_json)
        except ValueError as e:
            raise click.ClickException(f"Invalid --compiled JSON: {e}") from e

    url = _daemon_url(ctx, config)
    body: dict[str, Any] = {
        "name": name,
        "condition": condition,
        "description": description,
    }
    if compiled is not None:
        body["compiled"] = compiled.to_json_dict()
    try:
        rule = Rule.model_validate(_call_daemon(url, "POST", "/rules", body))
    except DaemonUnavailableError:
        _note_fallback(url)
        rule = _add_locally(config, name, condition, description, compiled)
    click.echo(f"Added rule {rule.id} ({rule.type.value})")


def _set_enabled(ctx: click.Context, rule_id: str, enabled: bool) -> None:
    config = _load(ctx)
    url = _daemon_url(ctx, config)
    try:
        _call_daemon(url, "PATCH", f"/rules/{rule_id}", {"enabled": enabled})
    except DaemonUnavailableError:
        _note_fallback(url)

        async def _update() -> bool:
            store = await _open_store(config)
            try:
                return await store.update_rule(rule_id, {"enabled": enabled})
            finally:
                await store.close()

        if not asyncio.run(_update()):
            raise click.ClickException(f"Rule not found: {rule_id}")
    click.echo(f"{'Enabled' if enabled else 'Disabled'} rule {rule_id}")


@rules.command("enable")
@click.argument("rule_id")
@click.pass_context
def rules_enable(ctx: click.Context, rule_id: str) -> None:
    """Enable a rule."""
    _set_enabled(ctx, rule_id, True)


@rules.command("disable")
@click.argument("rule_id")
@click.pass_context
def rules_disable(ctx: click.Context, rule_id: str) -> None:
    """Disable a rule."""
    _set_enabled(ctx, rule_id, False)


@rules.command("delete")
@click.argument("rule_id")
@click.pass_context
def rules_delete(ctx: click.Context, rule_id: str) -> None:
    """Delete a rule."""
    config = _load(ctx)
    url = _daemon_url(ctx, config)
    try:
        _call_daemon(url, "DELETE", f"/rules/{rule_id}")
    except DaemonUnavailableError:
        _note_fallback(url)

        async def _delete() -> bool:
            store = await _open_store(config)
            try:
                return await store.delete_rule(rule_id)
            finally:
                await store.close()

        if not asyncio.run(_delete()):
            raise click.ClickException(f"Rule not found: {rule_id}")
    click.echo(f"Deleted rule {rule_id}")


@main.command()
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """Run diagnostics and check system health."""
    import importlib
    import socket
    import sys

    from .security import PathGuard

    checks: list[tuple[str, bool, str]] = []

    # 1. Python version
    ver = sys.version.split()[0]
    ok = sys.version_info >= (3, 10)
    checks.append(
        ("Python version", ok, f"{ver} {'(>= 3.10)' if ok else '(need >= 3.10)'}")
    )

    # 2. Config file
    config_file = Path(ctx.obj.get("config_path") or DEFAULT_CONFIG_PATH).expanduser()
    try:
        config = load_config(ctx.obj.get("config_path"))
        detail = str(config_file) if config_file.exists() else "defaults (no file)"
        checks.append(("Config file", True, detail))
    except ConfigError as e:
        checks.append(("Config file", False, f"invalid: {e}"))
        config = RulewatchConfig()

    # 3. Watch directory
    watch_dir = Path(config.watcher.watch_dir).expanduser().resolve()
    if not watch_dir.is_dir():
        checks.append(("Watch directory", False, f"not found ({watch_dir})"))
    else:
        guard = PathGuard(allowed_base_paths=[watch_dir])
        safe = guard.validate_watch_directory(watch_dir)
        checks.append(
            ("Watch directory", safe, str(watch_dir) if safe else f"refused ({watch_dir})")
        )

    # 4. Rules file
    rules_file = Path(config.rules_file).expanduser()
    if rules_file.exists():
        try:
            data = json.loads(rules_file.read_text(encoding="utf-8"))
            count = len(data.get("rules", [])) if isinstance(data, dict) else 0
            checks.append(("Rules file", True, f"{rules_file} ({count} rules)"))
        except (OSError, ValueError) as e:
            checks.append(("Rules file", False, f"unreadable: {e}"))
    else:
        checks.append(("Rules file", True, f"will be created at {rules_file}"))

    # 5. Model provider
    provider = create_provider(config.reasoning)
    if provider is None:
        checks.append(("Model provider", False, "not configured"))
    else:

        async def _health() -> bool:
            try:
                return await provider.check_health()
            finally:
                await provider.close()

        healthy = asyncio.run(_health())
        checks.append(
            (
                "Model provider",
                healthy,
                f"{provider.provider_name} / {provider.model_name}"
                + ("" if healthy else " (unreachable or model missing)"),
            )
        )

    # 6. Optional dependencies
    try:
        importlib.import_module("openai")
        checks.append(("  OpenAI-compatible providers", True, "installed"))
    except ImportError:
        checks.append(("  OpenAI-compatible providers", False, "not installed (optional)"))

    # 7. Port availability
    if config.api.enabled:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.settimeout(1)
                s.bind((config.api.host, config.api.port))
            checks.append((f"Port {config.api.port} (API)", True, "available"))
        except OSError:
            checks.append(
                (f"Port {config.api.port} (API)", False, "in use (daemon running?)")
            )

    click.echo("\nrulewatch doctor")
    click.echo("=" * 50)

    passed = 0
    failed = 0
    for name, ok, detail in checks:
        icon = click.style("PASS", fg="green") if ok else click.style("FAIL", fg="red")
        is_optional = name.startswith("  ") and "not installed" in detail
        if ok:
            passed += 1
        elif is_optional:
            icon = click.style("SKIP", fg="yellow")
        else:
            failed += 1
        click.echo(f"  [{icon}] {name}: {detail}")

    click.echo(f"\n  {passed} passed, {failed} failed")
    if failed == 0:
        click.echo(click.style("  All checks passed!", fg="green"))
    else:
        click.echo(click.style("  Some checks failed. See above for details.", fg="red"))
    click.echo("")


if __name__ == "__main__":
    main()
