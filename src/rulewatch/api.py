"""HTTP API — manage rules and inspect matches over local HTTP.

Endpoints:
    GET    /health          → liveness
    GET    /config          → effective daemon configuration
    GET    /rules           → all rules
    POST   /rules/compile   → compile + validate a condition without saving
    GET    /rules/{id}      → one rule
    POST   /rules           → create a rule (compiled by the LLM unless supplied)
    PATCH  /rules/{id}      → update name / description / enabled
    DELETE /rules/{id}      → delete a rule
    GET    /matches         → recent matches, newest first
    GET    /stats           → engine counters and LLM usage
    GET    /report          → uptime, LLM usage, rule totals, engine counters
"""

from __future__ import annotations

import logging
import time
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from .exceptions import RulewatchError
from .rules.models import CompiledRule, RuleSource, RuleUpdate, now_ms
from .rules.validator import validate_compiled_rule_with_intent

logger = logging.getLogger("rulewatch")

MAX_NAME_LENGTH = 100
MIN_CONDITION_LENGTH = 10
MAX_CONDITION_LENGTH = 1000
MAX_DESCRIPTION_LENGTH = 500
MAX_BODY_BYTES = 100 * 1024


def _json_error(status: int, error: str, details: Any = None, **extra: Any) -> web.Response:
    """Consistent ``{error, details}`` JSON error payload."""
    payload: dict[str, Any] = {"error": error}
    if details is not None:
        payload["details"] = details
    payload.update(extra)
    return web.json_response(payload, status=status)


def _validate_condition(condition: Any, errors: dict[str, str]) -> None:
    if not isinstance(condition, str):
        errors["condition"] = "Condition must be a string"
    elif len(condition.strip()) < MIN_CONDITION_LENGTH:
        errors["condition"] = f"Condition must be at least {MIN_CONDITION_LENGTH} characters"
    elif len(condition) > MAX_CONDITION_LENGTH:
        errors["condition"] = f"Condition must be {MAX_CONDITION_LENGTH} characters or less"


def validate_rule_body(body: dict[str, Any]) -> dict[str, str]:
    """Field errors for a POST /rules body (empty when valid)."""
    errors: dict[str, str] = {}
    name = body.get("name")
    if not isinstance(name, str):
        errors["name"] = "Name must be a string"
    elif not name.strip():
        errors["name"] = "Name cannot be empty"
    elif len(name) > MAX_NAME_LENGTH:
        errors["name"] = f"Name must be {MAX_NAME_LENGTH} characters or less"

    _validate_condition(body.get("condition"), errors)

    description = body.get("description")
    if description is not None and not isinstance(description, str):
        errors["description"] = "Description must be a string"
    elif description and len(description) > MAX_DESCRIPTION_LENGTH:
        errors["description"] = (
            f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less"
        )

    compiled = body.get("compiled")
    if compiled is not None and not isinstance(compiled, dict):
        errors["compiled"] = "Compiled rule must be an object"
    return errors


async def _read_json_object(request: web.Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_api_app(state: dict[str, Any]) -> web.Application:
    """Create the aiohttp app.

    Args:
        state: Shared daemon state. Uses ``engine`` (RulesEngine),
            ``compiler`` (RuleCompiler), ``provider`` (TextProvider or None),
            ``config`` (RulewatchConfig) and ``started_at`` (monotonic seconds).
    """
    state.setdefault("started_at", time.monotonic())
    routes = web.RouteTableDef()

    async def _compile(condition: str) -> tuple[CompiledRule | None, web.Response | None]:
        """Compile with the LLM; returns (rule, None) or (None, error response)."""
        provider = state.get("provider")
        compiler = state.get("compiler")
        if provider is None or compiler is None or not await provider.check_health():
            return None, _json_error(
                503,
                "LLM unavailable",
                "Start Ollama and ensure the model is available before compiling rules.",
            )
        result = await compiler.compile(condition)
        if result.reject:
            return None, _json_error(400, "Rule rejected", result.reject.to_json_dict())
        if result.rule is None:
            return None, _json_error(
                400, "Rule compilation failed", "No valid rule returned by compiler"
            )
        return result.rule, None

    @routes.get("/health")
    async def health(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "timestamp": now_ms()})

    @routes.get("/config")
    async def get_config(request: web.Request) -> web.Response:
        config = state["config"]
        return web.json_response(
            {
                "watchDir": config.watcher.watch_dir,
                "dbPath": config.rules_file,
                "logFile": config.logging.file,
                "provider": config.reasoning.provider,
                "ollamaHost": config.reasoning.host,
                "ollamaModel": config.reasoning.model,
                "apiPort": config.api.port,
                "notificationsEnabled": config.notifications.enabled,
                "watchDebounceMs": config.watcher.debounce_ms,
                "matchHistoryLimit": config.engine.match_history_limit,
                "ignored": ["dotfiles", *config.watcher.ignored]
                if config.watcher.ignore_dotfiles
                else list(config.watcher.ignored),
            }
        )

    @routes.get("/rules")
    async def list_rules(request: web.Request) -> web.Response:
        rules = state["engine"].get_all_rules()
        return web.json_response(
            {"rules": [r.to_json_dict() for r in rules], "count": len(rules)}
        )

    @routes.post("/rules/compile")
    async def compile_rule(request: web.Request) -> web.Response:
        body = await _read_json_object(request)
        if body is None:
            return _json_error(400, "Invalid JSON", "Request body must be a JSON object")
        errors: dict[str, str] = {}
        _validate_condition(body.get("condition"), errors)
        if errors:
            return _json_error(400, "Validation failed", errors)

        condition = body["condition"].strip()
        compiled, error = await _compile(condition)
        if error is not None:
            return error

        validation = validate_compiled_rule_with_intent(compiled, condition)
        if not validation.valid:
            return _json_error(
                400,
                "Rule validation failed",
                [e.to_json_dict() for e in validation.errors],
                compiled=compiled.to_json_dict(),
            )
        return web.json_response(
            {"compiled": compiled.to_json_dict(), "validation": validation.to_json_dict()}
        )

    @routes.get("/rules/{rule_id}")
    async def get_rule(request: web.Request) -> web.Response:
        rule = state["engine"].get_rule(request.match_info["rule_id"])
        if rule is None:
            return _json_error(404, "Rule not found")
        return web.json_response(rule.to_json_dict())

    @routes.post("/rules")
    async def create_rule(request: web.Request) -> web.Response:
        body = await _read_json_object(request)
        if body is None:
            return _json_error(400, "Invalid JSON", "Request body must be a JSON object")
        errors = validate_rule_body(body)
        if errors:
            return _json_error(400, "Validation failed", errors)

        engine = state["engine"]
        condition = body["condition"].strip()

        if body.get("compiled") is not None:
            try:
                compiled = CompiledRule.model_validate(body["compiled"])
            except ValidationError as e:
                return _json_error(
                    400,
                    "Validation failed",
                    {"compiled": e.errors(include_url=False, include_context=False)},
                )
            source = RuleSource.MANUAL
        else:
            compiled, error = await _compile(condition)
            if error is not None:
                return error
            source = RuleSource.LLM

        validation = validate_compiled_rule_with_intent(compiled, condition)
        if not validation.valid:
            return _json_error(
                400,
                "Rule validation failed",
                [e.to_json_dict() for e in validation.errors],
                compiled=compiled.to_json_dict(),
            )

        duplicate = engine.find_duplicate_rule(condition, compiled)
        if duplicate is not None:
            return _json_error(
                409, "Rule already exists", existingRule=duplicate.to_json_dict()
            )

        description = body.get("description") or ""
        rule = await engine.add_rule(
            body["name"].strip(), description.strip(), condition, compiled, source
        )
        logger.info("API: rule added %s (%s, %s)", rule.id, rule.name, rule.type.value)
        return web.json_response(rule.to_json_dict(), status=201)

    @routes.patch("/rules/{rule_id}")
    async def update_rule(request: web.Request) -> web.Response:
        body = await _read_json_object(request)
        if body is None:
            return _json_error(400, "Invalid JSON", "Request body must be a JSON object")
        try:
            updates = RuleUpdate.model_validate(body)
        except ValidationError as e:
            return _json_error(
                400, "Validation failed", e.errors(include_url=False, include_context=False)
            )

        engine = state["engine"]
        rule_id = request.match_info["rule_id"]
        if not await engine.update_rule(rule_id, updates):
            return _json_error(404, "Rule not found or no changes made")
        return web.json_response(engine.get_rule(rule_id).to_json_dict())

    @routes.delete("/rules/{rule_id}")
    async def delete_rule(request: web.Request) -> web.Response:
        if not await state["engine"].delete_rule(request.match_info["rule_id"]):
            return _json_error(404, "Rule not found")
        return web.Response(status=204)

    @routes.get("/matches")
    async def list_matches(request: web.Request) -> web.Response:
        matches = sorted(
            state["engine"].get_recent_matches(),
            key=lambda m: m.timestamp,
            reverse=True,
        )
        return web.json_response(
            {"matches": [m.to_json_dict() for m in matches], "count": len(matches)}
        )

    @routes.get("/stats")
    async def get_stats(request: web.Request) -> web.Response:
        provider = state.get("provider")
        return web.json_response(
            {
                "engine": state["engine"].get_stats().to_json_dict(),
                "llm": provider.usage_summary() if provider is not None else {},
            }
        )

    @routes.get("/report")
    async def get_report(request: web.Request) -> web.Response:
        engine = state["engine"]
        provider = state.get("provider")
        rules = engine.get_all_rules()
        usage = provider.usage_summary() if provider is not None else {}
        top = sorted(rules, key=lambda r: r.match_count, reverse=True)[:5]
        return web.json_response(
            {
                "timestamp": now_ms(),
                "uptime": int(time.monotonic() - state["started_at"]),
                "llm": {
                    "model": provider.model_name if provider is not None else None,
                    "tokenUsage": {
                        "total": usage.get("total_tokens", 0),
                        "prompt": usage.get("prompt_tokens", 0),
                        "completion": usage.get("completion_tokens", 0),
                        "requests": usage.get("requests", 0),
                        "successRate": usage.get("success_rate", 0.0),
                        "averageLatency": usage.get("average_latency_ms", 0),
                    },
                    "note": "Token usage resets on daemon restart.",
                },
                "rules": {
                    "total": len(rules),
                    "enabled": sum(1 for r in rules if r.enabled),
                    "totalMatches": sum(r.match_count for r in rules),
                    "topMatches": [
                        {"name": r.name, "matches": r.match_count} for r in top
                    ],
                },
                "engine": engine.get_stats().to_json_dict(),
            }
        )

    @web.middleware
    async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        """Map unexpected failures to a JSON 500 instead of aiohttp's HTML page."""
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except RulewatchError as e:
            logger.error("API: %s %s failed: %s", request.method, request.path, e)
            return _json_error(500, "Internal server error", str(e))
        except Exception:
            logger.exception("API: %s %s failed", request.method, request.path)
            return _json_error(500, "Internal server error")

    app = web.Application(middlewares=[error_middleware], client_max_size=MAX_BODY_BYTES)
    app.add_routes(routes)
    return app
