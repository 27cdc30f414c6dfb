"""Provider-agnostic prompt template for rule compilation."""

from __future__ import annotations

_RULE_SHAPES = """Allowed rule types:
1) Pattern rule:
{
  "type": "pattern",
  "match": {
    "pathIncludes": ["src/", "components/"],
    "pathExcludes": ["node_modules/"],
    "extensions": [".ts", ".tsx"],
    "eventTypes": ["created", "modified", "deleted"]
  }
}

2) Threshold rule:
{
  "type": "threshold",
  "match": {
    "pathIncludes": ["__tests__/"],
    "extensions": [".test.ts"]
  },
  "windowSeconds": 600,
  "count": 5
}

If the rule is vague, unsafe, or unbounded, respond with:
{ "reject": { "reason": "short reason", "details": "optional details" } }"""

_COMPILE_RULES = """Rules:
- Output JSON only. No extra text.
- Use eventTypes ONLY from: created, modified, deleted.
- Use extensions with leading dot, like ".ts".
- Use seconds for windowSeconds.
- If the user explicitly mentions an event (create/modify/delete), ONLY include those events.
- Only include extensions if the user explicitly mentions an extension or language.
- Only include pathIncludes if the user explicitly mentions a directory/path."""


def build_compile_prompt(condition: str) -> str:
    """Build the natural-language → rule JSON prompt."""
    escaped = condition.replace('"', '\\"')
    return f"""You are a rules compiler for a local file watcher daemon.
Convert the user's natural-language rule into a STRICT JSON object.

{_RULE_SHAPES}

{_COMPILE_RULES}

User rule:
"{escaped}"

JSON response only:"""
