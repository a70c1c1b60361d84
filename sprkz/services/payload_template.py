"""
Payload templates for webhook bodies.

Templates may reference ``{{ variable }}`` placeholders only. A variable is a
dotted path into the trigger data (``customer.email``, ``items.0.sku``) or one
of the built-ins below. There are no expressions, filters or function calls.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sprkz.errors import TemplateError

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w]*(?:\.[\w]+)*)\s*\}\}")
_MISSING = object()


def resolve_path(data: Any, path: str) -> Any:
    """Walk a dotted path through nested dicts and lists.

    Returns the sentinel ``_MISSING`` when any segment does not resolve.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def _as_text(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class PayloadTemplate:
    """A webhook's payload type plus its (optional) template text"""
    payload_type: str = "json"
    template: Optional[str] = None

    def variables(self, trigger_data: Dict[str, Any],
                  execution_id: Optional[int] = None) -> Dict[str, Any]:
        scope = dict(trigger_data or {})
        scope.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        if execution_id is not None:
            scope.setdefault("execution_id", execution_id)
        return scope

    def render(self, trigger_data: Dict[str, Any],
               execution_id: Optional[int] = None) -> Any:
        """Render the body for ``trigger_data``.

        Returns a JSON-serialisable object for json/pdf payloads, or a string
        for dynamic payloads.
        """
        if not self.template or not self.template.strip() or self.payload_type == "pdf":
            return trigger_data or {}

        scope = self.variables(trigger_data, execution_id)

        if self.payload_type == "dynamic":
            return self._substitute(self.template, scope)

        try:
            parsed = json.loads(self.template)
        except ValueError as e:
            raise TemplateError(f"Payload template is not valid JSON: {e}") from e
        return self._render_node(parsed, scope)

    def _render_node(self, node: Any, scope: Dict[str, Any]) -> Any:
        if isinstance(node, dict):
            return {self._substitute(k, scope): self._render_node(v, scope) for k, v in node.items()}
        if isinstance(node, list):
            return [self._render_node(item, scope) for item in node]
        if isinstance(node, str):
            whole = PLACEHOLDER.fullmatch(node.strip())
            if whole:
                value = resolve_path(scope, whole.group(1))
                return None if value is _MISSING else value
            return self._substitute(node, scope)
        return node

    @staticmethod
    def _substitute(text: str, scope: Dict[str, Any]) -> str:
        return PLACEHOLDER.sub(lambda m: _as_text(resolve_path(scope, m.group(1))), text)
