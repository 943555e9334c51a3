"""
Variable Resolver - Resolves {{path.to.value}} references against an execution context

Supports:
- {{name}} - top level context value
- Nested paths: {{apiResponse.data.customer.email}}

Unresolved references are left in place verbatim, so a misconfigured flow
shows the placeholder to the contact instead of failing delivery. This is
variable substitution only: no loops, filters, calls or escaping.
"""

import json
import re
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

# Pattern to match {{identifier(.identifier)*}}
VARIABLE_PATTERN = re.compile(r'\{\{(\w+(?:\.\w+)*)\}\}')

_MISSING = object()


def lookup_path(context: Dict[str, Any], path: str) -> Any:
    """
    Walk a dotted path through nested dicts.

    Returns:
        The value, or None when any segment is missing
    """
    value = _lookup(context, path)
    return None if value is _MISSING else value


def _lookup(context: Dict[str, Any], path: str) -> Any:
    current: Any = context
    for part in path.split('.'):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def interpolate(template: Optional[str], context: Dict[str, Any]) -> str:
    """
    Replace every {{path}} in template with its value from context.

    Examples:
        interpolate("Hi {{name}}", {"name": "Ana"}) -> "Hi Ana"
        interpolate("{{a.b}}", {}) -> "{{a.b}}"
    """
    if template is None:
        return ''
    if not isinstance(template, str):
        return _stringify(template)

    def replace_var(match):
        value = _lookup(context, match.group(1))
        if value is _MISSING or value is None:
            logger.debug(f"Unresolved variable left in place: {match.group(1)}")
            return match.group(0)
        return _stringify(value)

    return VARIABLE_PATTERN.sub(replace_var, template)


class VariableResolver:
    """
    Resolves variable references inside node configuration.

    Examples:
        {{contact.name}} -> "John"
        "Order {{order.id}} shipped" -> "Order 42 shipped"
        {"amount": "{{cart.total}}"} -> {"amount": 99.5}
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        """
        Initialize resolver with available data.

        Args:
            context: Execution context map
        """
        self.context = context or {}

    def interpolate(self, template: Optional[str]) -> str:
        return interpolate(template, self.context)

    def resolve(self, value: Any) -> Any:
        """
        Resolve variables in value (recursively handles dicts, lists, strings).

        Args:
            value: Value to resolve (can be string, dict, list, or primitive)

        Returns:
            Value with all resolvable {{variables}} substituted
        """
        if isinstance(value, str):
            return self._resolve_string(value)
        elif isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [self.resolve(item) for item in value]
        else:
            # Primitive value (int, bool, None, etc)
            return value

    def _resolve_string(self, text: str) -> Any:
        """
        Resolve variables in a string.

        If the ENTIRE string is a single resolvable reference, return the
        actual value so request bodies keep numbers and objects typed.

        Examples:
            "{{cart.total}}" -> 99.5 (float)
            "Total: {{cart.total}}" -> "Total: 99.5" (string)
        """
        match = VARIABLE_PATTERN.fullmatch(text)
        if match:
            value = _lookup(self.context, match.group(1))
            if value is not _MISSING and value is not None:
                return value
            return text

        return interpolate(text, self.context)

    def lookup(self, path: str) -> Any:
        """Value at a dotted path (braces optional), or None."""
        path = path.strip()
        match = VARIABLE_PATTERN.fullmatch(path)
        if match:
            path = match.group(1)
        return lookup_path(self.context, path)

    def unresolved(self, value: Any) -> List[str]:
        """
        List the variable paths in value that cannot be resolved.

        Returns:
            List of unresolved variable paths (empty if all valid)
        """
        unresolved = []

        def check_value(val):
            if isinstance(val, str):
                for match in VARIABLE_PATTERN.finditer(val):
                    if lookup_path(self.context, match.group(1)) is None:
                        unresolved.append(match.group(1))
            elif isinstance(val, dict):
                for v in val.values():
                    check_value(v)
            elif isinstance(val, list):
                for item in val:
                    check_value(item)

        check_value(value)
        return unresolved
