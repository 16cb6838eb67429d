"""
Template resolution for ``{{path.to.value}}`` placeholders.
"""

import logging
import re
from typing import Any, List, Mapping, Optional, Tuple, Union

from ..errors import TemplateUnresolved
from ..models.nodes import NodeConfig, stringify
from .context import ExecutionContext

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*)\s*\}\}")

_MISSING = object()

ContextLike = Union[ExecutionContext, Mapping[str, Any]]


def lookup(path: str, context: ContextLike) -> Any:
    """
    Walk a dotted path through the context.

    The first segment selects a node id (or ``trigger``); the rest walk the
    node's output. Integer segments index into lists.

    Returns:
        The value, or a private sentinel when any segment is missing
    """
    data = context.data if isinstance(context, ExecutionContext) else context
    current: Any = data
    for key in path.split("."):
        if isinstance(current, Mapping) and key in current:
            current = current[key]
        elif isinstance(current, (list, tuple)) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return _MISSING
    return current


def resolve(
    template: Any,
    context: ContextLike,
    unresolved: Optional[List[str]] = None,
) -> Any:
    """
    Substitute every placeholder in a template string.

    Missing paths become the empty string; the path is appended to
    ``unresolved`` when a list is given. Non-string templates are returned
    unchanged.

    Args:
        template: String with ``{{path}}`` placeholders
        context: Execution context
        unresolved: Optional collector for unresolved paths

    Returns:
        Resolved string
    """
    if not isinstance(template, str) or "{{" not in template:
        return template

    def _substitute(match: "re.Match[str]") -> str:
        path = match.group(1)
        value = lookup(path, context)
        if value is _MISSING:
            logger.warning(str(TemplateUnresolved(path)))
            if unresolved is not None:
                unresolved.append(path)
            return ""
        return stringify(value)

    return PLACEHOLDER.sub(_substitute, template)


def resolve_config(
    config: NodeConfig,
    context: ContextLike,
    exclude: Tuple[str, ...] = (),
) -> Tuple[NodeConfig, List[str]]:
    """
    Resolve all string fields of a node configuration.

    Args:
        config: Typed node configuration
        context: Execution context
        exclude: Field names left untouched

    Returns:
        (resolved copy of the configuration, warnings)
    """
    unresolved: List[str] = []
    updates = {}
    for name in type(config).model_fields:
        if name in exclude:
            continue
        value = getattr(config, name)
        if isinstance(value, str):
            updates[name] = resolve(value, context, unresolved)
    warnings = [str(TemplateUnresolved(path)) for path in unresolved]
    return config.model_copy(update=updates), warnings


def has_placeholders(text: str) -> bool:
    return bool(PLACEHOLDER.search(text or ""))
