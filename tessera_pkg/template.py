"""
Placeholder rendering.

`render` replaces every `{{ expression | filter: args | ... }}` span in a
document with the evaluated, filtered and (unless marked safe) HTML-escaped
result. Placeholders are evaluated concurrently and independently: an error
in one becomes an inline <template-error> and the rest of the document still
renders.

Known limitation: the placeholder is split on every `|`, including pipes
inside string literals or nested expressions. Keep pipes out of expressions.
"""

import asyncio
import inspect
import logging
import re
from collections import ChainMap
from typing import Any, Dict, List, Mapping, Optional, Tuple

from markupsafe import Markup, escape

from .errors import FilterResolutionError, error_marker
from .expression import evaluate, to_text
from .filters import SafeValue, merge_filters
from .helpers import BUILTIN_HELPERS

TEMPLATE_REGEX = re.compile(r'\{\{(.{1,1024}?)\}\}')
FILTER_REGEX = re.compile(r'^([A-Za-z_]\w*)(?:\s*:\s*(.+))?$', re.DOTALL)
ESCAPED_BRACE_REGEX = re.compile(r'\\([{}])')

logger = logging.getLogger('Tessera.template')


def parse_placeholder(source: str) -> Tuple[str, List[Tuple[str, Optional[str]]]]:
    """
    Split a placeholder body into its main expression and filter chain.

    Returns:
        (main expression, [(filter name, argument source or None), ...])
    """
    parts = [part.strip() for part in source.strip().split('|')]
    chain = []
    for part in parts[1:]:
        match = FILTER_REGEX.match(part)
        if not match:
            raise FilterResolutionError(f"filter syntax error: {part}")
        chain.append((match.group(1), match.group(2)))
    return parts[0], chain


async def _settle(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def evaluate_placeholder(source: str, scope: Mapping, filters: Dict[str, Any]) -> Tuple[Any, bool]:
    """
    Evaluate one placeholder body.

    Returns:
        (final unescaped value, whether any filter marked the output safe)
    """
    expression, chain = parse_placeholder(source)
    result = evaluate(expression, scope)
    if result is None:
        result = ''
    if callable(result):
        result = result()
    result = await _settle(result)
    is_safe = False

    for name, args_source in chain:
        func = filters.get(name)
        if not callable(func):
            raise FilterResolutionError(f"unregistered or invalid filter: {name}")
        args = evaluate(f"[{args_source}]", scope) if args_source else []
        result = await _settle(func(result, *args))
        if isinstance(result, SafeValue):
            is_safe = True
            result = result.value

    return await _settle(result), is_safe


async def _render_placeholder(source: str, scope: Mapping, filters: Dict[str, Any]) -> str:
    try:
        result, is_safe = await evaluate_placeholder(source, scope, filters)
    except Exception as e:
        logger.warning(f"Template error in {{{{{source}}}}}: {e}")
        return error_marker(e)
    if isinstance(result, Markup):
        return str(result)
    if is_safe:
        return to_text(result)
    return str(escape(to_text(result)))


async def render(content: str, data: Optional[Mapping] = None, filters=None) -> str:
    """
    Render all placeholders in `content`.

    Args:
        content: Template text.
        data: Values visible to expressions. Overrides helpers of the same name.
        filters: Extra filters merged over the built-ins.

    Returns:
        The rendered text with escaped braces (\\{ and \\}) unescaped.
    """
    if not content:
        return content

    registry = merge_filters(filters)
    scope = ChainMap(dict(data or {}), BUILTIN_HELPERS)
    matches = list(TEMPLATE_REGEX.finditer(content))
    rendered = await asyncio.gather(
        *(_render_placeholder(match.group(1), scope, registry) for match in matches)
    )

    pieces = []
    last_end = 0
    for match, replacement in zip(matches, rendered):
        pieces.append(content[last_end:match.start()])
        pieces.append(replacement)
        last_end = match.end()
    pieces.append(content[last_end:])

    return ESCAPED_BRACE_REGEX.sub(r'\1', ''.join(pieces))
