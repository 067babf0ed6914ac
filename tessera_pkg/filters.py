"""
Built-in filters available in every placeholder.

A filter is any callable taking the current value plus the evaluated filter
arguments. Filters may return awaitables; the engine awaits them before the
next filter runs.
"""

import html
import inspect
import json
import logging
from datetime import date as date_type, datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional
from urllib.parse import quote

from .expression import to_text

logger = logging.getLogger('Tessera.filters')

DEFAULT_LOCALE = 'de-DE'

LOCALE_FORMATS = {
    'de': {'date': '%d.%m.%Y', 'time': '%H:%M', 'group': '.', 'decimal': ',', 'currency': '{value}\xa0{symbol}'},
    'en': {'date': '%b %d, %Y', 'time': '%I:%M %p', 'group': ',', 'decimal': '.', 'currency': '{symbol}{value}'},
    'fr': {'date': '%d/%m/%Y', 'time': '%H:%M', 'group': ' ', 'decimal': ',', 'currency': '{value}\xa0{symbol}'},
    'it': {'date': '%d/%m/%Y', 'time': '%H:%M', 'group': '.', 'decimal': ',', 'currency': '{value}\xa0{symbol}'},
    'es': {'date': '%d/%m/%Y', 'time': '%H:%M', 'group': '.', 'decimal': ',', 'currency': '{value}\xa0{symbol}'},
}

CURRENCY_SYMBOLS = {'EUR': '€', 'USD': '$', 'GBP': '£', 'JPY': '¥', 'CHF': 'CHF'}

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%d', '%b %d, %Y', '%d.%m.%Y']


def _locale_format(locale: Optional[str]) -> Dict[str, str]:
    """Patterns for the locale's language; languages without patterns use English."""
    language = (locale or DEFAULT_LOCALE).replace('_', '-').split('-')[0].lower()
    if language not in LOCALE_FORMATS:
        logger.debug(f"No formats for locale {locale!r}, using English patterns")
        return LOCALE_FORMATS['en']
    return LOCALE_FORMATS[language]


def _parse_date(value: Any) -> datetime:
    """Coerce strings, timestamps and date objects to a datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date_type):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            pass
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(value, fmt)
            except ValueError:
                continue
    raise ValueError(f"invalid date: {value!r}")


def _group_digits(value: float, digits: Optional[int], locale: Optional[str]) -> str:
    fmt = _locale_format(locale)
    if digits is not None:
        text = f"{value:,.{int(digits)}f}"
    elif float(value).is_integer():
        text = f"{int(value):,}"
    else:
        text = f"{value:,.3f}".rstrip('0').rstrip('.')
    return text.replace(',', '\0').replace('.', fmt['decimal']).replace('\0', fmt['group'])


def json_filter(value: Any, pretty: bool = False) -> str:
    """Serialize a value as JSON, indented when `pretty` is set."""
    if pretty:
        return json.dumps(value, indent=2, default=str, ensure_ascii=False)
    return json.dumps(value, separators=(',', ':'), default=str, ensure_ascii=False)


def date(value: Any, locale: Optional[str] = None, fmt: Optional[str] = None) -> str:
    """
    Format a date with the locale's medium date pattern or an explicit strftime format.

    Patterns exist for de, en, fr, it and es; any other locale is formatted
    with the English patterns.
    """
    return _parse_date(value).strftime(fmt or _locale_format(locale)['date'])


def time(value: Any, locale: Optional[str] = None, fmt: Optional[str] = None) -> str:
    """Format the time of day with the locale's short time pattern."""
    return _parse_date(value).strftime(fmt or _locale_format(locale)['time'])


def currency(amount: Any, locale: Optional[str] = None, code: Optional[str] = 'EUR') -> str:
    """Format an amount of money, e.g. 12,50 € for de-DE."""
    code = (code or 'EUR').upper()
    value = _group_digits(float(amount), 2, locale)
    symbol = CURRENCY_SYMBOLS.get(code, code)
    return _locale_format(locale)['currency'].format(value=value, symbol=symbol)


def number(value: Any, locale: Optional[str] = None, digits: Optional[int] = None) -> str:
    """Format a number with locale digit grouping (English separators for unknown locales)."""
    return _group_digits(float(value), digits, locale)


def limit(items: Iterable, count: int) -> list:
    """First `count` items."""
    return list(items)[:max(0, int(count))]


def reverse(items: Iterable) -> list:
    return list(items)[::-1]


def sort(items: Iterable) -> list:
    return sorted(items)


def last(items: Iterable, amount: int = 1) -> list:
    """The last `amount` items, most recent first."""
    return list(items)[::-1][:max(0, int(amount))]


def htmlentities(value: Any) -> str:
    """Replace ampersands and angle brackets with entities."""
    return html.escape(to_text(value), quote=False)


def urlencode(value: Any) -> str:
    return quote(to_text(value), safe="-_.!~*'()")


async def async_filter(value: Any) -> Any:
    """Await a pending value and invoke it when it resolves to a function."""
    if inspect.isawaitable(value):
        value = await value
    return value() if callable(value) else value


def each(items: Any, callback: Callable) -> str:
    """Map every item through `callback` and join the results."""
    if not items:
        return ''
    if not isinstance(items, (list, tuple)):
        items = [items]
    return ''.join(to_text(callback(item)) for item in items)


def pipe(value: Any, callback: Callable) -> Any:
    return callback(value)


class SafeValue:
    """
    A value passed through the `safe` filter.

    The wrapped value is handed unchanged to the next filter; the engine only
    records that the placeholder's final output must not be escaped.
    """

    __slots__ = ('value',)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self):
        return f"SafeValue({self.value!r})"


def safe(value: Any) -> SafeValue:
    """Mark this placeholder's output as already-safe HTML without changing the value."""
    if isinstance(value, SafeValue):
        return value
    return SafeValue(value)


BUILTIN_FILTERS = {
    'json': json_filter,
    'date': date,
    'time': time,
    'currency': currency,
    'number': number,
    'limit': limit,
    'reverse': reverse,
    'sort': sort,
    'last': last,
    'htmlentities': htmlentities,
    'urlencode': urlencode,
    'async': async_filter,
    'each': each,
    'pipe': pipe,
    'safe': safe,
}


def merge_filters(custom=None) -> Dict[str, Callable]:
    """Built-in filters overlaid with caller filters; caller names win."""
    filters = dict(BUILTIN_FILTERS)
    if custom:
        filters.update(custom.items() if hasattr(custom, 'items') else custom)
    return filters
