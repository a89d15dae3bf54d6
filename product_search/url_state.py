"""Round trip between :class:`SearchQuery` and the address-bar query string.

Reading is tolerant: missing or malformed parameters fall back to defaults and
never raise. Writing emits the canonical form only (plain comma-joined lists,
elements quoted when they contain separators) and omits default values.

Legacy URLs wrapped list parameters in braces, Postgres-array style::

    ?categories={dairy products,"cheeses, soft"}

Both forms are accepted on read.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode

from .state import SearchQuery

logger = logging.getLogger(__name__)

PARAM_TEXT = "q"
PARAM_CATEGORIES = "categories"
PARAM_BRANDS = "brands"
PARAM_PAGE = "page"

UrlState = Dict[str, str]

_SPECIAL_CHARS = (",", '"', "\\")


class MalformedListError(ValueError):
    """Raised internally when a list parameter cannot be decoded."""


def _split_elements(raw: str) -> List[str]:
    elements: List[str] = []
    current: List[str] = []
    quoted = False
    in_quotes = False
    idx = 0
    while idx < len(raw):
        ch = raw[idx]
        if in_quotes:
            if ch == "\\":
                idx += 1
                if idx >= len(raw):
                    raise MalformedListError("dangling escape")
                current.append(raw[idx])
            elif ch == '"':
                in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            if "".join(current).strip():
                raise MalformedListError("quote inside unquoted element")
            current = []
            in_quotes = True
            quoted = True
        elif ch == ",":
            elements.append("".join(current) if quoted else "".join(current).strip())
            current = []
            quoted = False
        elif quoted and not ch.isspace():
            raise MalformedListError("text after closing quote")
        elif not (quoted and ch.isspace()):
            current.append(ch)
        idx += 1
    if in_quotes:
        raise MalformedListError("unterminated quote")
    elements.append("".join(current) if quoted else "".join(current).strip())
    return elements


def parse_list(raw: Optional[str]) -> List[str]:
    """Decode a comma-joined (optionally brace-wrapped) list parameter.

    Returns an empty list for missing or undecodable input.
    """
    if raw is None:
        return []
    value = raw.strip()
    if value.startswith("{") or value.endswith("}"):
        if not (value.startswith("{") and value.endswith("}")):
            logger.debug("Unbalanced braces in list parameter %r", raw)
            return []
        value = value[1:-1].strip()
    if not value:
        return []
    try:
        elements = _split_elements(value)
    except MalformedListError as exc:
        logger.debug("Malformed list parameter %r: %s", raw, exc)
        return []
    seen: Dict[str, None] = {}
    for element in elements:
        label = element.strip()
        if label:
            seen.setdefault(label, None)
    return list(seen)


def _format_element(label: str) -> str:
    needs_quotes = any(ch in label for ch in _SPECIAL_CHARS) or label.startswith("{") or label.endswith("}")
    if not needs_quotes:
        return label
    escaped = label.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_list(labels) -> str:
    return ",".join(_format_element(label) for label in labels)


def parse_page(raw: Optional[str]) -> int:
    if raw is None:
        return 1
    try:
        page = int(raw.strip())
    except ValueError:
        return 1
    return page if page >= 1 else 1


def hydrate_from_url(params: Mapping[str, str], page_size: int = 50) -> SearchQuery:
    """Parse URL parameters into a :class:`SearchQuery`, substituting defaults."""
    return SearchQuery(
        text=(params.get(PARAM_TEXT) or "").strip(),
        categories=tuple(parse_list(params.get(PARAM_CATEGORIES))),
        brands=tuple(parse_list(params.get(PARAM_BRANDS))),
        page=parse_page(params.get(PARAM_PAGE)),
        page_size=page_size,
    )


def serialize_to_url(query: SearchQuery) -> UrlState:
    """Project ``query`` to URL parameters, omitting default values."""
    state: UrlState = {}
    if query.text:
        state[PARAM_TEXT] = query.text
    if query.categories:
        state[PARAM_CATEGORIES] = format_list(query.categories)
    if query.brands:
        state[PARAM_BRANDS] = format_list(query.brands)
    if query.page > 1:
        state[PARAM_PAGE] = str(query.page)
    return state


def to_query_string(query: SearchQuery) -> str:
    return urlencode(serialize_to_url(query))


def from_query_string(query_string: str, page_size: int = 50) -> SearchQuery:
    """Parse a raw query string; undecodable parameters are treated as absent."""
    params: UrlState = {}
    for name, value in parse_qsl(query_string.lstrip("?"), keep_blank_values=True):
        params.setdefault(name, value)
    for name in (PARAM_CATEGORIES, PARAM_BRANDS):
        # parse_qsl replaces invalid percent-escapes with U+FFFD
        if "\ufffd" in params.get(name, ""):
            logger.debug("Undecodable %s parameter in %r", name, query_string)
            params.pop(name)
    return hydrate_from_url(params, page_size=page_size)
