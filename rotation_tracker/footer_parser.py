from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable


# Footer format: "9.14.7-i068 | 3 ms" -> version, serving node, page generation time.
_HTML_TAG_RE = re.compile(r"<[^>]+>")
_NBSP_RE = re.compile(r"&nbsp;", re.IGNORECASE)
_AMP_RE = re.compile(r"&amp;", re.IGNORECASE)
_NUMERIC_ENTITY_RE = re.compile(r"&#\d+;")
_WHITESPACE_RE = re.compile(r"\s+")

_VERSION = r"(\d+\.\d+\.\d+(?:\.\d+)?)"
_DASH = r"\s*[-–]\s*"
_NODE = r"(i\d{3})"

_FULL_RE = re.compile(_VERSION + _DASH + _NODE + r"\s*\|\s*(\d+)\s*ms", re.IGNORECASE)
_PARTIAL_RE = re.compile(_VERSION + _DASH + _NODE, re.IGNORECASE)
_BARE_NODE_RE = re.compile(r"\b(i0(?:67|68|69))\b", re.IGNORECASE)


@dataclass(frozen=True)
class FooterInfo:
    version: str | None
    node_short_id: str
    response_time_ms: int | None


def normalize_footer_text(html: str) -> str:
    text = _HTML_TAG_RE.sub(" ", html or "")
    text = _NBSP_RE.sub(" ", text)
    text = _AMP_RE.sub("&", text)
    text = _NUMERIC_ENTITY_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text)


def _match_full(text: str) -> FooterInfo | None:
    m = _FULL_RE.search(text)
    if not m:
        return None
    return FooterInfo(version=m.group(1), node_short_id=m.group(2).lower(), response_time_ms=int(m.group(3)))


def _match_partial(text: str) -> FooterInfo | None:
    m = _PARTIAL_RE.search(text)
    if not m:
        return None
    return FooterInfo(version=m.group(1), node_short_id=m.group(2).lower(), response_time_ms=None)


def _match_bare_node(text: str) -> FooterInfo | None:
    m = _BARE_NODE_RE.search(text)
    if not m:
        return None
    return FooterInfo(version=None, node_short_id=m.group(1).lower(), response_time_ms=None)


# Strictest first; the first matcher that yields a result wins.
FOOTER_MATCHERS: list[Callable[[str], FooterInfo | None]] = [
    _match_full,
    _match_partial,
    _match_bare_node,
]


def parse_footer(html: str) -> FooterInfo | None:
    text = normalize_footer_text(html)
    for matcher in FOOTER_MATCHERS:
        info = matcher(text)
        if info is not None:
            return info
    return None
