"""Extract a script-free ``<head>`` and a short ``<body>`` prefix from fetched HTML.

Both functions are plain string transforms. They never raise: partial or
malformed markup yields a best-effort result instead of failing the request.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup
from core import get_logger

_logger = get_logger(__name__)

DEFAULT_SNIPPET_LENGTH = 1024
JSON_LD_TYPE = "application/ld+json"

_HEAD_OPEN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_OPEN = re.compile(r"<body(?:\s[^>]*)?>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)

# A script element: opening tag, then content up to the closing tag or end of input.
# Browsers ignore the self-closing slash on <script/>, so it gets no special case.
_SCRIPT = re.compile(
    r"<script(?P<attrs>(?:[\s/][^>]*)?)>.*?(?:</script(?:\s[^>]*)?>|\Z)",
    re.IGNORECASE | re.DOTALL,
)


def _script_type(attrs: str) -> str | None:
    """Read the ``type`` attribute of a script opening tag the way a browser would.

    Attribute values are tokenized, so ``type=`` inside another attribute's
    value does not count, and a repeated ``type`` keeps its first value.
    """
    soup = BeautifulSoup(f"<script{attrs}>", "html.parser", on_duplicate_attribute="ignore")
    tag = soup.find("script")
    if tag is None:
        return None
    value = tag.get("type")
    if not isinstance(value, str):
        return None
    return value.strip().lower()


def _keep_json_ld(match: re.Match[str]) -> str:
    if _script_type(match.group("attrs")) == JSON_LD_TYPE:
        return match.group(0)
    return ""


def strip_scripts(fragment: str) -> str:
    """Remove every ``<script>`` element except ``application/ld+json`` data blocks.

    Repeats until nothing changes, so removing one element cannot splice a new
    one together out of the surrounding text.
    """
    previous = None
    while previous != fragment:
        previous = fragment
        fragment = _SCRIPT.sub(_keep_json_ld, fragment)
    return fragment


def extract_head(html: str) -> str:
    """Return the inner ``<head>`` markup with executable scripts removed.

    Input without a ``<head>`` tag is treated as a head-only fragment. An
    unclosed ``<head>`` runs to the end of the input.
    """
    try:
        opening = _HEAD_OPEN.search(html)
        if opening is None:
            candidate = html
        else:
            closing = _HEAD_CLOSE.search(html, opening.end())
            candidate = html[opening.end() : closing.start() if closing else len(html)]
        return strip_scripts(candidate)
    except Exception:  # noqa: BLE001
        _logger.debug("head_extraction_failed", exc_info=True)
        return ""


def extract_body_snippet(html: str, max_length: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """Return at most ``max_length`` characters of body content."""
    try:
        opening = _BODY_OPEN.search(html)
        if opening is not None:
            start = opening.end()
        else:
            head_close = _HEAD_CLOSE.search(html)
            if head_close is None:
                return ""
            start = head_close.end()
        closing = _BODY_CLOSE.search(html, start)
        body = html[start : closing.start() if closing else len(html)]
        return body[:max_length]
    except Exception:  # noqa: BLE001
        _logger.debug("body_extraction_failed", exc_info=True)
        return ""
