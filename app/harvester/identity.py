from __future__ import annotations

"""Extract and compare item identities (display labels)."""

import re
from typing import Callable, List, Optional, Sequence, Tuple

from . import config
from .dom import Element
from .error_codes import AutomationError
from .logging_utils import _harvester_event
from .selectors import DEFAULT_SELECTORS, ListSelectors
from .utils import normalize_whitespace

_APPLICATION_SUFFIX_RE = re.compile(r"\b(adlı kullanıcının başvurusu|application)\b", re.I)
_CONNECTION_DEGREE_RE = re.compile(
    r"\b(\d+(st|nd|rd|th)|1\. 2\. 3\.)\s+degree connection\b", re.I
)
_STATUS_DOT_RE = re.compile(r"•.*$")
_ALT_SUFFIX_RE = re.compile(r"(\s+fotoğrafı|'s photo|\s+photo)$", re.I)
_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def is_valid_identity(text: Optional[str], invalid: Sequence[str] = config.INVALID_IDENTITIES) -> bool:
    if not text:
        return False
    clean = text.strip()
    if len(clean) < 2:
        return False
    return not any(marker in clean for marker in invalid)


def clean_identity(text: str) -> str:
    """Strip list decorations (suffixes, connection degree, status dots)."""

    cleaned = normalize_whitespace(text)
    cleaned = _APPLICATION_SUFFIX_RE.sub("", cleaned)
    cleaned = _CONNECTION_DEGREE_RE.sub("", cleaned)
    cleaned = _STATUS_DOT_RE.sub("", cleaned)
    return normalize_whitespace(cleaned)


def _first_text(item: Element, selector: str) -> Optional[str]:
    element = item.query(selector)
    if element is None:
        return None
    return element.read_text()


def _primary_label(item: Element, selectors: ListSelectors) -> Optional[str]:
    return _first_text(item, selectors.identity_primary)


def _title_first_line(item: Element, selectors: ListSelectors) -> Optional[str]:
    text = _first_text(item, selectors.identity_title)
    if text is None:
        return None
    return text.strip().split("\n")[0]


def _link_text(item: Element, selectors: ListSelectors) -> Optional[str]:
    return _first_text(item, selectors.identity_link)


def _image_alt(item: Element, selectors: ListSelectors) -> Optional[str]:
    image = item.query(selectors.identity_image)
    if image is None:
        return None
    alt = image.get_attribute("alt")
    if not alt:
        return None
    return _ALT_SUFFIX_RE.sub("", alt.strip()).strip()


IdentityStrategy = Callable[[Element, ListSelectors], Optional[str]]

IDENTITY_STRATEGIES: Tuple[Tuple[str, IdentityStrategy], ...] = (
    ("primary_label", _primary_label),
    ("title_first_line", _title_first_line),
    ("link_text", _link_text),
    ("image_alt", _image_alt),
)


def extract_identity(
    item: Element,
    selectors: ListSelectors = DEFAULT_SELECTORS,
    *,
    invalid: Sequence[str] = config.INVALID_IDENTITIES,
) -> str:
    """Return the first valid, cleaned identity for *item*, or ``""``.

    Only reads from the item's subtree.
    """

    try:
        for _name, strategy in IDENTITY_STRATEGIES:
            raw = strategy(item, selectors)
            if not is_valid_identity(raw, invalid):
                continue
            cleaned = clean_identity(raw or "")
            if is_valid_identity(cleaned, invalid):
                return cleaned
    except AutomationError as exc:
        _harvester_event("identity", step="extract_error", error=str(exc))
    return ""


def _tokens(text: str) -> List[str]:
    return [token.lower() for token in _TOKEN_RE.findall(text or "")]


def contains_identity(haystack: Optional[str], identity: Optional[str]) -> bool:
    """Case-insensitive, whitespace-normalised substring match."""

    needle = normalize_whitespace(identity).lower()
    if not needle:
        return True
    return needle in normalize_whitespace(haystack).lower()


def fuzzy_match(
    expected: Optional[str],
    actual: Optional[str],
    threshold: float = config.FUZZY_MATCH_THRESHOLD,
) -> bool:
    """Accept when shared tokens cover *threshold* of the shorter token set."""

    expected_tokens = set(_tokens(expected or ""))
    actual_tokens = set(_tokens(actual or ""))
    if not expected_tokens or not actual_tokens:
        return False
    shorter = min(len(expected_tokens), len(actual_tokens))
    overlap = len(expected_tokens & actual_tokens)
    return overlap >= threshold * shorter


def first_line(text: Optional[str]) -> str:
    for line in (text or "").splitlines():
        if line.strip():
            return normalize_whitespace(line)
    return ""


def identity_matches(
    detail_text: Optional[str],
    identity: Optional[str],
    *,
    label: Optional[str] = None,
    threshold: float = config.FUZZY_MATCH_THRESHOLD,
    fuzzy: bool = True,
) -> bool:
    """Exact containment in the detail text, else token overlap with its label.

    The fuzzy comparison is label against label: *label* when given,
    otherwise the first line of *detail_text*.
    """

    if contains_identity(detail_text, identity):
        return True
    if not fuzzy:
        return False
    return fuzzy_match(identity, label if label else first_line(detail_text), threshold)


__all__ = [
    "is_valid_identity",
    "clean_identity",
    "extract_identity",
    "contains_identity",
    "fuzzy_match",
    "first_line",
    "identity_matches",
    "IDENTITY_STRATEGIES",
]
