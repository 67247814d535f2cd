import re
from typing import Protocol

_EXTENSION_RE = re.compile(r"\.(pdf|pptx?|docx?|xlsx?|gslides?|gdocs?|gsheets?|txt|md)$", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r"[_\-:]+")
_COPY_RE = re.compile(r"\(copy\s*\d*\)", re.IGNORECASE)
_VERSION_RE = re.compile(r"\s+(?:_?v\d+(?:\.\d+)*|version\s+\d+(?:\.\d+)*)\b", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Reduce a display name to the key shared by every format of one logical document.

    >>> normalize_name("Q3_Report - v2 (Copy 1).pdf")
    'q3 report'
    """
    text = _EXTENSION_RE.sub("", name.strip())
    text = _SEPARATOR_RE.sub(" ", text)
    text = _COPY_RE.sub(" ", text)
    text = _WS_RE.sub(" ", text)
    text = _VERSION_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip().lower()


class NameMatcher(Protocol):
    def __call__(self, a: str, b: str) -> bool: ...


def exact_match(a: str, b: str) -> bool:
    return a == b


class FuzzyNameMatcher:
    """Normalized equality, plus containment once either name is long enough.

    Short names are only merged on equality so that e.g. "pricing" and
    "pricing faq" stay distinct documents.
    """

    def __init__(self, min_length: int = 30):
        self.min_length = min_length

    def __call__(self, a: str, b: str) -> bool:
        n1 = normalize_name(a)
        n2 = normalize_name(b)
        if not n1 or not n2:
            return False
        if n1 == n2:
            return True
        if len(n1) >= self.min_length or len(n2) >= self.min_length:
            return n1 in n2 or n2 in n1
        return False
