import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from .formats import SUPPORTED_FORMATS, FormatTag
from .models import RejectReason, Rejection, SourceItem

TEMPORARY_PATTERNS = [
    re.compile(r"~\$"),
    re.compile(r"^\.~lock\."),
    re.compile(r"\.(tmp|temp|bak)$", re.IGNORECASE),
    re.compile(r"^copy of\b", re.IGNORECASE),
    re.compile(r"\(copy\s*\d*\)", re.IGNORECASE),
]

ARCHIVAL_PATTERNS = [
    re.compile(r"archived?", re.IGNORECASE),
    re.compile(r"deprecated", re.IGNORECASE),
    re.compile(r"\(old\)", re.IGNORECASE),
    re.compile(r"backup", re.IGNORECASE),
]


@dataclass(frozen=True)
class SubordinateRule:
    """Individual records matching `pattern` are covered by the `master` collection."""

    pattern: re.Pattern
    master: re.Pattern


DEFAULT_SUBORDINATE_RULES = [
    SubordinateRule(
        pattern=re.compile(r"case\s*study", re.IGNORECASE),
        master=re.compile(r"case\s*study\s+slide\s+library", re.IGNORECASE),
    ),
]


@dataclass(frozen=True)
class FilterRules:
    supported_formats: frozenset[FormatTag] = SUPPORTED_FORMATS
    temporary: tuple[re.Pattern, ...] = tuple(TEMPORARY_PATTERNS)
    archival: tuple[re.Pattern, ...] = tuple(ARCHIVAL_PATTERNS)
    subordinate: tuple[SubordinateRule, ...] = tuple(DEFAULT_SUBORDINATE_RULES)
    superseded_names: frozenset[str] = frozenset()


@dataclass
class FilterResult:
    kept: list[SourceItem] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)


def _first_match(patterns: Iterable[re.Pattern], name: str) -> re.Pattern | None:
    for pattern in patterns:
        if pattern.search(name):
            return pattern
    return None


def rejection_for(item: SourceItem, rules: FilterRules) -> Rejection | None:
    """Return why `item` must not be indexed, or None. First matching rule wins."""
    name = item.display_name

    if pattern := _first_match(rules.temporary, name):
        return Rejection(item=item, reason=RejectReason.TEMPORARY, detail=f"matches {pattern.pattern!r}")
    if pattern := _first_match(rules.archival, name):
        return Rejection(item=item, reason=RejectReason.ARCHIVED, detail=f"matches {pattern.pattern!r}")
    if item.is_link:
        return Rejection(item=item, reason=RejectReason.UNRESOLVED_SHORTCUT)
    if item.format_tag not in rules.supported_formats:
        return Rejection(
            item=item,
            reason=RejectReason.UNSUPPORTED_FORMAT,
            detail=item.mime_type or item.format_tag.value,
        )
    for rule in rules.subordinate:
        if rule.pattern.search(name) and not rule.master.search(name):
            return Rejection(
                item=item,
                reason=RejectReason.SUBORDINATE,
                detail=f"covered by master {rule.master.pattern!r}",
            )
    if name in rules.superseded_names:
        return Rejection(item=item, reason=RejectReason.SUBORDINATE, detail="superseded record")
    return None


def filter_items(items: Iterable[SourceItem], rules: FilterRules | None = None) -> FilterResult:
    rules = rules or FilterRules()
    result = FilterResult()
    for item in items:
        rejection = rejection_for(item, rules)
        if rejection is None:
            result.kept.append(item)
        else:
            logger.debug("Skipping '{}': {} {}", item.display_name, rejection.reason.value, rejection.detail)
            result.rejected.append(rejection)
    logger.info("Filter: {} kept, {} rejected", len(result.kept), len(result.rejected))
    return result
