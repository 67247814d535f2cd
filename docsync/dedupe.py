from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from .models import DuplicateGroup, RejectReason, Rejection, SourceItem
from .naming import normalize_name


@dataclass
class DedupeResult:
    winners: list[SourceItem] = field(default_factory=list)
    groups: list[DuplicateGroup] = field(default_factory=list)   # only groups with more than one member
    duplicates: list[Rejection] = field(default_factory=list)


def _rank(item: SourceItem) -> tuple:
    # Format priority, then newest first; id and name make the order total.
    return (
        item.format_tag.priority,
        -item.modified_at.timestamp(),
        item.id or "",
        item.display_name,
    )


def resolve_duplicates(items: Iterable[SourceItem]) -> DedupeResult:
    """Pick one winner per normalized-name group.

    The result does not depend on input order: groups are emitted sorted by key and
    members are ranked by a total order.
    """
    groups: dict[str, list[SourceItem]] = {}
    for item in items:
        groups.setdefault(normalize_name(item.display_name), []).append(item)

    result = DedupeResult()
    for key in sorted(groups):
        members = sorted(groups[key], key=_rank)
        winner, losers = members[0], members[1:]
        result.winners.append(winner)
        if not losers:
            continue
        result.groups.append(DuplicateGroup(key=key, winner=winner, skipped=losers))
        for loser in losers:
            result.duplicates.append(
                Rejection(
                    item=loser,
                    reason=RejectReason.DUPLICATE,
                    detail=f"duplicate of '{winner.display_name}' ({winner.format_tag.name})",
                )
            )
    logger.info(
        "Dedupe: {} unique documents, {} duplicate formats skipped",
        len(result.winners),
        len(result.duplicates),
    )
    return result
