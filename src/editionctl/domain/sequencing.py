"""Edition number assignment — dense ranks over the active membership set.

Ranks are a full recompute, never an incrementing counter: active units
are sorted by ``(acquired_at, unit_id)`` and numbered 1..N. A unit that
becomes active "in the past" is inserted at its chronological slot and
later units shift up; a deactivated unit's slot is compacted.

INVARIANTS (after every assignment):
- Active ranks are exactly ``{1..N}`` with ``N`` = number of active units.
- Inactive units have no rank.
- ``acquired_at(a) < acquired_at(b)`` implies ``rank(a) < rank(b)``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class SequenceEntry:
    """The three facts the sequencer needs about a unit."""

    unit_id: str
    acquired_at: datetime
    active: bool


@dataclass(frozen=True, slots=True)
class RankChange:
    """A unit whose rank differs between two assignments."""

    unit_id: str
    before: int | None
    after: int | None


@dataclass(frozen=True, slots=True)
class RankIssue:
    """An invariant violation found in a stored assignment."""

    kind: str
    message: str
    unit_ids: tuple[str, ...] = ()
    rank: int | None = None


def sequence_key(entry: SequenceEntry) -> tuple[datetime, str]:
    """Chronological order with ``unit_id`` as the deterministic tiebreak."""
    return (entry.acquired_at, entry.unit_id)


def assign_ranks(entries: Iterable[SequenceEntry]) -> dict[str, int | None]:
    """Return ``unit_id -> rank`` for every entry (None for inactive units)."""
    materialized = list(entries)
    ranks: dict[str, int | None] = {e.unit_id: None for e in materialized}
    active = sorted((e for e in materialized if e.active), key=sequence_key)
    for position, entry in enumerate(active, start=1):
        ranks[entry.unit_id] = position
    return ranks


def diff_ranks(
    before: Mapping[str, int | None],
    after: Mapping[str, int | None],
) -> list[RankChange]:
    """List units whose rank changed, ordered by unit id."""
    changes: list[RankChange] = []
    for unit_id in sorted(set(before) | set(after)):
        old = before.get(unit_id)
        new = after.get(unit_id)
        if old != new:
            changes.append(RankChange(unit_id=unit_id, before=old, after=new))
    return changes


def overflow(active_count: int, edition_size: int | None) -> int:
    """How many active units exceed the configured edition size (0 if uncapped)."""
    if edition_size is None:
        return 0
    return max(0, active_count - edition_size)


def format_edition_number(rank: int | None, edition_size: int | None) -> str | None:
    """Collector-facing label, e.g. ``"#7 of 50"``."""
    if rank is None:
        return None
    if edition_size is None:
        return f"#{rank}"
    return f"#{rank} of {edition_size}"


def find_rank_issues(
    entries: Iterable[SequenceEntry],
    ranks: Mapping[str, int | None],
) -> list[RankIssue]:
    """Audit a stored assignment against the sequencing invariants.

    *ranks* holds the persisted rank of each entry. Returns an empty list
    when the assignment is exactly what :func:`assign_ranks` would produce.
    """
    materialized = list(entries)
    issues: list[RankIssue] = []

    by_rank: dict[int, list[str]] = defaultdict(list)
    for entry in materialized:
        rank = ranks.get(entry.unit_id)
        if entry.active and rank is None:
            issues.append(
                RankIssue(
                    kind="active_unranked",
                    message=f"Active unit {entry.unit_id} has no edition number",
                    unit_ids=(entry.unit_id,),
                )
            )
        elif not entry.active and rank is not None:
            issues.append(
                RankIssue(
                    kind="inactive_ranked",
                    message=f"Inactive unit {entry.unit_id} still holds #{rank}",
                    unit_ids=(entry.unit_id,),
                    rank=rank,
                )
            )
        if entry.active and rank is not None:
            by_rank[rank].append(entry.unit_id)

    for rank, unit_ids in sorted(by_rank.items()):
        if len(unit_ids) > 1:
            issues.append(
                RankIssue(
                    kind="duplicate_rank",
                    message=f"#{rank} assigned to {len(unit_ids)} units: {', '.join(unit_ids)}",
                    unit_ids=tuple(sorted(unit_ids)),
                    rank=rank,
                )
            )

    active_count = sum(1 for e in materialized if e.active)
    missing = sorted(set(range(1, active_count + 1)) - set(by_rank))
    for rank in missing:
        issues.append(RankIssue(kind="rank_gap", message=f"#{rank} is unassigned", rank=rank))
    for rank in sorted(r for r in by_rank if r < 1 or r > active_count):
        issues.append(
            RankIssue(
                kind="rank_out_of_range",
                message=f"#{rank} is outside 1..{active_count}",
                unit_ids=tuple(by_rank[rank]),
                rank=rank,
            )
        )

    ranked = sorted(
        (e for e in materialized if e.active and ranks.get(e.unit_id) is not None),
        key=sequence_key,
    )
    for earlier, later in zip(ranked, ranked[1:], strict=False):
        earlier_rank = ranks[earlier.unit_id]
        later_rank = ranks[later.unit_id]
        assert earlier_rank is not None and later_rank is not None
        if earlier_rank > later_rank:
            issues.append(
                RankIssue(
                    kind="order_violation",
                    message=(
                        f"{earlier.unit_id} (#{earlier_rank}) was acquired before "
                        f"{later.unit_id} (#{later_rank})"
                    ),
                    unit_ids=(earlier.unit_id, later.unit_id),
                )
            )

    return issues
