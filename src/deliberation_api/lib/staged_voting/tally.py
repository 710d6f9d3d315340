"""Pure aggregation of ballots into a ranked, weighted result set.

The tally service feeds this module plain records read from the store and
persists what it returns; nothing here touches the database.
"""

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from deliberation_api.lib.staged_voting.stages import as_utc
from deliberation_api.lib.staged_voting.weighting import WeightingCurve, knowledge_weight

KNOWLEDGE_BUCKETS = 4

_LATEST = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class OptionRef:
    """The parts of an option the tally needs."""

    id: str
    title: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class BallotRecord:
    """One ballot reduced to its choice and quiz result."""

    choice_id: str
    knowledge_score: int


@dataclass(slots=True)
class OptionTally:
    """Aggregate for one option within a single tally run."""

    choice_id: str
    title: str
    total_votes: int = 0
    weighted_votes: float = 0.0
    knowledge_breakdown: list[int] = field(default_factory=lambda: [0] * KNOWLEDGE_BUCKETS)
    is_winner: bool = False


def _bucket(score: int) -> int:
    return max(0, min(score, KNOWLEDGE_BUCKETS - 1))


def rank_key(tally: OptionTally, created_at: datetime | None) -> tuple[float, datetime, str]:
    """Sort key: highest weighted votes, then earliest created, then id."""
    return (-tally.weighted_votes, as_utc(created_at) or _LATEST, tally.choice_id)


def compute_tally(
    options: Sequence[OptionRef],
    ballots: Iterable[BallotRecord],
    question_counts: Mapping[str, int],
    curve: WeightingCurve | str = WeightingCurve.LINEAR,
) -> list[OptionTally]:
    """Aggregate ballots per option and flag a single winner.

    Every option in ``options`` gets a row, including options nobody chose.
    Ballots for a choice outside ``options`` still get a row of their own,
    but only an option from ``options`` can be flagged winner. No winner is
    flagged when no ballots were cast.

    Returns:
        Option tallies ordered by rank, winner first.
    """
    refs: dict[str, OptionRef] = {ref.id: ref for ref in options}
    offered = frozenset(refs)
    weights: dict[str, list[float]] = defaultdict(list)
    tallies: dict[str, OptionTally] = {ref.id: OptionTally(choice_id=ref.id, title=ref.title) for ref in options}

    ballot_count = 0
    for ballot in ballots:
        ballot_count += 1
        tally = tallies.get(ballot.choice_id)
        if tally is None:
            refs[ballot.choice_id] = OptionRef(id=ballot.choice_id)
            tally = tallies[ballot.choice_id] = OptionTally(choice_id=ballot.choice_id, title="")
        tally.total_votes += 1
        tally.knowledge_breakdown[_bucket(ballot.knowledge_score)] += 1
        weights[ballot.choice_id].append(
            knowledge_weight(ballot.knowledge_score, question_counts.get(ballot.choice_id, 0), curve)
        )

    for choice_id, values in weights.items():
        # fsum keeps the total independent of ballot read order
        tallies[choice_id].weighted_votes = math.fsum(values)

    ranked = sorted(tallies.values(), key=lambda t: rank_key(t, refs[t.choice_id].created_at))
    if ballot_count > 0:
        winner = next((t for t in ranked if t.choice_id in offered), None)
        if winner is not None:
            winner.is_winner = True
    return ranked


def winner_of(tallies: Sequence[OptionTally]) -> OptionTally | None:
    """Return the flagged winner, if any."""
    return next((t for t in tallies if t.is_winner), None)
