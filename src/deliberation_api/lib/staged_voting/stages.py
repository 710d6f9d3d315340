"""Time/stage resolution for three-stage votes.

Pure functions over a vote's six stage-boundary timestamps. Nothing here
looks at tallies or winners; causal gating lives in the option service.
"""

import enum
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol


class Stage(enum.IntEnum):
    """The three sequential phases of a vote."""

    ISSUES = 1
    APPROACHES = 2
    PLANS = 3

    @property
    def related_type(self) -> str:
        """Knowledge-question ``related_type`` for options of this stage."""
        return _RELATED_TYPES[self]

    @property
    def choice_column(self) -> str:
        """Ballot column that holds the chosen option for this stage."""
        return f"{self.related_type}_id"

    @property
    def next(self) -> "Stage | None":
        return Stage(self + 1) if self < Stage.PLANS else None

    @property
    def previous(self) -> "Stage | None":
        return Stage(self - 1) if self > Stage.ISSUES else None


_RELATED_TYPES = {
    Stage.ISSUES: "issue",
    Stage.APPROACHES: "approach",
    Stage.PLANS: "plan",
}


class StageSchedule(Protocol):
    """Anything carrying the six stage boundaries (ORM ``Vote``, schemas, test doubles)."""

    stage1_start: datetime | None
    stage1_end: datetime | None
    stage2_start: datetime | None
    stage2_end: datetime | None
    stage3_start: datetime | None
    stage3_end: datetime | None


@dataclass(frozen=True, slots=True)
class StageWindow:
    """Start/end boundaries of one stage, normalised to UTC."""

    stage: Stage
    start: datetime | None
    end: datetime | None

    @property
    def configured(self) -> bool:
        return self.start is not None


@dataclass(frozen=True, slots=True)
class Schedule:
    """Detached copy of a vote's stage boundaries."""

    stage1_start: datetime | None = None
    stage1_end: datetime | None = None
    stage2_start: datetime | None = None
    stage2_end: datetime | None = None
    stage3_start: datetime | None = None
    stage3_end: datetime | None = None

    @classmethod
    def of(cls, vote: StageSchedule) -> "Schedule":
        return cls(
            stage1_start=vote.stage1_start,
            stage1_end=vote.stage1_end,
            stage2_start=vote.stage2_start,
            stage2_end=vote.stage2_end,
            stage3_start=vote.stage3_start,
            stage3_end=vote.stage3_end,
        )


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a timestamp to an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def stage_window(vote: StageSchedule, stage: Stage | int) -> StageWindow:
    """Return the UTC window configured for ``stage``."""
    stage = Stage(stage)
    return StageWindow(
        stage=stage,
        start=as_utc(getattr(vote, f"stage{stage.value}_start")),
        end=as_utc(getattr(vote, f"stage{stage.value}_end")),
    )


def _is_active(vote: StageSchedule, stage: Stage, now: datetime) -> bool:
    window = stage_window(vote, stage)
    if window.start is None or now < window.start:
        return False
    if window.end is not None and now >= window.end:
        return False
    if stage.next is not None:
        next_start = stage_window(vote, stage.next).start
        if next_start is not None and now >= next_start:
            return False
    return True


def active_stage(vote: StageSchedule, now: datetime | None = None) -> Stage | None:
    """Return the stage currently open for voting, or None.

    A stage is active from its start until the earlier of its end and the next
    stage's start. A start without an end stays open until the next stage
    starts, or forever. If an overlapping configuration makes several stages
    qualify, the latest one wins.
    """
    current = as_utc(now) if now is not None else datetime.now(UTC)
    for stage in sorted(Stage, reverse=True):
        if _is_active(vote, stage, current):
            return stage
    return None


def stage_has_closed(vote: StageSchedule, stage: Stage | int, now: datetime | None = None) -> bool:
    """True once the stage's end boundary has passed (open-ended stages never close)."""
    current = as_utc(now) if now is not None else datetime.now(UTC)
    end = stage_window(vote, stage).end
    return end is not None and end <= current


def configured_stages(vote: StageSchedule) -> list[Stage]:
    """Stages that have a start boundary, in order."""
    return [stage for stage in Stage if stage_window(vote, stage).configured]


def all_stages_elapsed(vote: StageSchedule, now: datetime | None = None) -> bool:
    """True when at least one stage is configured and every configured stage has ended."""
    stages = configured_stages(vote)
    if not stages:
        return False
    return all(stage_has_closed(vote, stage, now) for stage in stages)


def stages_ended_between(vote: StageSchedule, since: datetime, until: datetime) -> list[Stage]:
    """Stages whose end boundary falls in the half-open interval ``(since, until]``."""
    lower = as_utc(since)
    upper = as_utc(until)
    ended: list[Stage] = []
    for stage in Stage:
        end = stage_window(vote, stage).end
        if end is not None and lower < end <= upper:  # type: ignore[operator]
            ended.append(stage)
    return ended
