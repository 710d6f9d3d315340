"""Knowledge weighting curves applied to ballots at tally time."""

import enum


class WeightingCurve(enum.StrEnum):
    """How a ballot's quiz result scales its weighted contribution."""

    LINEAR = "linear"
    ALL_OR_NOTHING = "all_or_nothing"


def knowledge_weight(
    knowledge_score: int | None,
    total_questions: int,
    curve: WeightingCurve | str = WeightingCurve.LINEAR,
) -> float:
    """Return the weight in ``[0.0, 1.0]`` contributed by one ballot.

    Options without questions contribute no knowledge weight; the raw vote is
    counted separately.
    """
    if total_questions <= 0:
        return 0.0
    correct = max(0, min(knowledge_score or 0, total_questions))
    if WeightingCurve(curve) is WeightingCurve.ALL_OR_NOTHING:
        return 1.0 if correct == total_questions else 0.0
    return correct / total_questions
