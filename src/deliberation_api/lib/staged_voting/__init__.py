"""Staged-voting engine library: stage resolution, quiz scoring, weighting, tallying.

Public API:
    - Stage, active_stage: which of the three stages is open at a moment
    - AnswerKey, classify_answer_key, is_correct, score_answers: knowledge quiz scoring
    - WeightingCurve, knowledge_weight: ballot weight from quiz correctness
    - compute_tally: rank options by weighted votes and pick a single winner
    - VotingError and subclasses: domain errors with stable codes
"""

from deliberation_api.lib.staged_voting.answer_key import (
    AnswerKey,
    AnswerKeyKind,
    QuizQuestion,
    classify_answer_key,
    is_correct,
    is_well_formed,
    missing_answers,
    normalize_choices,
    parse_answer_key,
    score_answers,
)
from deliberation_api.lib.staged_voting.errors import (
    IncompleteQuiz,
    IneligibleOption,
    InvalidStatusTransition,
    MalformedAnswerKey,
    NoWinnerYet,
    StageNotActive,
    StoreUnavailable,
    TallyFailed,
    VoteNotFound,
    VoteNotReady,
    VoterNotEligible,
    VotingError,
)
from deliberation_api.lib.staged_voting.stages import (
    Schedule,
    Stage,
    StageSchedule,
    StageWindow,
    active_stage,
    all_stages_elapsed,
    as_utc,
    configured_stages,
    stage_has_closed,
    stage_window,
    stages_ended_between,
)
from deliberation_api.lib.staged_voting.tally import (
    BallotRecord,
    OptionRef,
    OptionTally,
    compute_tally,
    winner_of,
)
from deliberation_api.lib.staged_voting.weighting import WeightingCurve, knowledge_weight

__all__ = [
    "AnswerKey",
    "AnswerKeyKind",
    "BallotRecord",
    "IncompleteQuiz",
    "IneligibleOption",
    "InvalidStatusTransition",
    "MalformedAnswerKey",
    "NoWinnerYet",
    "OptionRef",
    "OptionTally",
    "QuizQuestion",
    "Schedule",
    "Stage",
    "StageNotActive",
    "StageSchedule",
    "StageWindow",
    "StoreUnavailable",
    "TallyFailed",
    "VoteNotFound",
    "VoteNotReady",
    "VoterNotEligible",
    "VotingError",
    "WeightingCurve",
    "active_stage",
    "all_stages_elapsed",
    "as_utc",
    "classify_answer_key",
    "compute_tally",
    "configured_stages",
    "is_correct",
    "is_well_formed",
    "knowledge_weight",
    "missing_answers",
    "normalize_choices",
    "parse_answer_key",
    "score_answers",
    "stage_has_closed",
    "stage_window",
    "stages_ended_between",
    "winner_of",
]
