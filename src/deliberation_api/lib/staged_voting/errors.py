"""Error types raised by the staged-voting engine.

Every error carries a stable machine-readable ``code`` which the API layer
returns alongside the human-readable message.
"""


class VotingError(Exception):
    """Base class for staged-voting errors."""

    code = "voting_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class VoteNotFound(VotingError):
    """Raised when a vote id does not resolve to a vote."""

    code = "vote_not_found"


class StageNotActive(VotingError):
    """Raised when a ballot targets a stage outside its active window."""

    code = "stage_not_active"


class IncompleteQuiz(VotingError):
    """Raised when a ballot leaves knowledge questions for the chosen option unanswered."""

    code = "incomplete_quiz"

    def __init__(self, message: str, missing_question_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_question_ids = missing_question_ids or []


class IneligibleOption(VotingError):
    """Raised when the chosen option is not in the stage's resolved option set."""

    code = "ineligible_option"


class NoWinnerYet(VotingError):
    """Raised when a later stage requires a predecessor winner that has not been tallied."""

    code = "no_winner_yet"


class MalformedAnswerKey(VotingError):
    """Raised by the strict answer-key parser; the scorer absorbs it as "incorrect"."""

    code = "malformed_answer_key"


class VoterNotEligible(VotingError):
    """Raised when the voter shares no population with the vote."""

    code = "voter_not_eligible"


class InvalidStatusTransition(VotingError):
    """Raised for a vote status change the lifecycle does not allow."""

    code = "invalid_status_transition"


class VoteNotReady(VotingError):
    """Raised when a draft vote fails the requirements for opening."""

    code = "vote_not_ready"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []


class StoreUnavailable(VotingError):
    """Raised for transient relational-store failures. Safe to retry."""

    code = "store_unavailable"


class TallyFailed(VotingError):
    """Raised when the store rejects a tally run; carries the raw store message."""

    code = "tally_failed"
