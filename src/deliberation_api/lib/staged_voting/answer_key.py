"""Knowledge-quiz answer keys and scoring.

A question's correct-answer marker has been stored in several shapes over
time: a literal string, a numeric index into the choices, a JSON array of
acceptable strings, or a JSON-encoded single string. The marker is
classified once, when the question is loaded, into an ``AnswerKey``; scoring
then dispatches on the tag instead of re-sniffing the raw value.
"""

import enum
import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from deliberation_api.lib.staged_voting.errors import MalformedAnswerKey

_DIGITS = re.compile(r"^\d+$")


class AnswerKeyKind(enum.StrEnum):
    """How a stored correct-answer marker is interpreted."""

    ACCEPTED_LIST = "accepted_list"
    INDEX = "index"
    LITERAL = "literal"
    MALFORMED = "malformed"


@dataclass(frozen=True, slots=True)
class AnswerKey:
    """Classified correct-answer marker."""

    kind: AnswerKeyKind
    accepted: tuple[str, ...] = ()
    index: int | None = None
    raw: Any = None


def _fold(value: object) -> str:
    return str(value).strip().lower()


def _from_sequence(values: Iterable[object], raw: Any) -> AnswerKey:
    accepted = tuple(_fold(v) for v in values if v is not None and str(v).strip())
    return AnswerKey(kind=AnswerKeyKind.ACCEPTED_LIST, accepted=accepted, raw=raw)


def parse_answer_key(raw: Any) -> AnswerKey:
    """Classify a raw correct-answer marker.

    Raises:
        MalformedAnswerKey: If the marker is empty or cannot be interpreted.
    """
    if raw is None or isinstance(raw, bool):
        raise MalformedAnswerKey(f"Unsupported answer key: {raw!r}")
    if isinstance(raw, (list, tuple)):
        return _from_sequence(raw, raw)
    if isinstance(raw, int):
        return AnswerKey(kind=AnswerKeyKind.INDEX, index=raw, raw=raw)
    if isinstance(raw, float):
        if not raw.is_integer():
            raise MalformedAnswerKey(f"Non-integral answer index: {raw!r}")
        return AnswerKey(kind=AnswerKeyKind.INDEX, index=int(raw), raw=raw)
    if not isinstance(raw, str):
        raise MalformedAnswerKey(f"Unsupported answer key type: {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise MalformedAnswerKey("Empty answer key")

    if (text.startswith("[") and text.endswith("]")) or (text.startswith('"') and text.endswith('"')):
        try:
            decoded = json.loads(text)
        except ValueError as exc:
            raise MalformedAnswerKey(f"Answer key is not valid JSON: {text!r}") from exc
        if isinstance(decoded, list):
            return _from_sequence(decoded, raw)
        if isinstance(decoded, str) and decoded.strip():
            return AnswerKey(kind=AnswerKeyKind.LITERAL, accepted=(_fold(decoded),), raw=raw)
        raise MalformedAnswerKey(f"Unsupported JSON answer key: {text!r}")

    if _DIGITS.match(text):
        return AnswerKey(kind=AnswerKeyKind.INDEX, index=int(text), raw=raw)

    return AnswerKey(kind=AnswerKeyKind.LITERAL, accepted=(_fold(text),), raw=raw)


def classify_answer_key(raw: Any, *, question_id: object = None) -> AnswerKey:
    """Like ``parse_answer_key`` but never raises; malformed markers are logged."""
    try:
        return parse_answer_key(raw)
    except MalformedAnswerKey as exc:
        logger.warning("Malformed answer key on question {}: {}", question_id, exc.message)
        return AnswerKey(kind=AnswerKeyKind.MALFORMED, raw=raw)


def normalize_choices(raw: Any) -> list[str]:
    """Coerce stored answer choices into an ordered list of strings."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return [str(item) for item in raw]
    if isinstance(raw, str):
        text = raw.strip()
        try:
            decoded = json.loads(text)
        except ValueError:
            if "," in text:
                return [part.strip() for part in text.split(",")]
            return [text]
        if isinstance(decoded, list):
            return [str(item) for item in decoded]
        return [str(decoded)]
    return [str(raw)]


def is_correct(
    key: AnswerKey,
    choices: Sequence[str],
    submitted: str | None,
    *,
    lenient_option_match: bool = True,
) -> bool:
    """Score one submitted answer against a classified answer key.

    Comparisons are case-insensitive and ignore surrounding whitespace. A
    literal key that does not match still accepts a submission equal to one of
    the configured choices when ``lenient_option_match`` is set; this mirrors
    legacy data where the key and the choices drifted apart. A digit-string
    index past the end of the choices is treated the same way.
    """
    if submitted is None or not str(submitted).strip():
        return False
    selected = _fold(submitted)

    match key.kind:
        case AnswerKeyKind.ACCEPTED_LIST:
            return selected in key.accepted
        case AnswerKeyKind.INDEX:
            if key.index is None:
                return False
            if 0 <= key.index < len(choices):
                return _fold(choices[key.index]) == selected
            if selected in {str(key.index), _fold(key.raw)}:
                return True
            # Digit strings past the end of the choices behave like literal markers
            if isinstance(key.raw, str) and lenient_option_match and choices:
                return selected in {_fold(choice) for choice in choices}
            return False
        case AnswerKeyKind.LITERAL:
            if selected in key.accepted:
                return True
            if lenient_option_match and choices:
                return selected in {_fold(choice) for choice in choices}
            return False
        case _:
            return False


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    """A knowledge question with its answer key already classified."""

    id: str
    related_id: str
    choices: tuple[str, ...]
    key: AnswerKey
    text: str = field(default="", compare=False)

    @classmethod
    def from_record(cls, record: Any) -> "QuizQuestion":
        """Build from any object exposing ``id``, ``related_id``, ``question``, ``options``, ``correct_answer``."""
        return cls(
            id=str(record.id),
            related_id=str(record.related_id),
            choices=tuple(normalize_choices(record.options)),
            key=classify_answer_key(record.correct_answer, question_id=record.id),
            text=record.question or "",
        )


def score_answers(
    questions: Sequence[QuizQuestion],
    answers: Mapping[str, str | None],
    *,
    lenient_option_match: bool = True,
) -> int:
    """Count correctly answered questions. ``answers`` is keyed by question id string."""
    return sum(
        1
        for question in questions
        if is_correct(
            question.key,
            question.choices,
            answers.get(question.id),
            lenient_option_match=lenient_option_match,
        )
    )


def missing_answers(questions: Sequence[QuizQuestion], answers: Mapping[str, str | None]) -> list[str]:
    """Ids of questions without a non-blank answer, in question order."""
    return [q.id for q in questions if answers.get(q.id) is None or not str(answers.get(q.id)).strip()]


def is_well_formed(question_text: str | None, raw_choices: Any, raw_answer: Any) -> bool:
    """Check the minimum shape a question needs before its vote may open."""
    has_text = bool(question_text and question_text.strip())
    has_choices = isinstance(raw_choices, (list, tuple)) and len(raw_choices) >= 2
    has_answer = raw_answer is not None and bool(str(raw_answer).strip())
    return has_text and has_choices and has_answer
