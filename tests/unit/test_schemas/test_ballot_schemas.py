"""Tests for ballot request and response schemas."""

import uuid

import pytest
from pydantic import ValidationError

from deliberation_api.models import Ballot
from deliberation_api.schemas.ballot import BallotResponse, BallotSubmitRequest


class TestBallotSubmitRequest:
    def test_answers_keyed_by_question_id(self) -> None:
        question_id = uuid.uuid4()
        request = BallotSubmitRequest.model_validate(
            {"option_id": str(uuid.uuid4()), "answers": {str(question_id): "B"}}
        )
        assert request.answers == {question_id: "B"}

    def test_answers_default_empty(self) -> None:
        request = BallotSubmitRequest(option_id=uuid.uuid4())
        assert request.answers == {}

    def test_rejects_non_uuid_question_key(self) -> None:
        with pytest.raises(ValidationError):
            BallotSubmitRequest.model_validate({"option_id": str(uuid.uuid4()), "answers": {"q1": "B"}})

    def test_option_required(self) -> None:
        with pytest.raises(ValidationError):
            BallotSubmitRequest.model_validate({"answers": {}})


class TestBallotResponse:
    def test_from_orm_ballot(self) -> None:
        approach_id = uuid.uuid4()
        ballot = Ballot(
            id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            vote_id=uuid.uuid4(),
            stage=2,
            approach_id=approach_id,
            knowledge_score=3,
        )
        response = BallotResponse.model_validate(ballot)
        assert response.choice_id == approach_id
        assert response.knowledge_score == 3
