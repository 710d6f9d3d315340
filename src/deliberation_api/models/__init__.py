"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from deliberation_api.models.ballot import Ballot
from deliberation_api.models.knowledge_question import KnowledgeQuestion
from deliberation_api.models.option import OPTION_MODELS, Approach, Issue, Plan
from deliberation_api.models.population import Population, UserPopulation, VotePopulation
from deliberation_api.models.result_snapshot import ResultSnapshot
from deliberation_api.models.user import User
from deliberation_api.models.vote import Vote, VoteStatus

__all__ = [
    "OPTION_MODELS",
    "Approach",
    "Ballot",
    "Issue",
    "KnowledgeQuestion",
    "Plan",
    "Population",
    "ResultSnapshot",
    "User",
    "UserPopulation",
    "Vote",
    "VotePopulation",
    "VoteStatus",
]
