"""create staged voting schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates users, populations, votes, the three option tables (issues,
approaches, plans), basic knowledge questions, ballots (user_votes) and
tally result snapshots (results).
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _vote_fk() -> sa.Column:
    return sa.Column("vote_id", UUID(as_uuid=True), sa.ForeignKey("votes.id", ondelete="CASCADE"), nullable=False)


def _option_columns() -> list[sa.Column]:
    return [
        _id_column(),
        _vote_fk(),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_winner", sa.Boolean, nullable=False, server_default="false"),
        *_timestamps(),
    ]


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        _id_column(),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="voter"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('admin', 'voter')", name="ck_users_role"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # --- populations ---
    op.create_table(
        "populations",
        _id_column(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_populations_name"),
    )

    # --- votes ---
    op.create_table(
        "votes",
        _id_column(),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        *[
            sa.Column(f"stage{n}_{edge}", sa.DateTime(timezone=True), nullable=True)
            for n in (1, 2, 3)
            for edge in ("start", "end")
        ],
        sa.Column("outcome", sa.Text, nullable=True),
        sa.Column("outcome_detail", sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('draft', 'open', 'closed')", name="ck_votes_status"),
        *[
            sa.CheckConstraint(
                f"stage{n}_start IS NULL OR stage{n}_end IS NULL OR stage{n}_start <= stage{n}_end",
                name=f"ck_votes_stage{n}_window",
            )
            for n in (1, 2, 3)
        ],
    )
    op.create_index("idx_votes_status", "votes", ["status"])

    # --- population assignments ---
    op.create_table(
        "vote_populations",
        sa.Column("vote_id", UUID(as_uuid=True), sa.ForeignKey("votes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "population_id",
            UUID(as_uuid=True),
            sa.ForeignKey("populations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )
    op.create_table(
        "user_populations",
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column(
            "population_id",
            UUID(as_uuid=True),
            sa.ForeignKey("populations.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # --- options ---
    op.create_table("issues", *_option_columns())
    op.create_index("idx_issues_vote_id", "issues", ["vote_id"])

    op.create_table(
        "approaches",
        *_option_columns(),
        sa.Column("issue_id", UUID(as_uuid=True), sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=False),
    )
    op.create_index("idx_approaches_vote_id", "approaches", ["vote_id"])
    op.create_index("idx_approaches_issue_id", "approaches", ["issue_id"])

    op.create_table(
        "plans",
        *_option_columns(),
        sa.Column(
            "approach_id",
            UUID(as_uuid=True),
            sa.ForeignKey("approaches.id", ondelete="CASCADE"),
            nullable=False,
        ),
    )
    op.create_index("idx_plans_vote_id", "plans", ["vote_id"])
    op.create_index("idx_plans_approach_id", "plans", ["approach_id"])

    # --- basic_knowledge_questions ---
    op.create_table(
        "basic_knowledge_questions",
        _id_column(),
        sa.Column("related_type", sa.String(20), nullable=False),
        sa.Column("related_id", UUID(as_uuid=True), nullable=False),
        sa.Column("question", sa.Text, nullable=False),
        sa.Column("options", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("correct_answer", sa.Text, nullable=True),
        *_timestamps(),
        sa.CheckConstraint("related_type IN ('issue', 'approach', 'plan')", name="ck_bkq_related_type"),
    )
    op.create_index("idx_bkq_related", "basic_knowledge_questions", ["related_type", "related_id"])

    # --- user_votes (ballots) ---
    op.create_table(
        "user_votes",
        _id_column(),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _vote_fk(),
        sa.Column("stage", sa.Integer, nullable=False),
        sa.Column("issue_id", UUID(as_uuid=True), sa.ForeignKey("issues.id", ondelete="CASCADE"), nullable=True),
        sa.Column(
            "approach_id",
            UUID(as_uuid=True),
            sa.ForeignKey("approaches.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("plan_id", UUID(as_uuid=True), sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=True),
        sa.Column("knowledge_score", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "vote_id", "stage", name="uq_user_votes_user_vote_stage"),
        sa.CheckConstraint("stage IN (1, 2, 3)", name="ck_user_votes_stage"),
        sa.CheckConstraint("knowledge_score >= 0", name="ck_user_votes_knowledge_score"),
        sa.CheckConstraint(
            "(stage = 1 AND issue_id IS NOT NULL AND approach_id IS NULL AND plan_id IS NULL)"
            " OR (stage = 2 AND approach_id IS NOT NULL AND issue_id IS NULL AND plan_id IS NULL)"
            " OR (stage = 3 AND plan_id IS NOT NULL AND issue_id IS NULL AND approach_id IS NULL)",
            name="ck_user_votes_single_choice",
        ),
    )
    op.create_index("idx_user_votes_vote_stage", "user_votes", ["vote_id", "stage"])

    # --- results (append-only tally snapshots) ---
    op.create_table(
        "results",
        _id_column(),
        _vote_fk(),
        sa.Column("stage", sa.Integer, nullable=False),
        sa.Column("choice_id", UUID(as_uuid=True), nullable=False),
        sa.Column("tally_run", sa.Integer, nullable=False),
        sa.Column("total_votes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("weighted_votes", sa.Float, nullable=False, server_default="0"),
        sa.Column("bkq0_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("bkq1_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("bkq2_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("bkq3_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_winner", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("vote_id", "stage", "choice_id", "tally_run", name="uq_results_run_choice"),
    )
    op.create_index("idx_results_vote_stage_run", "results", ["vote_id", "stage", "tally_run"])


def downgrade() -> None:
    op.drop_table("results")
    op.drop_table("user_votes")
    op.drop_table("basic_knowledge_questions")
    op.drop_table("plans")
    op.drop_table("approaches")
    op.drop_table("issues")
    op.drop_table("user_populations")
    op.drop_table("vote_populations")
    op.drop_table("votes")
    op.drop_table("populations")
    op.drop_table("users")
