"""Initial schema — applicants, loan_products, matches, audit_log.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("batch_tag", sa.String(100)),
        sa.Column("source_module", sa.String(100)),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text())),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_audit_log"),
    )
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])
    op.create_index("ix_audit_log_batch_tag", "audit_log", ["batch_tag"])

    op.create_table(
        "applicants",
        sa.Column("external_id", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("monthly_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("credit_score", sa.Integer(), nullable=False),
        sa.Column("employment_status", sa.String(20), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("batch_tag", sa.String(100)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_applicants"),
        sa.UniqueConstraint("external_id", name="uq_applicants_external_id"),
        sa.CheckConstraint("monthly_income >= 0", name="ck_applicants_income_non_negative"),
        sa.CheckConstraint("credit_score BETWEEN 300 AND 900", name="ck_applicants_credit_score_range"),
        sa.CheckConstraint("age BETWEEN 18 AND 120", name="ck_applicants_age_range"),
    )
    op.create_index("ix_applicants_credit_score", "applicants", ["credit_score"])
    op.create_index("ix_applicants_batch_tag", "applicants", ["batch_tag"])

    op.create_table(
        "loan_products",
        sa.Column("provider_name", sa.String(200), nullable=False),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("product_type", sa.String(20), nullable=False, server_default="personal"),
        sa.Column("interest_rate_min", sa.Numeric(5, 2), nullable=False),
        sa.Column("interest_rate_max", sa.Numeric(5, 2), nullable=False),
        sa.Column("loan_amount_min", sa.Numeric(14, 2), nullable=False),
        sa.Column("loan_amount_max", sa.Numeric(14, 2), nullable=False),
        sa.Column("tenure_min_months", sa.Integer(), nullable=False),
        sa.Column("tenure_max_months", sa.Integer(), nullable=False),
        sa.Column("min_monthly_income", sa.Numeric(12, 2), nullable=False),
        sa.Column("min_credit_score", sa.Integer(), nullable=False),
        sa.Column("max_credit_score", sa.Integer()),
        sa.Column("min_age", sa.Integer(), nullable=False),
        sa.Column("max_age", sa.Integer(), nullable=False),
        sa.Column(
            "accepted_employment",
            postgresql.ARRAY(sa.String(20)),
            nullable=False,
            server_default="{}",
            comment="Empty array means every employment status is accepted",
        ),
        sa.Column("processing_fee_percent", sa.Numeric(5, 2)),
        sa.Column("source_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_loan_products"),
        sa.UniqueConstraint("provider_name", "product_name", name="uq_loan_products_provider_name_product_name"),
        sa.CheckConstraint("interest_rate_max >= interest_rate_min", name="ck_loan_products_interest_rate_range"),
        sa.CheckConstraint("loan_amount_max >= loan_amount_min", name="ck_loan_products_loan_amount_range"),
        sa.CheckConstraint("tenure_max_months >= tenure_min_months", name="ck_loan_products_tenure_range"),
        sa.CheckConstraint("max_age >= min_age", name="ck_loan_products_age_range"),
        sa.CheckConstraint(
            "max_credit_score IS NULL OR max_credit_score >= min_credit_score",
            name="ck_loan_products_credit_score_range",
        ),
    )
    op.create_index("ix_loan_products_min_monthly_income", "loan_products", ["min_monthly_income"])
    op.create_index("ix_loan_products_min_credit_score", "loan_products", ["min_credit_score"])
    op.create_index("ix_loan_products_is_active", "loan_products", ["is_active"])

    # ── Matches (FK to applicants + loan_products) ─────────────────────

    op.create_table(
        "matches",
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("match_score", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("match_source", sa.String(20), nullable=False, server_default="llm_check"),
        sa.Column("income_eligible", sa.Boolean(), nullable=False),
        sa.Column("credit_score_eligible", sa.Boolean(), nullable=False),
        sa.Column("age_eligible", sa.Boolean(), nullable=False),
        sa.Column("employment_eligible", sa.Boolean(), nullable=False),
        sa.Column("llm_analysis", sa.Text()),
        sa.Column("llm_confidence", sa.Float()),
        sa.Column("batch_tag", sa.String(100)),
        sa.Column(
            "notified_at",
            sa.DateTime(timezone=True),
            comment="Written by the notification collaborator only",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_matches"),
        sa.ForeignKeyConstraint(
            ["applicant_id"], ["applicants.id"], ondelete="CASCADE", name="fk_matches_applicant_id_applicants"
        ),
        sa.ForeignKeyConstraint(
            ["product_id"], ["loan_products.id"], ondelete="CASCADE", name="fk_matches_product_id_loan_products"
        ),
        sa.UniqueConstraint("applicant_id", "product_id", name="uq_matches_applicant_id_product_id"),
    )
    op.create_index("ix_matches_applicant_id", "matches", ["applicant_id"])
    op.create_index("ix_matches_product_id", "matches", ["product_id"])
    op.create_index("ix_matches_status", "matches", ["status"])
    op.create_index("ix_matches_batch_tag", "matches", ["batch_tag"])
    # Pending-notification scan
    op.create_index(
        "ix_matches_pending_notification",
        "matches",
        ["status"],
        postgresql_where=sa.text("notified_at IS NULL"),
    )


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("matches")
    op.drop_table("loan_products")
    op.drop_table("applicants")
    op.drop_table("audit_log")
