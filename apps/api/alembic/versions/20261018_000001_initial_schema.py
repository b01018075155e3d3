"""create lounge content pipeline schema

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOW = sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="viewer"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "creators",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("content_type", sa.String(), nullable=False, server_default="social"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_creators_username"), "creators", ["username"], unique=False)

    op.create_table(
        "creator_urls",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("normalized_url", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("creator_id", "platform", name="uq_creator_urls_creator_platform"),
    )
    op.create_index(op.f("ix_creator_urls_creator_id"), "creator_urls", ["creator_id"], unique=False)
    op.create_index(op.f("ix_creator_urls_platform"), "creator_urls", ["platform"], unique=False)
    op.create_index(op.f("ix_creator_urls_url"), "creator_urls", ["url"], unique=False)
    op.create_index(op.f("ix_creator_urls_normalized_url"), "creator_urls", ["normalized_url"], unique=False)

    op.create_table(
        "lounges",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("theme_description", sa.Text(), nullable=True),
        sa.Column("relevancy_threshold", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_lounges_name"), "lounges", ["name"], unique=False)

    op.create_table(
        "creator_lounges",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("lounge_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.ForeignKeyConstraint(["lounge_id"], ["lounges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("creator_id", "lounge_id", name="uq_creator_lounges_pair"),
    )
    op.create_index(op.f("ix_creator_lounges_creator_id"), "creator_lounges", ["creator_id"], unique=False)
    op.create_index(op.f("ix_creator_lounges_lounge_id"), "creator_lounges", ["lounge_id"], unique=False)

    op.create_table(
        "content",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("platform_content_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content_body", sa.Text(), nullable=True),
        sa.Column("url", sa.String(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("media_urls_json", sa.JSON(), nullable=True),
        sa.Column("engagement_json", sa.JSON(), nullable=True),
        sa.Column("reference_type", sa.String(), nullable=True),
        sa.Column("referenced_content_json", sa.JSON(), nullable=True),
        sa.Column("content_hash", sa.String(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("processing_status", sa.String(), nullable=False, server_default="processed"),
        sa.Column("relevancy_score", sa.Integer(), nullable=True),
        sa.Column("relevancy_reason", sa.Text(), nullable=True),
        sa.Column("relevancy_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("manually_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("manually_approved_by", sa.String(), nullable=True),
        sa.Column("manually_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["creator_id"], ["creators.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "platform_content_id", "creator_id", name="uq_content_identity"),
    )
    for column in (
        "creator_id",
        "platform",
        "published_at",
        "content_hash",
        "processing_status",
        "relevancy_checked_at",
        "manually_approved",
        "created_at",
    ):
        op.create_index(op.f(f"ix_content_{column}"), "content", [column], unique=False)

    op.create_table(
        "content_lounge_scores",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("content_id", sa.String(), nullable=False),
        sa.Column("lounge_id", sa.String(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["content_id"], ["content.id"]),
        sa.ForeignKeyConstraint(["lounge_id"], ["lounges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("content_id", "lounge_id", name="uq_content_lounge_scores_pair"),
    )
    op.create_index(op.f("ix_content_lounge_scores_content_id"), "content_lounge_scores", ["content_id"], unique=False)
    op.create_index(op.f("ix_content_lounge_scores_lounge_id"), "content_lounge_scores", ["lounge_id"], unique=False)

    op.create_table(
        "deleted_content",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("platform_content_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("deletion_reason", sa.String(), nullable=False, server_default="low_relevancy"),
        sa.Column("deleted_by", sa.String(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform_content_id", "platform", "creator_id", name="uq_deleted_content_identity"),
    )
    op.create_index(op.f("ix_deleted_content_creator_id"), "deleted_content", ["creator_id"], unique=False)

    op.create_table(
        "relevancy_corrections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("content_id", sa.String(), nullable=False),
        sa.Column("lounge_id", sa.String(), nullable=False),
        sa.Column("original_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("original_reason", sa.Text(), nullable=True),
        sa.Column("restored_by", sa.String(), nullable=True),
        sa.Column("content_snapshot_json", sa.JSON(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["content_id"], ["content.id"]),
        sa.ForeignKeyConstraint(["lounge_id"], ["lounges.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_relevancy_corrections_content_id"), "relevancy_corrections", ["content_id"], unique=False)
    op.create_index(op.f("ix_relevancy_corrections_lounge_id"), "relevancy_corrections", ["lounge_id"], unique=False)
    op.create_index(op.f("ix_relevancy_corrections_processed"), "relevancy_corrections", ["processed"], unique=False)
    op.create_index(op.f("ix_relevancy_corrections_created_at"), "relevancy_corrections", ["created_at"], unique=False)

    op.create_table(
        "prompt_adjustments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("lounge_id", sa.String(), nullable=False),
        sa.Column("adjustment_type", sa.String(), nullable=False),
        sa.Column("adjustment_text", sa.String(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("corrections_addressed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["lounge_id"], ["lounges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lounge_id", "adjustment_text", name="uq_prompt_adjustments_lounge_text"),
    )
    op.create_index(op.f("ix_prompt_adjustments_lounge_id"), "prompt_adjustments", ["lounge_id"], unique=False)
    op.create_index(op.f("ix_prompt_adjustments_approved"), "prompt_adjustments", ["approved"], unique=False)
    op.create_index(op.f("ix_prompt_adjustments_active"), "prompt_adjustments", ["active"], unique=False)
    op.create_index(op.f("ix_prompt_adjustments_created_at"), "prompt_adjustments", ["created_at"], unique=False)

    op.create_table(
        "relevancy_analysis_runs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("corrections_analyzed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("suggestions_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_lounges", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("analysis_summary_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_relevancy_analysis_runs_created_at"), "relevancy_analysis_runs", ["created_at"], unique=False)

    op.create_table(
        "brightdata_snapshots",
        sa.Column("snapshot_id", sa.String(), nullable=False),
        sa.Column("dataset_id", sa.String(), nullable=True),
        sa.Column("platform", sa.String(), nullable=False, server_default="linkedin"),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("creator_urls_json", sa.JSON(), nullable=True),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("poll_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("posts_retrieved", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("snapshot_id"),
    )
    op.create_index(op.f("ix_brightdata_snapshots_platform"), "brightdata_snapshots", ["platform"], unique=False)
    op.create_index(op.f("ix_brightdata_snapshots_status"), "brightdata_snapshots", ["status"], unique=False)
    op.create_index(op.f("ix_brightdata_snapshots_created_at"), "brightdata_snapshots", ["created_at"], unique=False)
    op.create_index(op.f("ix_brightdata_snapshots_next_check_at"), "brightdata_snapshots", ["next_check_at"], unique=False)

    op.create_table(
        "lounge_digest_subscriptions",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("lounge_id", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["lounge_id"], ["lounges.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "lounge_id", name="uq_lounge_digest_subscriptions_pair"),
    )
    op.create_index(op.f("ix_lounge_digest_subscriptions_user_id"), "lounge_digest_subscriptions", ["user_id"], unique=False)
    op.create_index(op.f("ix_lounge_digest_subscriptions_lounge_id"), "lounge_digest_subscriptions", ["lounge_id"], unique=False)
    op.create_index(op.f("ix_lounge_digest_subscriptions_is_active"), "lounge_digest_subscriptions", ["is_active"], unique=False)


def downgrade() -> None:
    for table in (
        "lounge_digest_subscriptions",
        "brightdata_snapshots",
        "relevancy_analysis_runs",
        "prompt_adjustments",
        "relevancy_corrections",
        "deleted_content",
        "content_lounge_scores",
        "content",
        "creator_lounges",
        "lounges",
        "creator_urls",
        "creators",
        "users",
    ):
        op.drop_table(table)
