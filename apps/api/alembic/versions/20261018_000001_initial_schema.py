"""create initial schema

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


def _timestamps(updated: bool = True):
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("max_file_size_bytes", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("last_account_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["last_account_id"], ["accounts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "account_members",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "user_id", name="uq_account_members_account_user"),
    )
    op.create_index(op.f("ix_account_members_account_id"), "account_members", ["account_id"], unique=False)
    op.create_index(op.f("ix_account_members_user_id"), "account_members", ["user_id"], unique=False)

    op.create_table(
        "brand_contexts",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("value_proposition", sa.Text(), nullable=True),
        sa.Column("brand_voice_json", sa.JSON(), nullable=True),
        sa.Column("competitors_json", sa.JSON(), nullable=True),
        sa.Column("target_industries_json", sa.JSON(), nullable=True),
        sa.Column("pain_clusters_json", sa.JSON(), nullable=True),
        sa.Column("icp_personas_json", sa.JSON(), nullable=True),
        sa.Column("use_cases_json", sa.JSON(), nullable=True),
        sa.Column("playbook", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_brand_contexts_account_id"), "brand_contexts", ["account_id"], unique=True)

    op.create_table(
        "product_lines",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("value_proposition", sa.Text(), nullable=True),
        sa.Column("specific_icp_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_product_lines_account_id"), "product_lines", ["account_id"], unique=False)

    op.create_table(
        "assets",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("uploaded_by_id", sa.String(), nullable=True),
        sa.Column("storage_key", sa.String(), nullable=False),
        sa.Column("storage_url", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=True),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("funnel_stage", sa.String(), nullable=False),
        sa.Column("asset_type", sa.String(), nullable=True),
        sa.Column("icp_targets_json", sa.JSON(), nullable=True),
        sa.Column("pain_clusters_json", sa.JSON(), nullable=True),
        sa.Column("outreach_tip", sa.Text(), nullable=True),
        sa.Column("atomic_snippets_json", sa.JSON(), nullable=True),
        sa.Column("content_quality_score", sa.Integer(), nullable=True),
        sa.Column("applicable_industries_json", sa.JSON(), nullable=True),
        sa.Column("content_gaps_json", sa.JSON(), nullable=True),
        sa.Column("dominant_color", sa.String(), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("ai_model", sa.String(), nullable=True),
        sa.Column("prompt_version", sa.String(), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ai_confidence", sa.Float(), nullable=True),
        sa.Column("processing_run_id", sa.String(), nullable=True),
        sa.Column("processing_attempts", sa.Integer(), nullable=False),
        sa.Column("queue_job_id", sa.String(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["uploaded_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_assets_account_id"), "assets", ["account_id"], unique=False)
    op.create_index(op.f("ix_assets_uploaded_by_id"), "assets", ["uploaded_by_id"], unique=False)
    op.create_index(op.f("ix_assets_storage_key"), "assets", ["storage_key"], unique=False)
    op.create_index(op.f("ix_assets_funnel_stage"), "assets", ["funnel_stage"], unique=False)
    op.create_index(op.f("ix_assets_status"), "assets", ["status"], unique=False)

    op.create_table(
        "asset_product_lines",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("asset_id", sa.String(), nullable=False),
        sa.Column("product_line_id", sa.String(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_line_id"], ["product_lines.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("asset_id", "product_line_id", name="uq_asset_product_lines_pair"),
    )
    op.create_index(op.f("ix_asset_product_lines_asset_id"), "asset_product_lines", ["asset_id"], unique=False)
    op.create_index(op.f("ix_asset_product_lines_product_line_id"), "asset_product_lines", ["product_line_id"], unique=False)

    op.create_table(
        "transcription_jobs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("asset_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("error", sa.String(length=1000), nullable=True),
        sa.Column("queue_job_id", sa.String(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("first_ten_minutes_only", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transcription_jobs_asset_id"), "transcription_jobs", ["asset_id"], unique=True)
    op.create_index(op.f("ix_transcription_jobs_status"), "transcription_jobs", ["status"], unique=False)
    op.create_index(op.f("ix_transcription_jobs_queue_job_id"), "transcription_jobs", ["queue_job_id"], unique=False)

    op.create_table(
        "transcript_segments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("asset_id", sa.String(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("start_time", sa.Float(), nullable=False),
        sa.Column("end_time", sa.Float(), nullable=False),
        sa.Column("speaker", sa.String(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["asset_id"], ["assets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_transcript_segments_asset_id"), "transcript_segments", ["asset_id"], unique=False)
    op.create_index(op.f("ix_transcript_segments_start_time"), "transcript_segments", ["start_time"], unique=False)

    op.create_table(
        "login_codes",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("code_hash", sa.String(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_login_codes_email"), "login_codes", ["email"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_login_codes_email"), table_name="login_codes")
    op.drop_table("login_codes")
    op.drop_index(op.f("ix_transcript_segments_start_time"), table_name="transcript_segments")
    op.drop_index(op.f("ix_transcript_segments_asset_id"), table_name="transcript_segments")
    op.drop_table("transcript_segments")
    op.drop_index(op.f("ix_transcription_jobs_queue_job_id"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_status"), table_name="transcription_jobs")
    op.drop_index(op.f("ix_transcription_jobs_asset_id"), table_name="transcription_jobs")
    op.drop_table("transcription_jobs")
    op.drop_index(op.f("ix_asset_product_lines_product_line_id"), table_name="asset_product_lines")
    op.drop_index(op.f("ix_asset_product_lines_asset_id"), table_name="asset_product_lines")
    op.drop_table("asset_product_lines")
    op.drop_index(op.f("ix_assets_status"), table_name="assets")
    op.drop_index(op.f("ix_assets_funnel_stage"), table_name="assets")
    op.drop_index(op.f("ix_assets_storage_key"), table_name="assets")
    op.drop_index(op.f("ix_assets_uploaded_by_id"), table_name="assets")
    op.drop_index(op.f("ix_assets_account_id"), table_name="assets")
    op.drop_table("assets")
    op.drop_index(op.f("ix_product_lines_account_id"), table_name="product_lines")
    op.drop_table("product_lines")
    op.drop_index(op.f("ix_brand_contexts_account_id"), table_name="brand_contexts")
    op.drop_table("brand_contexts")
    op.drop_index(op.f("ix_account_members_user_id"), table_name="account_members")
    op.drop_index(op.f("ix_account_members_account_id"), table_name="account_members")
    op.drop_table("account_members")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
    op.drop_table("accounts")
