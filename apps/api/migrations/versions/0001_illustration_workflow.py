"""illustration workflow: projects, characters, pages

Revision ID: 0001_illustration_workflow
Revises:
Create Date: 2026-10-16
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_illustration_workflow"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("author_name", sa.Text(), nullable=True),
        sa.Column("author_email", sa.Text(), nullable=True),
        sa.Column("author_phone", sa.Text(), nullable=True),
        sa.Column("review_token", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("character_send_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("illustration_send_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("style_reference_page_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_projects_review_token", "projects", ["review_token"], unique=True)
    op.create_index("ix_projects_status", "projects", ["status"], unique=False)

    op.create_table(
        "characters",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("project_id", sa.Text(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_main", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("sketch_url", sa.Text(), nullable=True),
        sa.Column("customer_image_url", sa.Text(), nullable=True),
        sa.Column("customer_sketch_url", sa.Text(), nullable=True),
        sa.Column("feedback_notes", sa.Text(), nullable=True),
        sa.Column("feedback_history_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_resolved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_characters_project_id", "characters", ["project_id"], unique=False)

    op.create_table(
        "pages",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("project_id", sa.Text(), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=False),
        sa.Column("story_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("scene_description", sa.Text(), nullable=True),
        sa.Column("character_ids_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("illustration_url", sa.Text(), nullable=True),
        sa.Column("original_illustration_url", sa.Text(), nullable=True),
        sa.Column("sketch_url", sa.Text(), nullable=True),
        sa.Column("customer_illustration_url", sa.Text(), nullable=True),
        sa.Column("customer_sketch_url", sa.Text(), nullable=True),
        sa.Column("feedback_notes", sa.Text(), nullable=True),
        sa.Column("feedback_history_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("is_resolved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("admin_reply", sa.Text(), nullable=True),
        sa.Column("admin_reply_at", sa.Text(), nullable=True),
        sa.Column("admin_reply_type", sa.Text(), nullable=True),
        sa.Column("conversation_thread_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.UniqueConstraint("project_id", "page_number", name="uq_pages_project_id_page_number"),
    )
    op.create_index("ix_pages_project_id", "pages", ["project_id"], unique=False)

    # one main character per project
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_characters_main_per_project "
        "ON characters(project_id) WHERE is_main = 1;"
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ux_characters_main_per_project;")
    op.drop_index("ix_pages_project_id", table_name="pages")
    op.drop_table("pages")
    op.drop_index("ix_characters_project_id", table_name="characters")
    op.drop_table("characters")
    op.drop_index("ix_projects_status", table_name="projects")
    op.drop_index("ix_projects_review_token", table_name="projects")
    op.drop_table("projects")
