"""Initial schema: collect sources/jobs/runs/tasks, ledger, type bindings, settings, content.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Collect sources
    op.create_table(
        "collect_sources",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("base_url", sa.String(500), nullable=False, unique=True),
        sa.Column("collect_type", sa.Integer, nullable=False, server_default=sa.text("2")),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
    )

    # Collect jobs
    op.create_table(
        "collect_jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("schedule", sa.String(100), nullable=False, server_default=""),
        sa.Column("collect_time", sa.Integer, nullable=False, server_default=sa.text("24")),
        sa.Column("interval_seconds", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("push_workers", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("push_interval_seconds", sa.Integer, nullable=False, server_default=sa.text("2")),
        sa.Column("max_workers", sa.Integer, nullable=False, server_default=sa.text("2")),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        *_timestamps(),
    )

    op.create_table(
        "collect_job_sources",
        sa.Column("job_id", sa.Integer, sa.ForeignKey("collect_jobs.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("collect_sources.id", ondelete="CASCADE"), primary_key=True),
        sa.UniqueConstraint("job_id", "source_id", name="uq_job_source"),
    )

    # Runs
    op.create_table(
        "collect_runs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Integer, sa.ForeignKey("collect_jobs.id", ondelete="SET NULL"), index=True),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("worker_id", sa.String(100), nullable=False, server_default=""),
        sa.Column("progress_page", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("progress_total_pages", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("pushed_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("error_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("message", sa.Text, nullable=False, server_default=""),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index("idx_run_status_updated", "collect_runs", ["status", "updated_at"])
    op.create_index("idx_run_job_created", "collect_runs", ["job_id", "created_at"])

    # Tasks
    op.create_table(
        "collect_tasks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("run_id", sa.Integer, sa.ForeignKey("collect_runs.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("collect_sources.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("current_page", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("total_pages", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("updated_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("error_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text, nullable=False, server_default=""),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.UniqueConstraint("run_id", "source_id", name="uq_task_run_source"),
    )
    op.create_index("idx_task_status_id", "collect_tasks", ["status", "id"])

    # Dedup ledger
    op.create_table(
        "collect_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.Integer, index=True),
        sa.Column("source_id", sa.Integer, nullable=False),
        sa.Column("remote_id", sa.String(100), nullable=False),
        sa.Column("local_id", sa.Integer),
        sa.Column("is_new", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("source_id", "remote_id", name="uq_record_source_remote"),
    )

    # Type bindings
    op.create_table(
        "collect_type_bindings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("collect_sources.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("remote_type_id", sa.Integer, nullable=False),
        sa.Column("remote_type_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("local_type_id", sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("source_id", "remote_type_id", name="uq_type_binding_source_remote"),
    )

    # Key/value settings
    op.create_table(
        "settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Local taxonomy and players
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(60), nullable=False),
        sa.Column("module", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        sa.Column("parent_id", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
    )
    op.create_index("idx_category_module_name", "categories", ["module", "name"])

    op.create_table(
        "players",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("from_key", sa.String(60), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False, server_default=""),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
    )

    # Videos
    op.create_table(
        "vods",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("type_id", sa.Integer, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("letter", sa.String(1), nullable=False, server_default=""),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        sa.Column("class_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("pic", sa.String(1024), nullable=False, server_default=""),
        sa.Column("actor", sa.String(1024), nullable=False, server_default=""),
        sa.Column("director", sa.String(255), nullable=False, server_default=""),
        sa.Column("writer", sa.String(255), nullable=False, server_default=""),
        sa.Column("remarks", sa.String(100), nullable=False, server_default=""),
        sa.Column("pubdate", sa.String(100), nullable=False, server_default=""),
        sa.Column("area", sa.String(60), nullable=False, server_default=""),
        sa.Column("lang", sa.String(60), nullable=False, server_default=""),
        sa.Column("year", sa.String(10), nullable=False, server_default=""),
        sa.Column("duration", sa.String(20), nullable=False, server_default=""),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("hits", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("up", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("down", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("score", sa.Float, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("idx_vod_name_type", "vods", ["name", "type_id"])

    op.create_table(
        "vod_sources",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vod_id", sa.Integer, sa.ForeignKey("vods.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("player_id", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("player_name", sa.String(60), nullable=False, server_default=""),
        sa.Column("sort", sa.Integer, nullable=False, server_default=sa.text("0")),
    )

    op.create_table(
        "vod_episodes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vod_id", sa.Integer, sa.ForeignKey("vods.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("source_id", sa.Integer, sa.ForeignKey("vod_sources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("episode_num", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("sort", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("source_id", "episode_num", name="uq_episode_source_num"),
    )

    # Articles
    op.create_table(
        "articles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("type_id", sa.Integer, nullable=False, index=True),
        sa.Column("type_pid", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sub", sa.String(255), nullable=False, server_default=""),
        sa.Column("letter", sa.String(1), nullable=False, server_default=""),
        sa.Column("pic", sa.String(1024), nullable=False, server_default=""),
        sa.Column("author", sa.String(255), nullable=False, server_default=""),
        sa.Column("source", sa.String(255), nullable=False, server_default=""),
        sa.Column("tag", sa.String(255), nullable=False, server_default=""),
        sa.Column("blurb", sa.String(255), nullable=False, server_default=""),
        sa.Column("remarks", sa.String(100), nullable=False, server_default=""),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column("jump_url", sa.String(255), nullable=False, server_default=""),
        sa.Column("level", sa.SmallInteger, nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.SmallInteger, nullable=False, server_default=sa.text("1")),
        sa.Column("hits", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("up", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("down", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("score", sa.Float, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("idx_article_name_type", "articles", ["name", "type_id"])


def downgrade() -> None:
    op.drop_table("articles")
    op.drop_table("vod_episodes")
    op.drop_table("vod_sources")
    op.drop_table("vods")
    op.drop_table("players")
    op.drop_table("categories")
    op.drop_table("settings")
    op.drop_table("collect_type_bindings")
    op.drop_table("collect_records")
    op.drop_table("collect_tasks")
    op.drop_table("collect_runs")
    op.drop_table("collect_job_sources")
    op.drop_table("collect_jobs")
    op.drop_table("collect_sources")
