"""Create cluster_cache and cluster_definitions

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

cluster_cache rows are overwritten by key on every write and are only
read while younger than the cache TTL. cluster_definitions rows are never
deleted by the application.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── cluster_cache ─────────────────────────────────
    op.create_table(
        "cluster_cache",
        sa.Column("cache_key", sa.String(512), primary_key=True),
        sa.Column("payload", sa.Text(), nullable=False,
                  comment="JSON array of clusters, each an array of GeoJSON features"),
        sa.Column("request_params", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_cluster_cache_created_at", "cluster_cache", ["created_at"])

    # ── cluster_definitions ───────────────────────────
    op.create_table(
        "cluster_definitions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("stable_key", sa.String(255), unique=True, nullable=False),
        sa.Column("slug", sa.String(255), unique=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("strongest_event_id", sa.String(128), nullable=False),
        sa.Column("event_ids", JSONB(), nullable=False),
        sa.Column("event_count", sa.Integer(), nullable=False),
        sa.Column("max_magnitude", sa.Float(), nullable=False),
        sa.Column("min_magnitude", sa.Float(), nullable=True),
        sa.Column("mean_magnitude", sa.Float(), nullable=True),
        sa.Column("start_time_ms", sa.BigInteger(), nullable=False),
        sa.Column("end_time_ms", sa.BigInteger(), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=True),
        sa.Column("location_name", sa.Text(), nullable=True),
        sa.Column("centroid_lat", sa.Float(), nullable=True),
        sa.Column("centroid_lon", sa.Float(), nullable=True),
        sa.Column("radius_km", sa.Float(), server_default="0"),
        sa.Column("depth_range", sa.String(64), nullable=True),
        sa.Column("significance_score", sa.Float(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_cluster_definitions_strongest_event_id", "cluster_definitions", ["strongest_event_id"]
    )
    op.create_index("ix_cluster_definitions_max_magnitude", "cluster_definitions", ["max_magnitude"])
    op.create_index("ix_cluster_definitions_start_time_ms", "cluster_definitions", ["start_time_ms"])
    op.create_index(
        "ix_cluster_definitions_significance_score", "cluster_definitions", ["significance_score"]
    )
    op.create_index("ix_cluster_definitions_updated_at", "cluster_definitions", ["updated_at"])


def downgrade() -> None:
    op.drop_table("cluster_definitions")
    op.drop_table("cluster_cache")
