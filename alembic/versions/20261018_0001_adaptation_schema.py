"""adaptation engine schema"""

from alembic import op
import sqlalchemy as sa


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "plans",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("version >= 0"),
    )
    op.create_index("ix_plans_athlete_id", "plans", ["athlete_id"])

    op.create_table(
        "plan_blocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plan_id", sa.String(length=36), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("phase", sa.String(length=16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.CheckConstraint("phase in ('base', 'build', 'peak', 'taper')"),
    )
    op.create_index("ix_plan_blocks_plan_id", "plan_blocks", ["plan_id"])

    op.create_table(
        "plan_sessions",
        sa.Column("session_id", sa.String(length=64), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=36), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("sport", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=160), nullable=False, server_default=""),
        sa.Column("planned_duration_min", sa.Integer(), nullable=False),
        sa.Column("planned_load", sa.Float(), nullable=True),
        sa.Column("planned_zone_primary", sa.String(length=4), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="planned"),
        sa.Column("priority", sa.String(length=16), nullable=True),
        sa.CheckConstraint("planned_duration_min >= 0"),
        sa.CheckConstraint("status in ('planned', 'completed', 'missed', 'partial')"),
    )
    op.create_index("ix_plan_sessions_athlete_id", "plan_sessions", ["athlete_id"])
    op.create_index("ix_plan_sessions_plan_id", "plan_sessions", ["plan_id"])
    op.create_index("ix_plan_sessions_session_date", "plan_sessions", ["session_date"])

    op.create_table(
        "readiness_daily",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("readiness_date", sa.Date(), nullable=False),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("band", sa.String(length=8), nullable=False),
        sa.Column("drivers", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("flags", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("data_quality", sa.JSON(), nullable=False, server_default="{}"),
        sa.UniqueConstraint("athlete_id", "readiness_date", name="uq_readiness_daily"),
        sa.CheckConstraint("band in ('green', 'amber', 'red')"),
    )
    op.create_index("ix_readiness_daily_athlete_id", "readiness_daily", ["athlete_id"])

    op.create_table(
        "load_daily",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("load_date", sa.Date(), nullable=False),
        sa.Column("day_load", sa.Float(), nullable=True),
        sa.Column("ctl", sa.Float(), nullable=True),
        sa.Column("atl", sa.Float(), nullable=True),
        sa.Column("monotony", sa.Float(), nullable=True),
        sa.Column("ramp_rate_pct", sa.Float(), nullable=True),
        sa.UniqueConstraint("athlete_id", "load_date", name="uq_load_daily"),
    )
    op.create_index("ix_load_daily_athlete_id", "load_daily", ["athlete_id"])

    op.create_table(
        "blockers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("blocker_type", sa.String(length=40), nullable=False),
        sa.Column("plan_impact", sa.String(length=40), nullable=False, server_default=""),
    )
    op.create_index("ix_blockers_athlete_id", "blockers", ["athlete_id"])

    op.create_table(
        "adaptation_preview_cache",
        sa.Column("adaptation_id", sa.String(length=36), primary_key=True),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=36), nullable=False),
        sa.Column("scope", sa.String(length=16), nullable=False),
        sa.Column("impact_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("impact_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason_code", sa.String(length=32), nullable=False),
        sa.Column("triggers", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("changes_json", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("plan_version_before", sa.Integer(), nullable=False),
        sa.Column("rationale_text", sa.Text(), nullable=False),
        sa.Column("driver_attribution", sa.JSON(), nullable=True),
        sa.Column("data_snapshot", sa.JSON(), nullable=True),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("idempotency_key", sa.String(length=36), nullable=True),
        sa.Column("explainability_id", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("athlete_id", "checksum", name="uq_preview_checksum"),
        sa.UniqueConstraint("athlete_id", "idempotency_key", "checksum", name="uq_preview_idempotency"),
    )
    op.create_index("ix_preview_expires_at", "adaptation_preview_cache", ["expires_at"])

    op.create_table(
        "adaptation_decisions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "adaptation_id",
            sa.String(length=36),
            sa.ForeignKey("adaptation_preview_cache.adaptation_id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("athlete_id", sa.String(length=64), nullable=False),
        sa.Column("plan_id", sa.String(length=36), nullable=False),
        sa.Column("decision", sa.String(length=16), nullable=False),
        sa.Column("final_changes", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("plan_version_before", sa.Integer(), nullable=False),
        sa.Column("plan_version_after", sa.Integer(), nullable=True),
        sa.Column("rationale_text", sa.Text(), nullable=False),
        sa.Column("driver_attribution", sa.JSON(), nullable=True),
        sa.Column("explainability_id", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("decision in ('accepted', 'modified', 'rejected')"),
    )
    op.create_index("ix_adaptation_decisions_athlete_id", "adaptation_decisions", ["athlete_id"])


def downgrade() -> None:
    for table in [
        "adaptation_decisions","adaptation_preview_cache","blockers","load_daily","readiness_daily","plan_sessions","plan_blocks","plans",
    ]:
        op.drop_table(table)
