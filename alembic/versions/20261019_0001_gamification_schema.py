"""gamification schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

OPEN_WHERE = sa.text("status IN ('pending', 'active')")


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("display_name", sa.String(length=120), nullable=True),
        sa.Column("workouts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("groups_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("friends_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "friendships",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("requester_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("addressee_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friendship_pair"),
    )
    op.create_index("ix_friendships_requester_id", "friendships", ["requester_id"])
    op.create_index("ix_friendships_addressee_id", "friendships", ["addressee_id"])

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="member"),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        sa.CheckConstraint("role in ('owner', 'admin', 'member')"),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])

    op.create_table(
        "workouts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("workout_date", sa.Date(), nullable=False),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("user_id", "workout_date", name="uq_workout_daily"),
    )
    op.create_index("ix_workouts_user_id", "workouts", ["user_id"])
    op.create_index("ix_workouts_workout_date", "workouts", ["workout_date"])

    op.create_table(
        "workout_reactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workout_id", sa.Integer(), sa.ForeignKey("workouts.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("emoji", sa.String(length=16), nullable=False, server_default="fire"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_workout_reactions_workout_id", "workout_reactions", ["workout_id"])

    op.create_table(
        "workout_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workout_id", sa.Integer(), sa.ForeignKey("workouts.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_workout_comments_workout_id", "workout_comments", ["workout_id"])

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("achievement_id", sa.String(length=40), nullable=False),
        sa.Column("progress_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unlocked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("unlocked_at", sa.DateTime(), nullable=True),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])

    op.create_table(
        "achievement_feed_posts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("achievement_id", sa.String(length=40), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_achievement_feed_posts_user_id", "achievement_feed_posts", ["user_id"])

    op.create_table(
        "leaderboard_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("scope", sa.String(length=40), nullable=False, server_default="global"),
        sa.Column("period", sa.String(length=7), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("user_id", "scope", "period", name="uq_snapshot_period"),
    )
    op.create_index("ix_leaderboard_snapshots_user_id", "leaderboard_snapshots", ["user_id"])

    op.create_table(
        "streak_freezes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("used_at", sa.Date(), nullable=False),
        sa.Column("month_year", sa.String(length=7), nullable=False),
        sa.UniqueConstraint("user_id", "month_year", name="uq_streak_freeze_month"),
    )
    op.create_index("ix_streak_freezes_user_id", "streak_freezes", ["user_id"])

    op.create_table(
        "group_competitions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group1_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("group2_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("pair_key", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("ends_at", sa.DateTime(), nullable=False),
        sa.Column("group1_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("group2_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("group1_id != group2_id"),
        sa.CheckConstraint("type in ('matchmaking', 'challenge')"),
        sa.CheckConstraint("status in ('pending', 'active', 'completed', 'cancelled')"),
    )
    op.create_index("ix_group_competitions_group1_id", "group_competitions", ["group1_id"])
    op.create_index("ix_group_competitions_group2_id", "group_competitions", ["group2_id"])
    op.create_index("ix_group_competitions_status", "group_competitions", ["status"])
    op.create_index("ix_group_competitions_ends_at", "group_competitions", ["ends_at"])
    op.create_index(
        "uq_competition_open_pair",
        "group_competitions",
        ["pair_key"],
        unique=True,
        postgresql_where=OPEN_WHERE,
        sqlite_where=OPEN_WHERE,
    )

    op.create_table(
        "group_matchmaking_queue",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False, unique=True),
        sa.Column("queued_by", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("queued_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_group_matchmaking_queue_queued_at", "group_matchmaking_queue", ["queued_at"])

    op.create_table(
        "competition_member_contributions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("competition_id", sa.Integer(), sa.ForeignKey("group_competitions.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id"), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("workouts_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("competition_id", "user_id", "group_id", name="uq_contribution_member"),
    )
    op.create_index(
        "ix_competition_member_contributions_competition_id", "competition_member_contributions", ["competition_id"]
    )
    op.create_index("ix_competition_member_contributions_user_id", "competition_member_contributions", ["user_id"])
    op.create_index("ix_competition_member_contributions_group_id", "competition_member_contributions", ["group_id"])

    op.create_table(
        "duels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("challenger_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("opponent_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("pair_key", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="workout_count"),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("challenger_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("opponent_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_id", sa.Integer(), sa.ForeignKey("profiles.id"), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("ends_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("challenger_id != opponent_id"),
        sa.CheckConstraint("type in ('streak', 'workout_count')"),
        sa.CheckConstraint("status in ('pending', 'active', 'completed', 'declined', 'cancelled')"),
        sa.CheckConstraint("duration_days > 0"),
    )
    op.create_index("ix_duels_challenger_id", "duels", ["challenger_id"])
    op.create_index("ix_duels_opponent_id", "duels", ["opponent_id"])
    op.create_index("ix_duels_status", "duels", ["status"])
    op.create_index(
        "uq_duel_open_pair",
        "duels",
        ["pair_key"],
        unique=True,
        postgresql_where=OPEN_WHERE,
        sqlite_where=OPEN_WHERE,
    )


def downgrade() -> None:
    for t in [
        "duels",
        "competition_member_contributions",
        "group_matchmaking_queue",
        "group_competitions",
        "streak_freezes",
        "leaderboard_snapshots",
        "achievement_feed_posts",
        "user_achievements",
        "workout_comments",
        "workout_reactions",
        "workouts",
        "group_members",
        "groups",
        "friendships",
        "profiles",
    ]:
        op.drop_table(t)
