"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), primary_key=True),
        *_timestamps(),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('sex', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('state', sa.Text(), nullable=True),
        sa.Column('country', sa.Text(), nullable=True),
        sa.Column('measurement_preference', sa.Text(), server_default='metric', nullable=False),
        sa.Column('subscription_tier', sa.Text(), server_default='free', nullable=False),
        sa.Column('strava_id', sa.BigInteger(), nullable=True),
        sa.Column('strava_access_token', sa.Text(), nullable=True),
        sa.Column('strava_refresh_token', sa.Text(), nullable=True),
        sa.Column('strava_token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('strava_connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('strava_scope', sa.Text(), nullable=True),
        sa.Column('last_strava_sync', sa.DateTime(timezone=True), nullable=True),
        sa.Column('strava_follower_count', sa.Integer(), nullable=True),
        sa.Column('strava_friend_count', sa.Integer(), nullable=True),
        sa.Column('ftp', sa.Integer(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('strava_premium', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('strava_summit', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('strava_created_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email', name='uq_user_email'),
        sa.UniqueConstraint('strava_id', name='uq_user_strava_id'),
    )

    op.create_table(
        'gear',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('strava_id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('brand', sa.Text(), nullable=True),
        sa.Column('model', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('frame_type', sa.Integer(), nullable=True),
        sa.Column('distance', sa.Float(), server_default='0', nullable=False),
        sa.Column('primary', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('retired', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('strava_id', name='uq_gear_strava_id'),
    )
    op.create_index('ix_gear_user_id', 'gear', ['user_id'])

    op.create_table(
        'activity',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source', sa.Text(), server_default='strava', nullable=False),
        sa.Column('strava_id', sa.Text(), nullable=True),
        sa.Column('upload_id', sa.Text(), nullable=True),
        sa.Column('external_id', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('sport_type', sa.Text(), nullable=True),
        sa.Column('workout_type', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('start_date_local', sa.DateTime(timezone=False), nullable=False),
        sa.Column('timezone', sa.Text(), nullable=True),
        sa.Column('distance', sa.Float(), server_default='0', nullable=False),
        sa.Column('moving_time', sa.Integer(), server_default='0', nullable=False),
        sa.Column('elapsed_time', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_elevation_gain', sa.Float(), server_default='0', nullable=False),
        sa.Column('elev_high', sa.Float(), nullable=True),
        sa.Column('elev_low', sa.Float(), nullable=True),
        sa.Column('average_speed', sa.Float(), nullable=True),
        sa.Column('max_speed', sa.Float(), nullable=True),
        sa.Column('has_heartrate', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('average_heartrate', sa.Float(), nullable=True),
        sa.Column('max_heartrate', sa.Float(), nullable=True),
        sa.Column('average_watts', sa.Float(), nullable=True),
        sa.Column('max_watts', sa.Float(), nullable=True),
        sa.Column('weighted_average_watts', sa.Float(), nullable=True),
        sa.Column('device_watts', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('kilojoules', sa.Float(), nullable=True),
        sa.Column('average_cadence', sa.Float(), nullable=True),
        sa.Column('average_temp', sa.Float(), nullable=True),
        sa.Column('calories', sa.Float(), nullable=True),
        sa.Column('suffer_score', sa.Float(), nullable=True),
        sa.Column('start_lat', sa.Float(), nullable=True),
        sa.Column('start_lng', sa.Float(), nullable=True),
        sa.Column('end_lat', sa.Float(), nullable=True),
        sa.Column('end_lng', sa.Float(), nullable=True),
        sa.Column('location_city', sa.Text(), nullable=True),
        sa.Column('location_state', sa.Text(), nullable=True),
        sa.Column('location_country', sa.Text(), nullable=True),
        sa.Column('summary_polyline', sa.Text(), nullable=True),
        sa.Column('kudos_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('comment_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('photo_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_photo_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('athlete_count', sa.Integer(), server_default='1', nullable=False),
        sa.Column('has_kudoed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('achievement_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('pr_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('trainer', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('commute', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('manual', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('private', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('flagged', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('hide_from_home', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('device_name', sa.Text(), nullable=True),
        sa.Column('embed_token', sa.Text(), nullable=True),
        sa.Column('gear_id', sa.Uuid(), sa.ForeignKey('gear.id', ondelete='SET NULL'), nullable=True),
        sa.Column('splits_metric', JSONType, nullable=True),
        sa.Column('splits_standard', JSONType, nullable=True),
        sa.Column('laps', JSONType, nullable=True),
        sa.Column('best_efforts', JSONType, nullable=True),
        sa.Column('segment_efforts', JSONType, nullable=True),
        sa.Column('segment_effort_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('streams', JSONType, nullable=True),
        sa.Column('has_streams', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('ai_summary', sa.Text(), nullable=True),
        sa.Column('ai_summary_generated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'source', 'strava_id', name='uq_activity_user_source_strava_id'),
    )
    op.create_index('ix_activity_user_start_date', 'activity', ['user_id', 'start_date'])

    op.create_table(
        'athlete_stats',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('biggest_ride_distance', sa.Float(), nullable=True),
        sa.Column('biggest_climb_elevation_gain', sa.Float(), nullable=True),
        sa.Column('recent_totals', JSONType, nullable=True),
        sa.Column('ytd_totals', JSONType, nullable=True),
        sa.Column('all_totals', JSONType, nullable=True),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('user_id', name='uq_athlete_stats_user_id'),
    )

    op.create_table(
        'achievement',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('icon', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=False),
        sa.Column('tier', sa.Text(), nullable=False),
        sa.Column('requirement_type', sa.Text(), nullable=False),
        sa.Column('requirement_value', sa.Float(), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.UniqueConstraint('code', name='uq_achievement_code'),
    )

    op.create_table(
        'user_achievement',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('achievement_id', sa.Uuid(), sa.ForeignKey('achievement.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_id', sa.Uuid(), sa.ForeignKey('activity.id', ondelete='SET NULL'), nullable=True),
        sa.Column('unlocked_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('notified', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),
    )

    op.create_table(
        'ai_generation',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('style', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=True),
        sa.Column('key_phrases', JSONType, nullable=False),
        sa.Column('data_points', JSONType, nullable=False),
        sa.Column('model', sa.Text(), nullable=True),
        sa.Column('tokens_used', sa.Integer(), nullable=True),
        sa.Column('activity_id', sa.Uuid(), sa.ForeignKey('activity.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_ai_generation_user_type_created', 'ai_generation', ['user_id', 'type', 'created_at'])

    op.create_table(
        'personality_profile',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('profile_summary', sa.Text(), nullable=True),
        sa.Column('strengths', JSONType, nullable=True),
        sa.Column('growth_areas', JSONType, nullable=True),
        sa.Column('fun_facts', JSONType, nullable=True),
        sa.Column('spirit_animal', sa.Text(), nullable=True),
        sa.Column('spirit_animal_emoji', sa.Text(), nullable=True),
        sa.Column('spirit_animal_reason', sa.Text(), nullable=True),
        sa.Column('compatibility', JSONType, nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('user_id', name='uq_personality_profile_user_id'),
    )


def downgrade() -> None:
    op.drop_table('personality_profile')
    op.drop_index('ix_ai_generation_user_type_created', table_name='ai_generation')
    op.drop_table('ai_generation')
    op.drop_table('user_achievement')
    op.drop_table('achievement')
    op.drop_table('athlete_stats')
    op.drop_index('ix_activity_user_start_date', table_name='activity')
    op.drop_table('activity')
    op.drop_index('ix_gear_user_id', table_name='gear')
    op.drop_table('gear')
    op.drop_table('user')
