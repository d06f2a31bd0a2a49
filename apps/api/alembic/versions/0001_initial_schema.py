"""initial REPZ schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _user_fk(name='user_id', nullable=False, **kw):
    return sa.Column(name, _uuid(), sa.ForeignKey('app_user.id', ondelete='CASCADE'), nullable=nullable, **kw)


def upgrade() -> None:
    op.create_table(
        'app_user',
        sa.Column('id', _uuid(), primary_key=True),
        _created_at(),
        _updated_at(),
        sa.Column('email', sa.Text(), nullable=True, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), nullable=False, server_default='user'),
        sa.Column('username', sa.Text(), nullable=True),
        sa.Column('gym', sa.Text(), nullable=True),
        sa.Column('goal', sa.Text(), nullable=True),
        sa.Column('avatar', sa.Integer(), nullable=True),
        sa.Column('profile_picture', sa.Text(), nullable=True),
        sa.Column('best_lifts', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('stats', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('tier', sa.Text(), nullable=False, server_default='free'),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_account_id', sa.Text(), nullable=True),
        sa.Column('expo_push_token', sa.Text(), nullable=True),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('flag_reason', sa.Text(), nullable=True),
        sa.CheckConstraint("tier IN ('free', 'pro', 'elite')", name='ck_app_user_tier'),
    )
    op.create_index('ix_app_user_stripe_customer_id', 'app_user', ['stripe_customer_id'])

    op.create_table(
        'progress_photo',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('view', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_progress_photo_user_id', 'progress_photo', ['user_id'])

    op.create_table(
        'plan',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk('creator_id'),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('duration_weeks', sa.Integer(), nullable=False),
        sa.Column('level', sa.Text(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False, server_default='0'),
        sa.Column('tags', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('schedule', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('media_url', sa.Text(), nullable=True),
        sa.Column('tier', sa.Text(), nullable=False, server_default='free'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating', sa.Float(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint('price >= 0 AND price <= 500', name='ck_plan_price_range'),
    )
    op.create_index('ix_plan_creator_id', 'plan', ['creator_id'])
    op.create_index('ix_plan_created_at', 'plan', ['created_at'])
    op.create_index('ix_plan_public_created', 'plan', ['is_public', 'created_at'])

    op.create_table(
        'user_plan',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('plan_id', _uuid(), sa.ForeignKey('plan.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), nullable=False, server_default='manual'),
        sa.Column('level', sa.Text(), nullable=True),
        sa.Column('duration_weeks', sa.Integer(), nullable=True),
        sa.Column('schedule', postgresql.JSONB(), nullable=True),
        sa.Column('exercises', postgresql.JSONB(), nullable=True),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index('ix_user_plan_user_id', 'user_plan', ['user_id'])

    op.create_table(
        'xp_record',
        _user_fk(primary_key=True),
        sa.Column('xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_workout_at', sa.DateTime(timezone=True), nullable=True),
        _updated_at(),
        sa.CheckConstraint('xp >= 0', name='ck_xp_record_non_negative'),
    )

    op.create_table(
        'xp_transaction',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('challenge_id', _uuid(), nullable=True),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_xp_transaction_user_id', 'xp_transaction', ['user_id'])
    op.create_index('ix_xp_transaction_challenge_id', 'xp_transaction', ['challenge_id'])
    op.create_index('ix_xp_transaction_created_at', 'xp_transaction', ['created_at'])

    op.create_table(
        'workout_log',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('exercises', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('volume', sa.Float(), nullable=False, server_default='0'),
        sa.Column('pr_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_challenge', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
    )
    op.create_index('ix_workout_log_user_id', 'workout_log', ['user_id'])
    op.create_index('ix_workout_log_created_at', 'workout_log', ['created_at'])

    op.create_table(
        'weekly_summary',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('workouts_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_volume', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak', sa.Integer(), nullable=False, server_default='0'),
        _created_at(),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_weekly_summary_user_week'),
    )
    op.create_index('ix_weekly_summary_user_id', 'weekly_summary', ['user_id'])

    op.create_table(
        'daily_challenge',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(unique=True),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('exercise', sa.Text(), nullable=True),
        sa.Column('target', sa.Integer(), nullable=False),
        sa.Column('xp_reward', sa.Integer(), nullable=False),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )

    op.create_table(
        'wager_challenge',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk('creator_id'),
        sa.Column('type', sa.Text(), nullable=False, server_default='reps'),
        sa.Column('exercise', sa.Text(), nullable=False),
        sa.Column('rules', sa.Text(), nullable=True),
        sa.Column('gym', sa.Text(), nullable=True),
        sa.Column('wager_xp', sa.Integer(), nullable=False),
        sa.Column('xp_pot', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('winner_takes_all', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('participants', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('opponents', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('winner_id', _uuid(), nullable=True),
        sa.Column('winning_details', postgresql.JSONB(), nullable=True),
        sa.Column('flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('removed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'active', 'resolved', 'no_winner', 'unresolved')",
            name='ck_wager_challenge_status',
        ),
    )
    op.create_index('ix_wager_challenge_creator_id', 'wager_challenge', ['creator_id'])
    op.create_index('ix_wager_challenge_status', 'wager_challenge', ['status'])
    op.create_index('ix_wager_challenge_expires_at', 'wager_challenge', ['expires_at'])
    op.create_index('ix_wager_challenge_flagged', 'wager_challenge', ['flagged'])

    op.create_table(
        'wager_submission',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('challenge_id', _uuid(), sa.ForeignKey('wager_challenge.id', ondelete='CASCADE'), nullable=False),
        _user_fk(),
        sa.Column('video_url', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verdict', sa.Text(), nullable=True),
        sa.Column('verified_by_ai', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('challenge_id', 'user_id', name='uq_wager_submission_user'),
    )
    op.create_index('ix_wager_submission_challenge_id', 'wager_submission', ['challenge_id'])

    op.create_table(
        'wager_vote',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('challenge_id', _uuid(), sa.ForeignKey('wager_challenge.id', ondelete='CASCADE'), nullable=False),
        _user_fk('voter_id'),
        _user_fk('voted_for_id'),
        _created_at(),
        sa.UniqueConstraint('challenge_id', 'voter_id', name='uq_wager_vote_voter'),
    )
    op.create_index('ix_wager_vote_challenge_id', 'wager_vote', ['challenge_id'])

    op.create_table(
        'battle_stats',
        _user_fk(primary_key=True),
        sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('best_streak', sa.Integer(), nullable=False, server_default='0'),
        _updated_at(),
    )

    op.create_table(
        'leaderboard_entry',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('exercise', sa.Text(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('reps', sa.Integer(), nullable=False),
        sa.Column('gym', sa.Text(), nullable=False),
        sa.Column('location', postgresql.JSONB(), nullable=True),
        sa.Column('video_url', sa.Text(), nullable=False),
        sa.Column('tier', sa.Text(), nullable=False),
        _created_at(),
        sa.CheckConstraint('weight > 0', name='ck_leaderboard_weight_positive'),
        sa.CheckConstraint('reps > 0', name='ck_leaderboard_reps_positive'),
    )
    op.create_index('ix_leaderboard_entry_user_id', 'leaderboard_entry', ['user_id'])
    op.create_index('ix_leaderboard_exercise_weight', 'leaderboard_entry', ['exercise', 'weight'])

    op.create_table(
        'gym',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk('owner_id'),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('location', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('image', sa.Text(), nullable=True),
        sa.Column('features', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('member_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pricing', postgresql.JSONB(), nullable=True),
        sa.Column('offers', postgresql.JSONB(), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_gym_owner_id', 'gym', ['owner_id'])

    op.create_table(
        'gym_feed_post',
        sa.Column('id', _uuid(), primary_key=True),
        sa.Column('gym_id', _uuid(), sa.ForeignKey('gym.id', ondelete='CASCADE'), nullable=False),
        _user_fk('owner_id'),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('offer', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_gym_feed_post_gym_id', 'gym_feed_post', ['gym_id'])

    op.create_table(
        'partner_slot',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('username', sa.Text(), nullable=False, server_default='REPZ User'),
        sa.Column('gym_id', sa.Text(), nullable=False),
        sa.Column('gym_name', sa.Text(), nullable=True),
        sa.Column('time_slot', sa.Text(), nullable=False),
        sa.Column('participants', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('avatar', sa.Text(), nullable=True),
        sa.Column('tier', sa.Text(), nullable=False, server_default='free'),
        _created_at(),
    )
    op.create_index('ix_partner_slot_user_id', 'partner_slot', ['user_id'])
    op.create_index('ix_partner_slot_gym_id', 'partner_slot', ['gym_id'])

    op.create_table(
        'form_analysis',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('exercise_type', sa.Text(), nullable=False),
        sa.Column('results', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('verdict', sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index('ix_form_analysis_user_id', 'form_analysis', ['user_id'])

    op.create_table(
        'purchase_record',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(),
        sa.Column('plan_id', _uuid(), sa.ForeignKey('plan.id', ondelete='SET NULL'), nullable=True),
        sa.Column('plan_name', sa.Text(), nullable=True),
        sa.Column('creator_id', _uuid(), nullable=True),
        sa.Column('amount_paid', sa.Integer(), nullable=False),
        sa.Column('currency', sa.Text(), nullable=False, server_default='gbp'),
        sa.Column('stripe_session_id', sa.Text(), nullable=False, unique=True),
        sa.Column('stripe_payment_intent_id', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_purchase_record_user_id', 'purchase_record', ['user_id'])
    op.create_index('ix_purchase_record_created_at', 'purchase_record', ['created_at'])

    op.create_table(
        'subscriptions',
        sa.Column('id', _uuid(), primary_key=True),
        _user_fk(unique=True),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True),
        sa.Column('stripe_price_id', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('tier', sa.Text(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    op.create_table(
        'stripe_events',
        sa.Column('event_id', sa.Text(), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('stripe_created', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])

    op.create_table(
        'revenuecat_events',
        sa.Column('event_id', sa.Text(), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('app_user_id', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'admin_audit_event',
        sa.Column('id', _uuid(), primary_key=True),
        _created_at(),
        _user_fk('actor_user_id'),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('target_user_id', _uuid(), nullable=True),
        sa.Column('target_id', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('payload', postgresql.JSONB(), nullable=False, server_default='{}'),
    )
    op.create_index('ix_admin_audit_event_created_at', 'admin_audit_event', ['created_at'])
    op.create_index('ix_admin_audit_event_actor_user_id', 'admin_audit_event', ['actor_user_id'])
    op.create_index('ix_admin_audit_event_action', 'admin_audit_event', ['action'])
    op.create_index('ix_admin_audit_event_target_user_id', 'admin_audit_event', ['target_user_id'])


def downgrade() -> None:
    for table in (
        'admin_audit_event',
        'revenuecat_events',
        'stripe_events',
        'subscriptions',
        'purchase_record',
        'form_analysis',
        'partner_slot',
        'gym_feed_post',
        'gym',
        'leaderboard_entry',
        'battle_stats',
        'wager_vote',
        'wager_submission',
        'wager_challenge',
        'daily_challenge',
        'weekly_summary',
        'workout_log',
        'xp_transaction',
        'xp_record',
        'user_plan',
        'plan',
        'progress_photo',
        'app_user',
    ):
        op.drop_table(table)
