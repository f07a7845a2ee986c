"""create stream event, giveaway and audit tables

Revision ID: create_stream_events_and_giveaways
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'create_stream_events_and_giveaways'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Stream events, brackets, giveaways, linked accounts and the audit log"""
    op.create_table(
        'stream_events',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('type', sa.String(20), nullable=False, index=True, comment='tournament | bonus_hunt | guess_balance'),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft', index=True),
        sa.Column('max_players', sa.Integer, nullable=True),
        sa.Column('starting_balance', sa.Numeric(18, 2), nullable=True),
        sa.Column('is_public', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('seed', sa.String(128), nullable=True),
        sa.Column('seed_hash', sa.String(64), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'stream_event_entries',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('stream_events.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('slot_choice', sa.String(200), nullable=False),
        sa.Column('category', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('position', sa.Integer, nullable=True),
        sa.Column('payout', sa.Numeric(18, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stream_event_entries_event_status', 'stream_event_entries', ['event_id', 'status'])

    op.create_table(
        'tournament_matches',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.Integer, sa.ForeignKey('stream_events.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('round', sa.Integer, nullable=False),
        sa.Column('match_index', sa.Integer, nullable=False),
        sa.Column('player_a_id', sa.Integer, sa.ForeignKey('stream_event_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('player_b_id', sa.Integer, sa.ForeignKey('stream_event_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('winner_id', sa.Integer, sa.ForeignKey('stream_event_entries.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
    )
    op.create_unique_constraint('uq_match_position', 'tournament_matches', ['event_id', 'round', 'match_index'])

    op.create_table(
        'giveaways',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('prize', sa.String(200), nullable=False),
        sa.Column('max_entries', sa.Integer, nullable=True),
        sa.Column('casino_id', sa.Integer, nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('winner_id', sa.String(64), nullable=True),
        sa.Column('winner_seed', sa.String(128), nullable=True),
        sa.Column('seed_hash', sa.String(64), nullable=True),
        sa.Column('entries_hash', sa.String(64), nullable=True),
        sa.Column('winner_entry_id', sa.Integer, nullable=True),
        sa.Column('winner_index', sa.Integer, nullable=True),
        sa.Column('winner_picked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('winner_picked_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    # Auto-draw scan
    op.create_index('ix_giveaways_due', 'giveaways', ['is_active', 'ends_at'])

    op.create_table(
        'giveaway_requirements',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('giveaway_id', sa.Integer, sa.ForeignKey('giveaways.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('casino_id', sa.Integer, nullable=True),
        sa.Column('value', sa.String(100), nullable=True),
    )

    op.create_table(
        'giveaway_entries',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('giveaway_id', sa.Integer, sa.ForeignKey('giveaways.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    # One entry per user per giveaway
    op.create_unique_constraint('uq_giveaway_entry_user', 'giveaway_entries', ['giveaway_id', 'user_id'])
    op.create_index('ix_giveaway_entries_order', 'giveaway_entries', ['giveaway_id', 'created_at', 'id'])

    op.create_table(
        'user_casino_accounts',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('casino_id', sa.Integer, nullable=False),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('verified', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_unique_constraint('uq_user_casino_account', 'user_casino_accounts', ['user_id', 'casino_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('actor_id', sa.String(64), nullable=False, index=True),
        sa.Column('actor_role', sa.String(20), nullable=False),
        sa.Column('action', sa.String(50), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Integer, nullable=True, index=True),
        sa.Column('details', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    """Drop in reverse dependency order"""
    op.drop_table('audit_logs')
    op.drop_constraint('uq_user_casino_account', 'user_casino_accounts')
    op.drop_table('user_casino_accounts')
    op.drop_index('ix_giveaway_entries_order')
    op.drop_constraint('uq_giveaway_entry_user', 'giveaway_entries')
    op.drop_table('giveaway_entries')
    op.drop_table('giveaway_requirements')
    op.drop_index('ix_giveaways_due')
    op.drop_table('giveaways')
    op.drop_constraint('uq_match_position', 'tournament_matches')
    op.drop_table('tournament_matches')
    op.drop_index('ix_stream_event_entries_event_status')
    op.drop_table('stream_event_entries')
    op.drop_table('stream_events')
