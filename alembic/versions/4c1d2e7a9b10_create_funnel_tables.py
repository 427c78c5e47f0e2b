"""Create funnel tables

Revision ID: 4c1d2e7a9b10
Revises:
Create Date: 2026-10-18 10:12:41.503218

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4c1d2e7a9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('registered_at', sa.DateTime(), nullable=False),
        sa.Column('subscription_status', sa.String(length=20), nullable=False),
        sa.Column('questions_used', sa.Integer(), nullable=False),
        sa.Column('last_question_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'chat_cache',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('question_hash', sa.String(length=64), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False),
        sa.Column('hit_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_chat_cache_question_hash'), 'chat_cache', ['question_hash'], unique=True)
    op.create_index(op.f('ix_chat_cache_expires_at'), 'chat_cache', ['expires_at'])

    op.create_table(
        'session_statistics',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('stat_date', sa.Date(), nullable=False),
        sa.Column('first_messages_count', sa.Integer(), nullable=False),
        sa.Column('emails_collected_count', sa.Integer(), nullable=False),
        sa.Column('payments_completed_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_session_statistics_stat_date'), 'session_statistics', ['stat_date'], unique=True)

    op.create_table(
        'conversation_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('anonymous_identifier', sa.String(length=64), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('last_message_at', sa.DateTime(), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_conversation_sessions_user_id'), 'conversation_sessions', ['user_id'])
    op.create_index(
        op.f('ix_conversation_sessions_anonymous_identifier'), 'conversation_sessions', ['anonymous_identifier']
    )

    op.create_table(
        'conversation_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('tokens_used', sa.Integer(), nullable=True),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('was_cached', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['conversation_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_conversation_messages_session_id'), 'conversation_messages', ['session_id'])

    op.create_table(
        'paid_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_uuid', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('expertise', sa.String(length=20), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('paid', sa.Boolean(), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('thread_id', sa.String(length=255), nullable=False),
        sa.Column('questionnaire_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('email_sent', sa.Boolean(), nullable=False),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('first_message_sent', sa.Boolean(), nullable=False),
        sa.Column('moved_to_unpaid', sa.Boolean(), nullable=False),
        sa.Column('moved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_paid_sessions_session_uuid'), 'paid_sessions', ['session_uuid'], unique=True)

    op.create_table(
        'paid_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['paid_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_paid_messages_session_id'), 'paid_messages', ['session_id'])

    op.create_table(
        'unpaid_sessions_with_email',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_uuid', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('expertise', sa.String(length=20), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('thread_id', sa.String(length=255), nullable=False),
        sa.Column('questionnaire_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('email_collected_at', sa.DateTime(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.Column('payment_attempts', sa.Integer(), nullable=False),
        sa.Column('last_payment_attempt_at', sa.DateTime(), nullable=True),
        sa.Column('first_message_sent', sa.Boolean(), nullable=False),
        sa.Column('moved_to_paid', sa.Boolean(), nullable=False),
        sa.Column('moved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_unpaid_sessions_with_email_session_uuid'), 'unpaid_sessions_with_email', ['session_uuid'], unique=True
    )

    op.create_table(
        'unpaid_messages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('session_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['unpaid_sessions_with_email.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_unpaid_messages_session_id'), 'unpaid_messages', ['session_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_unpaid_messages_session_id'), table_name='unpaid_messages')
    op.drop_table('unpaid_messages')
    op.drop_index(op.f('ix_unpaid_sessions_with_email_session_uuid'), table_name='unpaid_sessions_with_email')
    op.drop_table('unpaid_sessions_with_email')
    op.drop_index(op.f('ix_paid_messages_session_id'), table_name='paid_messages')
    op.drop_table('paid_messages')
    op.drop_index(op.f('ix_paid_sessions_session_uuid'), table_name='paid_sessions')
    op.drop_table('paid_sessions')
    op.drop_index(op.f('ix_conversation_messages_session_id'), table_name='conversation_messages')
    op.drop_table('conversation_messages')
    op.drop_index(op.f('ix_conversation_sessions_anonymous_identifier'), table_name='conversation_sessions')
    op.drop_index(op.f('ix_conversation_sessions_user_id'), table_name='conversation_sessions')
    op.drop_table('conversation_sessions')
    op.drop_index(op.f('ix_session_statistics_stat_date'), table_name='session_statistics')
    op.drop_table('session_statistics')
    op.drop_index(op.f('ix_chat_cache_expires_at'), table_name='chat_cache')
    op.drop_index(op.f('ix_chat_cache_question_hash'), table_name='chat_cache')
    op.drop_table('chat_cache')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
