"""create_oauth_tables

Revision ID: 3f9c2a7e5b10
Revises:
Create Date: 2026-10-18 10:12:41.508214

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2a7e5b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('photo_url', sa.String(length=1024), nullable=True),
        sa.Column('provider', sa.String(length=32), nullable=False, server_default='email'),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('last_sign_in_time', sa.DateTime(), nullable=True),
        sa.Column('last_refresh_time', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'api_credentials',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('client_id', sa.String(length=64), nullable=False),
        sa.Column('client_secret', sa.String(length=128), nullable=False),
        sa.Column('api_key', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('redirect_uris', sa.JSON(), nullable=False),
        sa.Column('allowed_origins', sa.JSON(), nullable=False),
        sa.Column('scopes', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('rate_limit_max_requests', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('rate_limit_window_ms', sa.Integer(), nullable=False, server_default='900000'),
        sa.Column('rate_limit_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('login_counter', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('last_used', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_api_credentials_client_id', 'api_credentials', ['client_id'], unique=True)
    op.create_index('idx_api_credentials_api_key', 'api_credentials', ['api_key'], unique=True)
    op.create_index('idx_api_credentials_user_id', 'api_credentials', ['user_id'])

    op.create_table(
        'oauth_sessions',
        sa.Column('session_id', sa.String(length=32), nullable=False),
        sa.Column('rotation_id', sa.String(length=32), nullable=False),
        sa.Column('login_number', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('credential_id', sa.String(length=64), nullable=False),
        sa.Column('state', sa.String(length=512), nullable=False, server_default=''),
        sa.Column('code_challenge', sa.String(length=128), nullable=True),
        sa.Column('code_challenge_method', sa.String(length=10), nullable=True),
        sa.Column('redirect_uri', sa.String(length=2048), nullable=False),
        sa.Column('scopes', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('authorized_at', sa.DateTime(), nullable=True),
        sa.Column('access_token', sa.String(length=128), nullable=True),
        sa.Column('refresh_token', sa.String(length=128), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('session_id'),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], name='fk_oauth_sessions_credential_id', ondelete='CASCADE'),
    )
    op.create_index('idx_oauth_sessions_credential_id', 'oauth_sessions', ['credential_id'])
    op.create_index('idx_oauth_sessions_expires_at', 'oauth_sessions', ['expires_at'])

    op.create_table(
        'authorization_codes',
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('credential_id', sa.String(length=64), nullable=False),
        sa.Column('redirect_uri', sa.String(length=2048), nullable=False),
        sa.Column('scopes', sa.JSON(), nullable=False),
        sa.Column('code_challenge', sa.String(length=128), nullable=True),
        sa.Column('code_challenge_method', sa.String(length=10), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.PrimaryKeyConstraint('code'),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], name='fk_authorization_codes_credential_id', ondelete='CASCADE'),
    )
    op.create_index('idx_authorization_codes_session_id', 'authorization_codes', ['session_id'])

    op.create_table(
        'access_tokens',
        sa.Column('token', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('credential_id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=32), nullable=False),
        sa.Column('scopes', sa.JSON(), nullable=False),
        sa.Column('token_type', sa.String(length=16), nullable=False, server_default='Bearer'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('token'),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], name='fk_access_tokens_credential_id', ondelete='CASCADE'),
    )
    op.create_index('idx_access_tokens_user_id', 'access_tokens', ['user_id'])
    op.create_index('idx_access_tokens_session_id', 'access_tokens', ['session_id'])

    op.create_table(
        'refresh_tokens',
        sa.Column('token', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('credential_id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=32), nullable=False),
        sa.Column('access_token_id', sa.String(length=128), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('replaced_by', sa.String(length=128), nullable=True),
        sa.PrimaryKeyConstraint('token'),
        sa.ForeignKeyConstraint(['credential_id'], ['api_credentials.id'], name='fk_refresh_tokens_credential_id', ondelete='CASCADE'),
    )
    op.create_index('idx_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('idx_refresh_tokens_session_id', 'refresh_tokens', ['session_id'])

    op.create_table(
        'usage_stats',
        sa.Column('id', sa.String(length=80), nullable=False),
        sa.Column('credential_id', sa.String(length=64), nullable=False),
        sa.Column('date', sa.String(length=10), nullable=False),
        sa.Column('requests', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('successful_auths', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed_auths', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_request', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_usage_stats_credential_date', 'usage_stats', ['credential_id', 'date'])

    # Append-only audit trail
    op.create_table(
        'security_logs',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('ip', sa.String(length=45), nullable=False, server_default='unknown'),
        sa.Column('user_agent', sa.String(length=512), nullable=False, server_default='unknown'),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('credential_id', sa.String(length=64), nullable=True),
        sa.Column('error', sa.String(length=512), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), server_default=sa.text('current_timestamp()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_security_logs_action', 'security_logs', ['action'])
    op.create_index('idx_security_logs_credential_id', 'security_logs', ['credential_id'])
    op.create_index('idx_security_logs_timestamp', 'security_logs', ['timestamp'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('security_logs')
    op.drop_table('usage_stats')
    op.drop_table('refresh_tokens')
    op.drop_table('access_tokens')
    op.drop_table('authorization_codes')
    op.drop_table('oauth_sessions')
    op.drop_table('api_credentials')
    op.drop_table('users')
