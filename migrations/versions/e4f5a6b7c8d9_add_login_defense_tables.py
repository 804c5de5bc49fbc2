"""add login defense tables

Revision ID: e4f5a6b7c8d9
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e4f5a6b7c8d9'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_failed_attempt', sa.DateTime(), nullable=True),
        sa.Column('account_locked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('lockout_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)

    op.create_table(
        'login_attempts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('device_fingerprint', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('risk_score', sa.Integer(), nullable=False),
        sa.Column('geo_location', sa.JSON(), nullable=True),
        sa.Column('attempted_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('login_attempts', schema=None) as batch_op:
        batch_op.create_index('ix_login_attempts_ip_attempted_at', ['ip_address', 'attempted_at'], unique=False)
        batch_op.create_index('ix_login_attempts_user_attempted_at', ['user_id', 'attempted_at'], unique=False)
        batch_op.create_index('ix_login_attempts_device_attempted_at', ['device_fingerprint', 'attempted_at'], unique=False)

    op.create_table(
        'ip_blacklist',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ip_address', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('ip_blacklist', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_ip_blacklist_ip_address'), ['ip_address'], unique=True)
        batch_op.create_index(batch_op.f('ix_ip_blacklist_expires_at'), ['expires_at'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('entity', sa.String(length=80), nullable=True),
        sa.Column('entity_id', sa.String(length=80), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('audit_logs')

    with op.batch_alter_table('ip_blacklist', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_ip_blacklist_expires_at'))
        batch_op.drop_index(batch_op.f('ix_ip_blacklist_ip_address'))
    op.drop_table('ip_blacklist')

    with op.batch_alter_table('login_attempts', schema=None) as batch_op:
        batch_op.drop_index('ix_login_attempts_device_attempted_at')
        batch_op.drop_index('ix_login_attempts_user_attempted_at')
        batch_op.drop_index('ix_login_attempts_ip_attempted_at')
    op.drop_table('login_attempts')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_email'))
    op.drop_table('users')
