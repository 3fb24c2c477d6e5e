"""Create accounts, verification_codes and flow_sessions tables

Revision ID: 3b1f0c9d2a47
Revises:
Create Date: 2026-10-19 10:12:31.402117
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f0c9d2a47'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'accounts',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('email_confirmed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)

    op.create_table(
        'verification_codes',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('challenge_id', sa.String(length=36), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=False),
        sa.Column('purpose', sa.String(length=32), nullable=False),
        sa.Column('code_hash', sa.String(length=128), nullable=False),
        sa.Column('issued_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consumed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('subject_id', 'purpose', name='uq_verification_codes_subject_purpose'),
    )
    op.create_index('ix_verification_codes_subject_id', 'verification_codes', ['subject_id'])

    op.create_table(
        'flow_sessions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('purpose', sa.String(length=32), nullable=False),
        sa.Column('step', sa.String(length=32), nullable=False),
        sa.Column('subject_id', sa.String(), nullable=True),
        sa.Column('cooldown_until', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('flow_sessions')
    op.drop_index('ix_verification_codes_subject_id', table_name='verification_codes')
    op.drop_table('verification_codes')
    op.drop_index('ix_accounts_email', table_name='accounts')
    op.drop_table('accounts')
