"""add ladder authorizations

Revision ID: 0002_ladder
Revises: 0001_initial
Create Date: 2026-10-19 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0002_ladder'
down_revision: Union[str, Sequence[str], None] = '0001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


approval_status_enum = postgresql.ENUM(name='approval_status_enum', create_type=False)
rejection_reason_enum = postgresql.ENUM(name='rejection_reason_enum', create_type=False)


def upgrade() -> None:
    """Upgrade schema - one ladder authorization row per learner."""
    op.create_table(
        'ladder_authorizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('owner_leader_id', sa.Uuid(), nullable=True),
        sa.Column('status', approval_status_enum, nullable=False),
        sa.Column('reviewed_by', sa.Uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', rejection_reason_enum, nullable=True),
        sa.Column('review_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_ladder_authorization_user'),
    )
    for column in ('user_id', 'owner_leader_id', 'status'):
        op.create_index(
            f'ix_ladder_authorizations_{column}',
            'ladder_authorizations',
            [column],
            unique=False,
        )


def downgrade() -> None:
    """Downgrade schema."""
    for column in ('status', 'owner_leader_id', 'user_id'):
        op.drop_index(f'ix_ladder_authorizations_{column}', table_name='ladder_authorizations')
    op.drop_table('ladder_authorizations')
