"""initial approvals schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


account_status_enum = postgresql.ENUM(
    'active', 'frozen', 'deleted',
    name='account_status_enum', create_type=False,
)
student_status_enum = postgresql.ENUM(
    '普通学员', '学习中', '考核通过', '捐赠学员', '考核通过+捐赠学员',
    name='student_status_enum', create_type=False,
)
approval_status_enum = postgresql.ENUM(
    'draft', 'requested', 'submitted', 'approved', 'rejected', 'reviewed', 'completed',
    name='approval_status_enum', create_type=False,
)
rejection_reason_enum = postgresql.ENUM(
    '资料不完整', '不符合要求', '名额已满', '重复申请', '其他',
    name='rejection_reason_enum', create_type=False,
)
trade_submission_type_enum = postgresql.ENUM(
    'trade_log', 'trade_strategy',
    name='trade_submission_type_enum', create_type=False,
)

ENUMS = (
    account_status_enum,
    student_status_enum,
    approval_status_enum,
    rejection_reason_enum,
    trade_submission_type_enum,
)

APPROVABLE_TABLES = (
    'course_access',
    'file_access_requests',
    'trade_submissions',
    'classic_trades',
    'weekly_summaries',
    'course_notes',
)


def _review_columns() -> list:
    """Columns shared by every approvable table."""
    return [
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
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    ]


def _review_indexes(table: str) -> None:
    for column in ('user_id', 'owner_leader_id', 'status'):
        op.create_index(f'ix_{table}_{column}', table, [column], unique=False)


def upgrade() -> None:
    """Upgrade schema - identity graph, notifications, catalog and approvable items."""
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    # Identity graph
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('leader_id', sa.Uuid(), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('status', account_status_enum, nullable=False),
        sa.Column('student_status', student_status_enum, nullable=False),
        sa.Column('session_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['leader_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['created_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_profiles_leader_id', 'profiles', ['leader_id'], unique=False)
    op.create_index('ix_profiles_created_by', 'profiles', ['created_by'], unique=False)

    op.create_table(
        'coach_assignments',
        sa.Column('assigned_user_id', sa.Uuid(), nullable=False),
        sa.Column('coach_id', sa.Uuid(), nullable=False),
        sa.Column('assigned_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['assigned_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coach_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('assigned_user_id'),
    )
    op.create_index(
        'ix_coach_assignments_coach_id', 'coach_assignments', ['coach_id'], unique=False
    )

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('to_user_id', sa.Uuid(), nullable=False),
        sa.Column('from_user_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['to_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['from_user_id'], ['profiles.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_notifications_to_user_created',
        'notifications',
        ['to_user_id', 'created_at'],
        unique=False,
    )

    # Catalog
    op.create_table(
        'courses',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('title_zh', sa.String(), nullable=True),
        sa.Column('title_en', sa.String(), nullable=True),
        sa.Column('content_bucket', sa.String(), nullable=True),
        sa.Column('content_path', sa.String(), nullable=True),
        sa.Column('published', sa.Boolean(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'library_files',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('storage_bucket', sa.String(), nullable=False),
        sa.Column('storage_path', sa.String(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'file_permissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('file_id', sa.Uuid(), nullable=False),
        sa.Column('grantee_user_id', sa.Uuid(), nullable=False),
        sa.Column('granted_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['file_id'], ['library_files.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['grantee_user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('file_id', 'grantee_user_id', name='uq_file_permission'),
    )
    op.create_index(
        'ix_file_permissions_grantee_user_id',
        'file_permissions',
        ['grantee_user_id'],
        unique=False,
    )

    # Approvable items
    op.create_table(
        'course_access',
        *_review_columns(),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_course_access_user_course'),
    )
    op.create_table(
        'file_access_requests',
        *_review_columns(),
        sa.Column('file_id', sa.Uuid(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['file_id'], ['library_files.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'file_id', name='uq_file_access_user_file'),
    )
    op.create_table(
        'trade_submissions',
        *_review_columns(),
        sa.Column('type', trade_submission_type_enum, nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_by', sa.Uuid(), nullable=True),
    )
    op.create_table(
        'classic_trades',
        *_review_columns(),
        sa.Column('title', sa.String(length=200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'weekly_summaries',
        *_review_columns(),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_weekly_summary_user_week'),
    )
    op.create_table(
        'course_notes',
        *_review_columns(),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('content_md', sa.Text(), nullable=True),
        sa.Column('content_html', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_course_note_user_course'),
    )
    for table in APPROVABLE_TABLES:
        _review_indexes(table)


def downgrade() -> None:
    """Downgrade schema."""
    for table in reversed(APPROVABLE_TABLES):
        op.drop_table(table)
    op.drop_table('file_permissions')
    op.drop_table('library_files')
    op.drop_table('courses')
    op.drop_index('ix_notifications_to_user_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('coach_assignments')
    op.drop_table('profiles')

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
