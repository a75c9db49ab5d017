"""Initial schema - DRD approvals and incentives

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Incentive policies
    op.create_table(
        'incentive_policies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('policy_name', sa.String(200), nullable=False),
        sa.Column('submission_kind', sa.String(50), nullable=False),
        sa.Column('sub_type', sa.String(50), nullable=False),
        sa.Column('variant', sa.String(100), nullable=False, server_default=''),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('distribution_method', sa.String(50), nullable=False),
        sa.Column('base_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('base_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('position_based_distribution', sa.JSON(), nullable=False),
        sa.Column('role_percentages', sa.JSON(), nullable=False),
        sa.Column('indexing_bonuses', sa.JSON(), nullable=False),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('submission_kind', 'sub_type', 'variant', 'version', name='uq_policy_scope_version'),
    )
    op.create_index(
        'ix_incentive_policies_scope_active',
        'incentive_policies',
        ['submission_kind', 'sub_type', 'variant', 'is_active'],
    )

    # Named counters: application numbers and policy scope write locks
    op.create_table(
        'counters',
        sa.Column('key', sa.String(120), primary_key=True),
        sa.Column('last_value', sa.Integer(), nullable=False, server_default='0'),
    )

    # Submissions (IPR and research)
    op.create_table(
        'submissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('kind', sa.String(20), nullable=False, index=True),
        sa.Column('application_number', sa.String(32), nullable=False, unique=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('sub_type', sa.String(50), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('filer_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('filer_role', sa.String(50), nullable=False),
        sa.Column('mentor_uid', sa.String(64), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='draft', index=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_changed_by', sa.Uuid(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('indexing_metadata', sa.JSON(), nullable=False),
        sa.Column('document_paths', sa.JSON(), nullable=False),
        sa.Column('publication_date', sa.Date(), nullable=True),
        sa.Column('govt_application_id', sa.String(100), nullable=True),
        sa.Column('publication_id', sa.String(100), nullable=True),
        sa.Column('incentive_result', sa.JSON(none_as_null=True), nullable=True),
        sa.Column(
            'incentive_policy_id',
            sa.Uuid(),
            sa.ForeignKey('incentive_policies.id', ondelete='RESTRICT'),
            nullable=True,
        ),
        sa.Column('incentive_warning', sa.String(100), nullable=True),
        sa.Column('incentive_calculated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_submissions_kind_status', 'submissions', ['kind', 'status'])

    # Authors / inventors
    op.create_table(
        'submission_authors',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('submission_id', sa.Uuid(), sa.ForeignKey('submissions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('person_ref', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('author_role', sa.String(50), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_international', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_student', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('designation', sa.String(100), nullable=True),
        sa.Column('affiliation', sa.Text(), nullable=True),
    )

    # Review history (append-only)
    op.create_table(
        'review_history',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('submission_id', sa.Uuid(), sa.ForeignKey('submissions.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('from_status', sa.String(50), nullable=False),
        sa.Column('to_status', sa.String(50), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('submission_id', 'sequence', name='uq_review_history_sequence'),
    )

    # Capability grants
    op.create_table(
        'capability_grants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('actor_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('capability', sa.String(50), nullable=False),
        sa.Column('granted_by', sa.Uuid(), nullable=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_capability_grants_actor_capability', 'capability_grants', ['actor_id', 'capability'])

    # Reviewer school assignments
    op.create_table(
        'reviewer_school_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('scope', sa.String(50), nullable=False),
        sa.Column('school_id', sa.Uuid(), nullable=False),
        sa.Column('assigned_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('reviewer_id', 'scope', 'school_id', name='uq_reviewer_scope_school'),
    )
    op.create_index('ix_reviewer_assignments_scope_school', 'reviewer_school_assignments', ['scope', 'school_id'])

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('recipient_ref', sa.String(100), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('submission_id', sa.Uuid(), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_notifications_recipient_time', 'notifications', ['recipient_ref', 'created_at'])

    # Event logs table (immutable audit trail)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('notifications')
    op.drop_table('reviewer_school_assignments')
    op.drop_table('capability_grants')
    op.drop_table('review_history')
    op.drop_table('submission_authors')
    op.drop_table('submissions')
    op.drop_table('incentive_policies')
    op.drop_table('counters')
