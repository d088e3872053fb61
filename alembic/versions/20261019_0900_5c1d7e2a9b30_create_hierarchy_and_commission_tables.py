"""create_hierarchy_and_commission_tables

Revision ID: 5c1d7e2a9b30
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = '5c1d7e2a9b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create organizations, organization_members and audit_log tables."""
    op.create_table(
        'organizations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('type', sa.Enum('IMO', 'MGA', 'AGENCY', 'TEAM', name='organization_type'), nullable=False),
        sa.Column('parent_id', UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='organization_status'), nullable=False, server_default='ACTIVE'),
        sa.Column('default_commission_split', sa.Numeric(5, 4), nullable=True),
        sa.Column('ein', sa.String(length=20), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=50), nullable=True),
        sa.Column('zip_code', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            'default_commission_split IS NULL OR default_commission_split BETWEEN 0 AND 1',
            name='ck_organizations_default_split_range',
        ),
    )
    op.create_foreign_key(
        'organizations_parent_id_fkey',
        'organizations', 'organizations',
        ['parent_id'], ['id'],
        ondelete='SET NULL'
    )
    op.create_index('ix_organizations_parent_id', 'organizations', ['parent_id'])
    op.create_index('ix_organizations_status', 'organizations', ['status'])

    op.create_table(
        'organization_members',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('role', sa.Enum('ADMINISTRATOR', 'EXECUTIVE', 'MANAGER', 'AGENT', name='member_role'), nullable=False, server_default='AGENT'),
        sa.Column('commission_split', sa.Numeric(5, 4), nullable=False, server_default='0'),
        sa.Column('status', sa.Enum('ACTIVE', 'INACTIVE', name='membership_status'), nullable=False, server_default='ACTIVE'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('left_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'commission_split BETWEEN 0 AND 1',
            name='ck_organization_members_split_range',
        ),
        sa.UniqueConstraint('organization_id', 'user_id', name='uq_organization_members_org_user'),
    )
    op.create_foreign_key(
        'organization_members_organization_id_fkey',
        'organization_members', 'organizations',
        ['organization_id'], ['id'],
        ondelete='CASCADE'
    )
    op.create_index('ix_organization_members_organization_id', 'organization_members', ['organization_id'])
    op.create_index('ix_organization_members_user_id', 'organization_members', ['user_id'])

    op.create_table(
        'audit_log',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('actor_user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('organization_id', UUID(as_uuid=True), nullable=True),
        sa.Column('entity_type', sa.String(length=30), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('changes', JSONB(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_audit_log_actor_user_id', 'audit_log', ['actor_user_id'])
    op.create_index('ix_audit_log_organization_id', 'audit_log', ['organization_id'])
    op.create_index('ix_audit_log_entity_id', 'audit_log', ['entity_id'])
    op.create_index('ix_audit_log_org_created_at', 'audit_log', ['organization_id', 'created_at'])


def downgrade() -> None:
    """Drop audit_log, organization_members and organizations tables and their enums."""
    op.drop_index('ix_audit_log_org_created_at', table_name='audit_log')
    op.drop_index('ix_audit_log_entity_id', table_name='audit_log')
    op.drop_index('ix_audit_log_organization_id', table_name='audit_log')
    op.drop_index('ix_audit_log_actor_user_id', table_name='audit_log')
    op.drop_table('audit_log')

    op.drop_index('ix_organization_members_user_id', table_name='organization_members')
    op.drop_index('ix_organization_members_organization_id', table_name='organization_members')
    op.drop_constraint('organization_members_organization_id_fkey', 'organization_members', type_='foreignkey')
    op.drop_table('organization_members')
    sa.Enum(name='membership_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='member_role').drop(op.get_bind(), checkfirst=True)

    op.drop_index('ix_organizations_status', table_name='organizations')
    op.drop_index('ix_organizations_parent_id', table_name='organizations')
    op.drop_constraint('organizations_parent_id_fkey', 'organizations', type_='foreignkey')
    op.drop_table('organizations')
    sa.Enum(name='organization_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='organization_type').drop(op.get_bind(), checkfirst=True)
