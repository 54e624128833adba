"""initial SDS lifecycle schema

Revision ID: a1c4e7f20b31
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'a1c4e7f20b31'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- tenants / users ---
    op.create_table(
        'tenants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='ACTIVE'),
        sa.Column('mailbox_email', sa.String(length=320), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )
    op.create_table(
        'user_tenants',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False,
                  server_default='EMPLOYEE'),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False,
                  server_default=sa.true()),
        sa.Column('notify_by_email', sa.Boolean(), nullable=False,
                  server_default=sa.true()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('user_id', 'tenant_id'),
    )
    op.create_index('idx_user_tenants_tenant_role', 'user_tenants',
                    ['tenant_id', 'role'])

    # --- chemical_records ---
    op.create_table(
        'chemical_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='ACTIVE'),
        sa.Column('product_name', sa.Text(), nullable=False),
        sa.Column('supplier', sa.String(length=200), nullable=True),
        sa.Column('catalog_number', sa.String(length=100), nullable=True),
        sa.Column('cas_number', sa.String(length=20), nullable=True),
        sa.Column('ec_number', sa.String(length=20), nullable=True),
        sa.Column('hazard_statements', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=True),
        sa.Column('registry_hazard_codes',
                  postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('precautionary_statements',
                  postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('pictograms', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=True),
        sa.Column('signal_word', sa.String(length=20), nullable=True),
        sa.Column('is_cmr', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('is_svhc', sa.Boolean(), nullable=False,
                  server_default=sa.false()),
        sa.Column('reach_status', sa.String(length=100), nullable=True),
        sa.Column('hazard_level', sa.Integer(), nullable=False,
                  server_default='1'),
        sa.Column('substitution_priority', sa.String(length=10), nullable=False,
                  server_default='LOW'),
        sa.Column('sds_key', sa.Text(), nullable=True),
        sa.Column('sds_version', sa.String(length=50), nullable=True),
        sa.Column('sds_date', sa.Date(), nullable=True),
        sa.Column('next_review_date', sa.Date(), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_registry_sync_at', sa.DateTime(timezone=True),
                  nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_chemical_records_tenant', 'chemical_records',
                    ['tenant_id'])
    op.create_index('idx_chemical_records_tenant_cas', 'chemical_records',
                    ['tenant_id', 'cas_number'])
    op.create_index('idx_chemical_records_tenant_catalog', 'chemical_records',
                    ['tenant_id', 'supplier', 'catalog_number'])

    # --- sds_update_suggestions ---
    op.create_table(
        'sds_update_suggestions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('origin_id', sa.Text(), nullable=False),
        sa.Column('document_name', sa.Text(), nullable=True),
        sa.Column('storage_key', sa.Text(), nullable=True),
        sa.Column('extracted_fields', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('extraction_hash', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['record_id'], ['chemical_records.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_sds_suggestions_tenant_status',
                    'sds_update_suggestions', ['tenant_id', 'status'])
    op.create_index('idx_sds_suggestions_hash', 'sds_update_suggestions',
                    ['tenant_id', 'extraction_hash'])

    # --- substitution_suggestions ---
    op.create_table(
        'substitution_suggestions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('alternatives', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['record_id'], ['chemical_records.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('record_id'),
    )

    # --- processed_attachments ---
    op.create_table(
        'processed_attachments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('message_id', sa.Text(), nullable=False),
        sa.Column('attachment_hash', sa.String(length=64), nullable=False),
        sa.Column('outcome', sa.String(length=20), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('uq_processed_attachments_tenant_message_hash',
                    'processed_attachments',
                    ['tenant_id', 'message_id', 'attachment_hash'],
                    unique=True)

    # --- sync_runs ---
    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('job', sa.String(length=30), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('found', sa.Integer(), nullable=True),
        sa.Column('applied', sa.Integer(), nullable=True),
        sa.Column('queued', sa.Integer(), nullable=True),
        sa.Column('discarded', sa.Integer(), nullable=True),
        sa.Column('failed', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_sync_runs_tenant_job_started', 'sync_runs',
                    ['tenant_id', 'job', 'started_at'])

    # --- audit_entries ---
    op.create_table(
        'audit_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(length=30), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('suggestion_id', sa.Integer(), nullable=True),
        sa.Column('sync_run_id', sa.Integer(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('changes', postgresql.JSONB(astext_type=sa.Text()),
                  nullable=False),
        sa.Column('extraction_hash', sa.String(length=64), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=False),
        sa.Column('origin_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['record_id'], ['chemical_records.id']),
        sa.ForeignKeyConstraint(['suggestion_id'],
                                ['sds_update_suggestions.id']),
        sa.ForeignKeyConstraint(['sync_run_id'], ['sync_runs.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_audit_entries_tenant_created', 'audit_entries',
                    ['tenant_id', 'created_at'])
    op.create_index('idx_audit_entries_record_hash', 'audit_entries',
                    ['tenant_id', 'record_id', 'extraction_hash'])

    # Append-only at the database level as well
    op.execute("""
        CREATE OR REPLACE FUNCTION audit_entries_append_only()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'audit_entries is append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER trg_audit_entries_append_only
        BEFORE UPDATE OR DELETE ON audit_entries
        FOR EACH ROW EXECUTE FUNCTION audit_entries_append_only();
    """)

    # --- notifications ---
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=40), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.Text(), nullable=True),
        sa.Column('dedup_key', sa.String(length=200), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['record_id'], ['chemical_records.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('uq_notifications_tenant_user_dedup', 'notifications',
                    ['tenant_id', 'user_id', 'dedup_key'], unique=True)
    op.create_index('idx_notifications_tenant_user_created', 'notifications',
                    ['tenant_id', 'user_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.execute("DROP TRIGGER IF EXISTS trg_audit_entries_append_only ON audit_entries")
    op.execute("DROP FUNCTION IF EXISTS audit_entries_append_only()")
    op.drop_table('audit_entries')
    op.drop_table('sync_runs')
    op.drop_table('processed_attachments')
    op.drop_table('substitution_suggestions')
    op.drop_table('sds_update_suggestions')
    op.drop_table('chemical_records')
    op.drop_table('user_tenants')
    op.drop_table('users')
    op.drop_table('tenants')
