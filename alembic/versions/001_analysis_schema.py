"""analysis_schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from sitecraft.features.analysis.catalog import MODULES, RULES
from sitecraft.platform.db.base import new_id


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

analysis_status = sa.Enum(
    'pending', 'fetching', 'analyzing', 'completed', 'partially_failed', 'failed', 'cancelled',
    name='analysisstatus',
)
job_status = sa.Enum('pending', 'running', 'completed', 'failed', name='jobstatus')
finding_severity = sa.Enum('critical', 'serious', 'moderate', 'minor', name='findingseverity')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    modules_table = op.create_table(
        'analysis_modules',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('key', sa.String(64), nullable=False),
        sa.Column('name', sa.String(128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
    )
    op.create_index(op.f('ix_analysis_modules_id'), 'analysis_modules', ['id'], unique=False)
    op.create_index(op.f('ix_analysis_modules_key'), 'analysis_modules', ['key'], unique=True)

    rules_table = op.create_table(
        'rules',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('module_id', sa.String(36), nullable=False),
        sa.Column('rule_key', sa.String(128), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('default_severity', finding_severity, nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['module_id'], ['analysis_modules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_rules_id'), 'rules', ['id'], unique=False)
    op.create_index(op.f('ix_rules_module_id'), 'rules', ['module_id'], unique=False)
    op.create_index(op.f('ix_rules_rule_key'), 'rules', ['rule_key'], unique=True)

    op.create_table(
        'analyses',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('target_url', sa.String(2048), nullable=False),
        sa.Column('asset_path', sa.String(512), nullable=False),
        sa.Column('status', analysis_status, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('overall_score', sa.Integer(), nullable=True),
        sa.Column('module_scores', sa.JSON(), nullable=True),
        sa.Column('total_findings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('critical_findings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_analyses_id'), 'analyses', ['id'], unique=False)
    op.create_index(op.f('ix_analyses_workspace_id'), 'analyses', ['workspace_id'], unique=False)
    op.create_index(op.f('ix_analyses_status'), 'analyses', ['status'], unique=False)
    op.create_index('idx_analyses_workspace_created', 'analyses', ['workspace_id', 'created_at'], unique=False)

    op.create_table(
        'analysis_jobs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('analysis_id', sa.String(36), nullable=False),
        sa.Column('module_id', sa.String(36), nullable=False),
        sa.Column('status', job_status, nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('findings_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['analysis_id'], ['analyses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['module_id'], ['analysis_modules.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('analysis_id', 'module_id', name='uq_analysis_jobs_analysis_module'),
    )
    op.create_index(op.f('ix_analysis_jobs_id'), 'analysis_jobs', ['id'], unique=False)
    op.create_index(op.f('ix_analysis_jobs_analysis_id'), 'analysis_jobs', ['analysis_id'], unique=False)
    op.create_index(op.f('ix_analysis_jobs_status'), 'analysis_jobs', ['status'], unique=False)

    op.create_table(
        'findings',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('analysis_id', sa.String(36), nullable=False),
        sa.Column('analysis_job_id', sa.String(36), nullable=False),
        sa.Column('rule_id', sa.String(36), nullable=False),
        sa.Column('rule_key', sa.String(128), nullable=False),
        sa.Column('severity', finding_severity, nullable=False),
        sa.Column('location', sa.String(1024), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['analysis_id'], ['analyses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['analysis_job_id'], ['analysis_jobs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['rule_id'], ['rules.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_findings_id'), 'findings', ['id'], unique=False)
    op.create_index(op.f('ix_findings_analysis_id'), 'findings', ['analysis_id'], unique=False)
    op.create_index(op.f('ix_findings_analysis_job_id'), 'findings', ['analysis_job_id'], unique=False)
    op.create_index(op.f('ix_findings_severity'), 'findings', ['severity'], unique=False)
    op.create_index('idx_findings_analysis_severity', 'findings', ['analysis_id', 'severity'], unique=False)

    # Seed the catalog
    module_ids = {entry['key']: new_id() for entry in MODULES}
    op.bulk_insert(
        modules_table,
        [{'id': module_ids[entry['key']], 'is_active': True, **entry} for entry in MODULES],
    )
    op.bulk_insert(
        rules_table,
        [
            {
                'id': new_id(),
                'module_id': module_ids[entry['module']],
                'rule_key': entry['rule_key'],
                'name': entry['name'],
                'default_severity': entry['default_severity'],
            }
            for entry in RULES
        ],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('findings')
    op.drop_table('analysis_jobs')
    op.drop_table('analyses')
    op.drop_table('rules')
    op.drop_table('analysis_modules')
    bind = op.get_bind()
    finding_severity.drop(bind, checkfirst=True)
    job_status.drop(bind, checkfirst=True)
    analysis_status.drop(bind, checkfirst=True)
