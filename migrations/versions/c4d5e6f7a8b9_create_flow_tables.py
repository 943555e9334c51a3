"""Create flows and flow_executions tables

Revision ID: c4d5e6f7a8b9
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'c4d5e6f7a8b9'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create flows table
    op.create_table('flows',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('graph', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('trigger_config', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_flows_tenant_status', 'flows', ['tenant_id', 'status'], unique=False)

    # Create flow_executions table
    op.create_table('flow_executions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('flow_id', sa.String(length=36), nullable=False),
        sa.Column('flow_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('flow_snapshot', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=True),
        sa.Column('conversation_id', sa.String(length=36), nullable=True),
        sa.Column('contact_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('current_node_id', sa.String(length=255), nullable=True),
        sa.Column('context', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('execution_path', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('step_log', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('resume_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('claimed_by', sa.String(length=64), nullable=True),
        sa.Column('claimed_until', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['flow_id'], ['flows.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create indexes
    op.create_index('idx_flow_executions_conversation', 'flow_executions', ['conversation_id', 'created_at'], unique=False)
    op.create_index('idx_flow_executions_status_resume', 'flow_executions', ['status', 'resume_at'], unique=False)
    op.create_index('idx_flow_executions_flow_id', 'flow_executions', ['flow_id'], unique=False)


def downgrade():
    # Drop indexes
    op.drop_index('idx_flow_executions_flow_id', table_name='flow_executions')
    op.drop_index('idx_flow_executions_status_resume', table_name='flow_executions')
    op.drop_index('idx_flow_executions_conversation', table_name='flow_executions')
    op.drop_index('idx_flows_tenant_status', table_name='flows')

    # Drop tables
    op.drop_table('flow_executions')
    op.drop_table('flows')
