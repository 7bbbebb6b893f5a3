"""Create integrations and github_installations tables

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'integrations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_integrations'),
        sa.UniqueConstraint('type', 'name', name='uq_integrations_type_name'),
    )
    op.create_index('ix_integrations_type', 'integrations', ['type'])

    op.create_table(
        'github_installations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('container_type', sa.String(), nullable=False),
        sa.Column('installation_id', sa.BigInteger(), nullable=False),
        sa.Column('repos', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_github_installations'),
        sa.UniqueConstraint('name', name='uq_github_installations_name'),
    )
    op.create_index(
        'ix_github_installations_installation_id', 'github_installations', ['installation_id'], unique=True
    )


def downgrade() -> None:
    op.drop_index('ix_github_installations_installation_id', table_name='github_installations')
    op.drop_table('github_installations')
    op.drop_index('ix_integrations_type', table_name='integrations')
    op.drop_table('integrations')
