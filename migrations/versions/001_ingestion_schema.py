"""Ingestion pipeline schema.

Creates the source registry, the articles store, the durable ingestion job
queue, the ingestion audit log and the queue control table.

Revision ID: 001_ingestion_schema
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001_ingestion_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create ingestion tables."""
    op.create_table(
        'sources',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('feed_url', sa.String(length=500), nullable=True),
        sa.Column('scrape_enabled', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('fetch_frequency_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('url'),
    )
    op.create_index('ix_sources_is_active', 'sources', ['is_active'], unique=False)
    op.create_index('ix_sources_last_fetched_at', 'sources', ['last_fetched_at'], unique=False)

    op.create_table(
        'articles',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('source_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('author', sa.String(length=255), nullable=True),
        sa.Column('published_at', sa.DateTime(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='other'),
        sa.Column('image_url', sa.String(length=1000), nullable=True),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['source_id'], ['sources.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fingerprint'),
    )
    op.create_index('ix_articles_url', 'articles', ['url'], unique=False)
    op.create_index('ix_articles_source_id', 'articles', ['source_id'], unique=False)
    op.create_index('ix_articles_published_at', 'articles', ['published_at'], unique=False)
    op.create_index('ix_articles_category', 'articles', ['category'], unique=False)

    op.create_table(
        'ingestion_jobs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('source_id', sa.UUID(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('url', sa.String(length=1000), nullable=False),
        sa.Column('idempotency_key', sa.String(length=128), nullable=False),
        sa.Column('active_key', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('run_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('locked_until', sa.DateTime(), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('result', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['source_id'], ['sources.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('active_key'),
    )
    op.create_index('ix_ingestion_jobs_status_run_at', 'ingestion_jobs', ['status', 'run_at'], unique=False)
    op.create_index('ix_ingestion_jobs_idempotency_key', 'ingestion_jobs', ['idempotency_key'], unique=False)
    op.create_index('ix_ingestion_jobs_finished_at', 'ingestion_jobs', ['finished_at'], unique=False)

    op.create_table(
        'ingestion_logs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('source_id', sa.UUID(), nullable=True),
        sa.Column('job_id', sa.UUID(), nullable=True),
        sa.Column('job_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('articles_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('articles_added', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('articles_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['source_id'], ['sources.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ingestion_logs_source_id', 'ingestion_logs', ['source_id'], unique=False)
    op.create_index('ix_ingestion_logs_status', 'ingestion_logs', ['status'], unique=False)
    op.create_index(
        'ix_ingestion_logs_created_at',
        'ingestion_logs',
        [sa.text('created_at DESC')],
        unique=False,
    )

    op.create_table(
        'queue_state',
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('paused', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('name'),
    )

    print("  Created sources, articles, ingestion_jobs, ingestion_logs, queue_state")


def downgrade() -> None:
    """Drop ingestion tables."""
    op.drop_table('queue_state')

    op.drop_index('ix_ingestion_logs_created_at', table_name='ingestion_logs')
    op.drop_index('ix_ingestion_logs_status', table_name='ingestion_logs')
    op.drop_index('ix_ingestion_logs_source_id', table_name='ingestion_logs')
    op.drop_table('ingestion_logs')

    op.drop_index('ix_ingestion_jobs_finished_at', table_name='ingestion_jobs')
    op.drop_index('ix_ingestion_jobs_idempotency_key', table_name='ingestion_jobs')
    op.drop_index('ix_ingestion_jobs_status_run_at', table_name='ingestion_jobs')
    op.drop_table('ingestion_jobs')

    op.drop_index('ix_articles_category', table_name='articles')
    op.drop_index('ix_articles_published_at', table_name='articles')
    op.drop_index('ix_articles_source_id', table_name='articles')
    op.drop_index('ix_articles_url', table_name='articles')
    op.drop_table('articles')

    op.drop_index('ix_sources_last_fetched_at', table_name='sources')
    op.drop_index('ix_sources_is_active', table_name='sources')
    op.drop_table('sources')

    print("  Dropped ingestion tables")
