"""Create articles table

Revision ID: 001_articles
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector


# revision identifiers, used by Alembic.
revision: str = '001_articles'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CATEGORIES = (
    'CYBERSECURITY',
    'AI_EMERGING_TECH',
    'SOFTWARE_DEVELOPMENT',
    'HARDWARE_DEVICES',
    'TECH_INDUSTRY_BUSINESS',
    'OTHER',
)
STATUSES = ('PENDING', 'COMPLETED', 'FAILED')


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    category = postgresql.ENUM(*CATEGORIES, name='category')
    status = postgresql.ENUM(*STATUSES, name='classification_status')

    op.create_table(
        'articles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('url', sa.String(1000), nullable=False),
        sa.Column('source', sa.String(100), nullable=False),
        sa.Column('source_id', sa.String(200), nullable=False),
        sa.Column('author', sa.String(200), nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('fetched_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp()),
        sa.Column('category', category, nullable=True),
        sa.Column('category_score', sa.Float(), nullable=True),
        sa.Column('classification_status', status, nullable=False, server_default='PENDING'),
        sa.Column('metadata', postgresql.JSONB(), server_default='{}'),
        sa.Column('embedding', Vector(768), nullable=True),
        sa.UniqueConstraint('url', name='uq_articles_url'),
        sa.UniqueConstraint('source', 'source_id', name='uq_articles_source_source_id'),
    )

    op.create_index('ix_articles_published_at', 'articles', ['published_at'])
    op.create_index('ix_articles_category', 'articles', ['category'])
    op.create_index('ix_articles_classification_status', 'articles', ['classification_status'])

    # HNSW vector index for cosine similarity search
    op.execute("""
        CREATE INDEX ix_articles_embedding
        ON articles
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)

    # Full-text index; the expression must match the search query exactly
    op.execute("""
        CREATE INDEX ix_articles_fulltext
        ON articles
        USING gin (to_tsvector('english'::regconfig, title || ' ' || content))
    """)


def downgrade() -> None:
    op.drop_table('articles')
    op.execute("DROP TYPE IF EXISTS classification_status")
    op.execute("DROP TYPE IF EXISTS category")
