"""add_favorites_and_file_access

Revision ID: 9c3e1d7a5b42
Revises: 4f2a9c1e7b30
Create Date: 2026-10-18 15:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9c3e1d7a5b42'
down_revision: Union[str, Sequence[str], None] = '4f2a9c1e7b30'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'file_accesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('file_id', sa.String(length=32), nullable=False),
        sa.Column('accessed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['file_id'], ['files.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_file_accesses_id', 'file_accesses', ['id'])
    op.create_index('ix_file_accesses_file_id', 'file_accesses', ['file_id'])
    op.create_index('ix_file_accesses_user_time', 'file_accesses', ['user_id', 'accessed_at'])

    op.create_table(
        'favorite_folders',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1024), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_favorite_folders_user_id', 'favorite_folders', ['user_id'])

    op.create_table(
        'favorites',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('file_id', sa.String(length=32), nullable=False),
        sa.Column('folder_id', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['file_id'], ['files.id']),
        sa.ForeignKeyConstraint(['folder_id'], ['favorite_folders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('folder_id', 'file_id', name='uq_favorite_folder_file'),
    )
    op.create_index('ix_favorites_id', 'favorites', ['id'])
    op.create_index('ix_favorites_user_id', 'favorites', ['user_id'])
    op.create_index('ix_favorites_file_id', 'favorites', ['file_id'])
    op.create_index('ix_favorites_folder_id', 'favorites', ['folder_id'])


def downgrade():
    op.drop_table('favorites')
    op.drop_table('favorite_folders')
    op.drop_table('file_accesses')
