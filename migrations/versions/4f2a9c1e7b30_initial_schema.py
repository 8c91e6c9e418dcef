"""initial_schema

Revision ID: 4f2a9c1e7b30
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4f2a9c1e7b30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('hashed_password', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('last_active', sa.DateTime(), nullable=True),
        sa.Column('storage_used', sa.BigInteger(), nullable=False),
        sa.Column('storage_limit', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'files',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('path', sa.String(), nullable=False),
        sa.Column('url', sa.String(), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('mime_type', sa.String(length=255), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('is_folder', sa.Boolean(), nullable=False),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('parent_id', sa.String(length=32), nullable=True),
        sa.Column('uploader_id', sa.Integer(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['files.id']),
        sa.ForeignKeyConstraint(['uploader_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_files_name', 'files', ['name'])
    op.create_index('ix_files_is_deleted', 'files', ['is_deleted'])
    op.create_index('ix_files_parent_id', 'files', ['parent_id'])
    op.create_index('ix_files_uploader_id', 'files', ['uploader_id'])
    op.create_index(
        'uq_files_live_folder_name',
        'files',
        ['uploader_id', sa.text("coalesce(parent_id, '')"), 'name'],
        unique=True,
        postgresql_where=sa.text('is_folder AND NOT is_deleted'),
        sqlite_where=sa.text('is_folder AND NOT is_deleted'),
    )

    op.create_table(
        'shares',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('share_code', sa.String(length=32), nullable=False),
        sa.Column('extract_code', sa.String(length=16), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('access_limit', sa.Integer(), nullable=True),
        sa.Column('access_count', sa.Integer(), nullable=False),
        sa.Column('auto_fill_code', sa.Boolean(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_shares_id', 'shares', ['id'])
    op.create_index('ix_shares_share_code', 'shares', ['share_code'], unique=True)
    op.create_index('ix_shares_user_id', 'shares', ['user_id'])

    op.create_table(
        'share_files',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('share_id', sa.Integer(), nullable=False),
        sa.Column('file_id', sa.String(length=32), nullable=False),
        sa.ForeignKeyConstraint(['share_id'], ['shares.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['file_id'], ['files.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_share_files_id', 'share_files', ['id'])
    op.create_index('ix_share_files_share_id', 'share_files', ['share_id'])
    op.create_index('ix_share_files_file_id', 'share_files', ['file_id'])

    op.create_table(
        'share_visitors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('share_id', sa.Integer(), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('visit_count', sa.Integer(), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(), nullable=True),
        sa.Column('last_seen_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['share_id'], ['shares.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('share_id', 'fingerprint', name='uq_share_visitor'),
    )
    op.create_index('ix_share_visitors_id', 'share_visitors', ['id'])
    op.create_index('ix_share_visitors_share_id', 'share_visitors', ['share_id'])

def downgrade():
    op.drop_table('share_visitors')
    op.drop_table('share_files')
    op.drop_table('shares')
    op.drop_index('uq_files_live_folder_name', table_name='files')
    op.drop_table('files')
    op.drop_table('users')
