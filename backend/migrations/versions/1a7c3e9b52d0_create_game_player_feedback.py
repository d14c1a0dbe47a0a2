"""create game, player and feedback tables

Revision ID: 1a7c3e9b52d0
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9b52d0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_code', sa.String(length=8), nullable=False),
        sa.Column('buy_in_amount', sa.Float(), nullable=False),
        sa.Column('phase', sa.String(length=32), nullable=False),
        sa.Column('dealer_token_hash', sa.String(length=256), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('game') as batch_op:
        batch_op.create_index(batch_op.f('ix_game_game_code'), ['game_code'], unique=True)
        batch_op.create_index(batch_op.f('ix_game_phase'), ['phase'], unique=False)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('buy_ins', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('wins', sa.Float(), nullable=True),
        sa.Column('cashed_out', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['game_id'], ['game.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_game_id'), ['game_id'], unique=False)

    op.create_table(
        'feedback',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('page_url', sa.String(length=1024), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade():
    op.drop_table('feedback')
    with op.batch_alter_table('player') as batch_op:
        batch_op.drop_index(batch_op.f('ix_player_game_id'))
    op.drop_table('player')
    with op.batch_alter_table('game') as batch_op:
        batch_op.drop_index(batch_op.f('ix_game_phase'))
        batch_op.drop_index(batch_op.f('ix_game_game_code'))
    op.drop_table('game')
