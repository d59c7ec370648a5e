"""Initial schema: users, bonuses, roulette codes, prizes and spins

Revision ID: 0001
Revises:
Create Date: 2025-07-11 00:00:00

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # --- user table ---
    op.create_table('user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='client'),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0.00'),
        sa.Column('vip_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unlocked_features', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('first_spin_demo_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('real_spin_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('validated_for_spin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('spin_validated_by', sa.Integer(), nullable=True),
        sa.Column('spin_validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['spin_validated_by'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_username'), 'user', ['username'], unique=True)
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)
    op.create_index(op.f('ix_user_role'), 'user', ['role'], unique=False)
    op.create_index(op.f('ix_user_is_active'), 'user', ['is_active'], unique=False)
    op.create_index(op.f('ix_user_validated_for_spin'), 'user', ['validated_for_spin'], unique=False)

    # --- roulette_code table ---
    op.create_table('roulette_code',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('grants_spin', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('used_by', sa.Integer(), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('uses_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['user.id']),
        sa.ForeignKeyConstraint(['used_by'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_roulette_code_code'), 'roulette_code', ['code'], unique=True)
    op.create_index(op.f('ix_roulette_code_created_by'), 'roulette_code', ['created_by'], unique=False)
    op.create_index(op.f('ix_roulette_code_is_active'), 'roulette_code', ['is_active'], unique=False)

    # --- roulette_prize table ---
    op.create_table('roulette_prize',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('prize_type', sa.String(length=50), nullable=False),
        sa.Column('prize_behavior', sa.String(length=20), nullable=False, server_default='manual'),
        sa.Column('custom_config', sa.JSON(), nullable=True),
        sa.Column('prize_value', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('prize_metadata', sa.JSON(), nullable=True),
        sa.Column('probability', sa.Numeric(5, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('color', sa.String(length=7), nullable=False, server_default='#000000'),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('min_deposit_required', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('position', name='uq_roulette_prize_position')
    )
    op.create_index(op.f('ix_roulette_prize_is_active'), 'roulette_prize', ['is_active'], unique=False)

    # --- roulette_spin table ---
    op.create_table('roulette_spin',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('prize_id', sa.Integer(), nullable=False),
        sa.Column('spin_type', sa.String(length=20), nullable=False),
        sa.Column('is_real_prize', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('code_used', sa.String(length=20), nullable=True),
        sa.Column('spin_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('prize_status', sa.String(length=30), nullable=False, server_default='demo'),
        sa.Column('validated_by', sa.Integer(), nullable=True),
        sa.Column('validated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('prize_expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['prize_id'], ['roulette_prize.id']),
        sa.ForeignKeyConstraint(['validated_by'], ['user.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_roulette_spin_prize_id'), 'roulette_spin', ['prize_id'], unique=False)
    op.create_index('ix_roulette_spin_user_type', 'roulette_spin', ['user_id', 'spin_type'], unique=False)
    op.create_index('ix_roulette_spin_prize_status', 'roulette_spin', ['prize_status'], unique=False)

    # --- bonus table ---
    op.create_table('bonus',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('min_deposit', sa.Numeric(10, 2), nullable=False, server_default='0.00'),
        sa.Column('max_bonus', sa.Numeric(10, 2), nullable=True),
        sa.Column('assigned_to', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('valid_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source_spin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['assigned_to'], ['user.id']),
        sa.ForeignKeyConstraint(['assigned_by'], ['user.id']),
        sa.ForeignKeyConstraint(['source_spin_id'], ['roulette_spin.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bonus_type'), 'bonus', ['type'], unique=False)
    op.create_index(op.f('ix_bonus_assigned_to'), 'bonus', ['assigned_to'], unique=False)
    op.create_index(op.f('ix_bonus_status'), 'bonus', ['status'], unique=False)
    op.create_index(op.f('ix_bonus_source_spin_id'), 'bonus', ['source_spin_id'], unique=False)
    op.create_index('ix_bonus_assigned_to_type_status', 'bonus', ['assigned_to', 'type', 'status'], unique=False)


def downgrade():
    op.drop_table('bonus')
    op.drop_table('roulette_spin')
    op.drop_table('roulette_prize')
    op.drop_table('roulette_code')
    op.drop_table('user')
