"""create pricing schema, rule, assignment and admin user tables

Revision ID: 3b7e0c1d9a21
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3b7e0c1d9a21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'pricing_schemas',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_pricing_schemas'),
    )

    op.create_table(
        'pricing_schema_rules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('schema_id', sa.String(length=36), nullable=False),
        sa.Column('scope_type', sa.String(length=16), nullable=False),
        sa.Column('scope_value', sa.String(length=255), nullable=True),
        sa.Column('scope_key', sa.String(length=300), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 4), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_pricing_schema_rules'),
        sa.ForeignKeyConstraint(
            ['schema_id'], ['pricing_schemas.id'],
            name='fk_pricing_schema_rules_schema_id_pricing_schemas',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint(
            "scope_type IN ('product','subcategory','category','global')",
            name='ck_pricing_schema_rules_scope_type',
        ),
        sa.CheckConstraint(
            "discount_type IN ('percentage','fixed_price','fixed_discount')",
            name='ck_pricing_schema_rules_discount_type',
        ),
        sa.CheckConstraint('discount_value >= 0', name='ck_pricing_schema_rules_discount_value_non_negative'),
    )
    op.create_index('ix_pricing_schema_rules_schema_id', 'pricing_schema_rules', ['schema_id'])
    # 同一 schema 内 active 规则 scope 唯一（并发重复插入由这里拦下）
    op.create_index(
        'ux_pricing_schema_rules_active_scope',
        'pricing_schema_rules',
        ['schema_id', 'scope_key'],
        unique=True,
        postgresql_where=sa.text('active'),
        sqlite_where=sa.text('active = 1'),
    )

    op.create_table(
        'customer_pricing_schemas',
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('schema_id', sa.String(length=36), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('customer_id', 'schema_id', name='pk_customer_pricing_schemas'),
        sa.ForeignKeyConstraint(
            ['schema_id'], ['pricing_schemas.id'],
            name='fk_customer_pricing_schemas_schema_id_pricing_schemas',
            ondelete='CASCADE',
        ),
    )
    op.create_index(
        'ix_customer_pricing_schemas_customer_priority',
        'customer_pricing_schemas',
        ['customer_id', 'priority'],
    )

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('hashed_password', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('is_superuser', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id', name='pk_admin_users'),
    )
    op.create_index('ix_admin_users_id', 'admin_users', ['id'])
    op.create_index('ix_admin_users_username', 'admin_users', ['username'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_admin_users_username', table_name='admin_users')
    op.drop_index('ix_admin_users_id', table_name='admin_users')
    op.drop_table('admin_users')

    op.drop_index('ix_customer_pricing_schemas_customer_priority', table_name='customer_pricing_schemas')
    op.drop_table('customer_pricing_schemas')

    op.drop_index('ux_pricing_schema_rules_active_scope', table_name='pricing_schema_rules')
    op.drop_index('ix_pricing_schema_rules_schema_id', table_name='pricing_schema_rules')
    op.drop_table('pricing_schema_rules')

    op.drop_table('pricing_schemas')
