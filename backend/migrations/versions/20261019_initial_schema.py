"""Initial SiteStock schema: registry, ledger, audit trail

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

Creates:
1. projects, stores (central/project), categories, products
2. inventory_balances (materialized stock with optimistic version counter)
3. purchases, issues (soft-deletable movements with idempotency keys)
4. audit_events (append-only)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. REGISTRY
    # ==========================================================================
    op.create_table('projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='active'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_projects_deleted_at', 'projects', ['deleted_at'])

    op.create_table('stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id']),
        sa.CheckConstraint("type IN ('central', 'project')", name='ck_stores_type'),
        sa.CheckConstraint(
            "(type = 'central' AND project_id IS NULL) OR (type = 'project' AND project_id IS NOT NULL)",
            name='ck_stores_project_link',
        ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stores_type', 'stores', ['type'])
    op.create_index('ix_stores_project_id', 'stores', ['project_id'])
    op.create_index('ix_stores_deleted_at', 'stores', ['deleted_at'])

    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_categories_name', 'categories', ['name'])
    op.create_index('ix_categories_deleted_at', 'categories', ['deleted_at'])

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('restock_level', sa.Numeric(12, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.CheckConstraint('restock_level >= 0', name='ck_products_restock_level'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_category_name', 'products', ['category_id', 'name'])
    op.create_index('ix_products_deleted_at', 'products', ['deleted_at'])

    # ==========================================================================
    # 2. BALANCES
    # ==========================================================================
    op.create_table('inventory_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.UniqueConstraint('store_id', 'product_id', name='uq_inventory_balances_store_product'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_balances_quantity'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_inventory_balances_store_id', 'inventory_balances', ['store_id'])
    op.create_index('ix_inventory_balances_product_id', 'inventory_balances', ['product_id'])

    # ==========================================================================
    # 3. MOVEMENTS
    # ==========================================================================
    op.create_table('purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=False),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.Column('client_request_id', sa.String(length=64), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.UniqueConstraint('client_request_id'),
        sa.CheckConstraint('quantity > 0', name='ck_purchases_quantity'),
        sa.CheckConstraint('unit_cost >= 0', name='ck_purchases_unit_cost'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_purchases_store_id', 'purchases', ['store_id'])
    op.create_index('ix_purchases_product_id', 'purchases', ['product_id'])
    op.create_index('ix_purchases_store_product', 'purchases', ['store_id', 'product_id'])
    op.create_index('ix_purchases_purchase_date', 'purchases', ['purchase_date'])
    op.create_index('ix_purchases_deleted_at', 'purchases', ['deleted_at'])

    op.create_table('issues',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('from_store_id', sa.Integer(), nullable=False),
        sa.Column('to_store_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('issued_to_name', sa.String(length=255), nullable=True),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.Column('client_request_id', sa.String(length=64), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['from_store_id'], ['stores.id']),
        sa.ForeignKeyConstraint(['to_store_id'], ['stores.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.UniqueConstraint('client_request_id'),
        sa.CheckConstraint('quantity > 0', name='ck_issues_quantity'),
        sa.CheckConstraint('to_store_id IS NULL OR to_store_id <> from_store_id', name='ck_issues_distinct_stores'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_issues_from_store_id', 'issues', ['from_store_id'])
    op.create_index('ix_issues_to_store_id', 'issues', ['to_store_id'])
    op.create_index('ix_issues_product_id', 'issues', ['product_id'])
    op.create_index('ix_issues_from_product', 'issues', ['from_store_id', 'product_id'])
    op.create_index('ix_issues_to_product', 'issues', ['to_store_id', 'product_id'])
    op.create_index('ix_issues_issue_date', 'issues', ['issue_date'])
    op.create_index('ix_issues_deleted_at', 'issues', ['deleted_at'])

    # ==========================================================================
    # 4. AUDIT TRAIL
    # ==========================================================================
    op.create_table('audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_audit_events_store_id', 'audit_events', ['store_id'])
    op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'])
    op.create_index('ix_audit_events_entity_type', 'audit_events', ['entity_type'])
    op.create_index('ix_audit_events_entity_id', 'audit_events', ['entity_id'])
    op.create_index('ix_audit_events_actor_id', 'audit_events', ['actor_id'])
    op.create_index('ix_audit_events_occurred_at', 'audit_events', ['occurred_at'])
    op.create_index('ix_audit_events_store_occurred', 'audit_events', ['store_id', 'occurred_at'])


def downgrade():
    op.drop_table('audit_events')
    op.drop_table('issues')
    op.drop_table('purchases')
    op.drop_table('inventory_balances')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('stores')
    op.drop_table('projects')
