# alembic revision: create clients, catalog, orders, draft sessions and app settings
from alembic import op
import sqlalchemy as sa

revision = '20261019_magic_order_base'
down_revision = None
branch_labels = None
depends_on = None

order_status = sa.Enum('pending', 'completed', 'cancelled', name='orderstatus')


def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(30), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_clients_name', 'clients', ['name'])

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.CheckConstraint('price >= 0', name='ck_product_price_nonneg'),
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.CheckConstraint('price >= 0', name='ck_variant_price_nonneg'),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('status', order_status, nullable=False, server_default='pending'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('amount_paid', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('balance', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('total >= 0', name='ck_order_total_nonneg'),
        sa.CheckConstraint('amount_paid >= 0 AND balance >= 0', name='ck_order_paid_nonneg'),
    )
    op.create_index('ix_orders_client_date', 'orders', ['client_id', 'date'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('variant_id', sa.String(36), sa.ForeignKey('product_variants.id', ondelete='SET NULL'), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint('quantity > 0', name='ck_item_quantity_positive'),
        sa.CheckConstraint('price >= 0 AND total >= 0', name='ck_item_prices_nonneg'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'draft_sessions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('session_key', sa.String(64), nullable=False, unique=True),
        sa.Column('message_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('draft_orders_json', sa.JSON(), nullable=False),
        sa.Column('phase1_response', sa.Text(), nullable=True),
        sa.Column('phase2_response', sa.Text(), nullable=True),
        sa.Column('phase3_response', sa.Text(), nullable=True),
        sa.Column('elapsed_time', sa.Integer(), nullable=True),
        sa.Column('use_real_data', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(64), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('app_settings')
    op.drop_table('draft_sessions')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_client_date', table_name='orders')
    op.drop_table('orders')
    order_status.drop(op.get_bind(), checkfirst=True)
    op.drop_index('ix_product_variants_product_id', table_name='product_variants')
    op.drop_table('product_variants')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
    op.drop_index('ix_clients_name', table_name='clients')
    op.drop_table('clients')
