"""UnitTrack initial schema

Revision ID: 20261018_0900_unittrack_initial
Revises: 
Create Date: 2026-10-18 09:00:00.000000

Creates the inventory tables:
- warehouses / cabinets: locations and their remote inventory mapping
- product_stock_units: one row per physical unit
- warehouse_transfers / warehouse_transfer_details: transfer headers and per-unit lines
- product_stock_usage_history: audit row per unit mutation
- shrinkage_events: append-only loss ledger, unique per (unit, source, reason)
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '20261018_0900_unittrack_initial'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    'transfer_type': ('internal', 'external'),
    'transfer_priority': ('normal', 'high', 'urgent'),
    'item_condition': ('good', 'damaged', 'needs_inspection'),
    'movement_type': ('transfer', 'checkin', 'checkout', 'other'),
    'usage_action': ('transfer', 'checkin', 'checkout', 'write_off'),
    'shrinkage_source': ('manual', 'transfer_missing'),
    'shrinkage_reason': ('consumed', 'damaged', 'other'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create inventory tables."""
    connection = op.get_bind()
    for name in ENUMS:
        _enum(name).create(connection, checkfirst=True)
    
    op.create_table(
        'warehouses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('timezone', sa.String(64), server_default='UTC', nullable=False,
                  comment='IANA zone used for remote document dates'),
        sa.Column('external_location_id', sa.Integer, nullable=True, comment='Remote company/location id'),
        sa.Column('external_consumables_storage_id', sa.Integer, nullable=True),
        sa.Column('external_sales_storage_id', sa.Integer, nullable=True),
        sa.Column('is_distribution_center', sa.Boolean, server_default='false', nullable=False,
                  comment='Central stock pool; no remote documents are created for it'),
        *_timestamps(),
        sa.UniqueConstraint('code', name='uq_warehouses_code'),
    )
    
    op.create_table(
        'cabinets',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_cabinets_warehouse_id', 'cabinets', ['warehouse_id'])
    
    op.create_table(
        'product_stock_units',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('barcode', sa.Integer, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('current_warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('current_cabinet_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('cabinets.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_being_used', sa.Boolean, server_default='false', nullable=False),
        sa.Column('is_kit', sa.Boolean, server_default='false', nullable=False),
        sa.Column('is_deleted', sa.Boolean, server_default='false', nullable=False),
        sa.Column('is_empty', sa.Boolean, server_default='false', nullable=False),
        sa.Column('number_of_uses', sa.Integer, server_default='0', nullable=False),
        sa.Column('first_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_by_employee_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_product_stock_units_barcode', 'product_stock_units', ['barcode'])
    op.create_index('ix_product_stock_units_current_cabinet_id', 'product_stock_units', ['current_cabinet_id'])
    op.create_index(
        'ix_product_stock_units_warehouse_barcode',
        'product_stock_units',
        ['current_warehouse_id', 'barcode'],
    )
    
    op.create_table(
        'warehouse_transfers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('transfer_number', sa.String(100), nullable=False),
        sa.Column('transfer_type', _enum('transfer_type'), nullable=False),
        sa.Column('source_warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('destination_warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id'), nullable=False),
        sa.Column('cabinet_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('cabinets.id', ondelete='SET NULL'), nullable=True),
        sa.Column('initiated_by', sa.String(255), nullable=False),
        sa.Column('total_items', sa.Integer, server_default='0', nullable=False),
        sa.Column('priority', _enum('transfer_priority'), server_default='normal', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('is_completed', sa.Boolean, server_default='false', nullable=False),
        sa.Column('is_pending', sa.Boolean, server_default='true', nullable=False),
        sa.Column('is_cancelled', sa.Boolean, server_default='false', nullable=False),
        sa.Column('completed_by', sa.String(255), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('remote_replicated_at', sa.DateTime(timezone=True), nullable=True,
                  comment='Set once documents were posted to the remote inventory API'),
        *_timestamps(),
        sa.UniqueConstraint('transfer_number', name='uq_warehouse_transfers_transfer_number'),
    )
    op.create_index('ix_warehouse_transfers_source_warehouse_id', 'warehouse_transfers', ['source_warehouse_id'])
    op.create_index(
        'ix_warehouse_transfers_destination_warehouse_id',
        'warehouse_transfers',
        ['destination_warehouse_id'],
    )
    
    op.create_table(
        'warehouse_transfer_details',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('transfer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouse_transfers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_stock_unit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('product_stock_units.id'), nullable=False),
        sa.Column('quantity_transferred', sa.Integer, server_default='1', nullable=False),
        sa.Column('item_condition', _enum('item_condition'), server_default='good', nullable=False),
        sa.Column('is_received', sa.Boolean, server_default='false', nullable=False),
        sa.Column('received_by', sa.String(255), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_warehouse_transfer_details_transfer_id', 'warehouse_transfer_details', ['transfer_id'])
    op.create_index(
        'ix_warehouse_transfer_details_product_stock_unit_id',
        'warehouse_transfer_details',
        ['product_stock_unit_id'],
    )
    
    op.create_table(
        'product_stock_usage_history',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('product_stock_unit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('product_stock_units.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('warehouse_transfer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouse_transfers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('movement_type', _enum('movement_type'), nullable=False),
        sa.Column('action', _enum('usage_action'), nullable=False),
        sa.Column('previous_warehouse_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('new_warehouse_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('usage_date', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        'ix_product_stock_usage_history_product_stock_unit_id',
        'product_stock_usage_history',
        ['product_stock_unit_id'],
    )
    op.create_index(
        'ix_product_stock_usage_history_warehouse_transfer_id',
        'product_stock_usage_history',
        ['warehouse_transfer_id'],
    )
    
    op.create_table(
        'shrinkage_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('source', _enum('shrinkage_source'), nullable=False),
        sa.Column('reason', _enum('shrinkage_reason'), nullable=False),
        sa.Column('quantity', sa.Integer, server_default='1', nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('product_stock_unit_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('product_stock_units.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_barcode', sa.Integer, nullable=True),
        sa.Column('product_description', sa.Text, nullable=True),
        sa.Column('warehouse_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transfer_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('warehouse_transfers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transfer_number', sa.String(100), nullable=True),
        sa.Column('source_warehouse_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('destination_warehouse_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by_user_id', sa.String(255), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_shrinkage_events_source', 'shrinkage_events', ['source'])
    op.create_index('ix_shrinkage_events_warehouse_id', 'shrinkage_events', ['warehouse_id'])
    op.create_index('ix_shrinkage_events_transfer_id', 'shrinkage_events', ['transfer_id'])
    op.create_index(
        'uq_shrinkage_events_unit_source_reason',
        'shrinkage_events',
        ['product_stock_unit_id', 'source', 'reason'],
        unique=True,
        postgresql_where=sa.text('product_stock_unit_id IS NOT NULL'),
    )


def downgrade() -> None:
    """Drop inventory tables."""
    op.drop_index('uq_shrinkage_events_unit_source_reason', table_name='shrinkage_events')
    op.drop_table('shrinkage_events')
    op.drop_table('product_stock_usage_history')
    op.drop_table('warehouse_transfer_details')
    op.drop_table('warehouse_transfers')
    op.drop_table('product_stock_units')
    op.drop_table('cabinets')
    op.drop_table('warehouses')
    
    connection = op.get_bind()
    for name in reversed(list(ENUMS)):
        _enum(name).drop(connection, checkfirst=True)
