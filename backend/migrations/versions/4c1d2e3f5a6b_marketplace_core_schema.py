"""marketplace core schema

Revision ID: 4c1d2e3f5a6b
Revises:
Create Date: 2026-09-14 09:12:31.204118

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1d2e3f5a6b'
down_revision = None
branch_labels = None
depends_on = None


def _create_missing(tables, name, *columns, **kw):
    if name not in tables:
        op.create_table(name, *columns, **kw)


def _ensure_indexes(insp, table, specs):
    try:
        idx = {i['name'] for i in insp.get_indexes(table)}
    except Exception:
        idx = set()
    for name, cols, unique in specs:
        if name not in idx:
            op.create_index(name, table, cols, unique=unique)


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    tables = insp.get_table_names()

    _create_missing(
        tables, 'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('account_type', sa.String(length=32), nullable=False),
        sa.Column('bicycle_store', sa.Boolean(), nullable=False),
        sa.Column('business_name', sa.String(length=160), nullable=True),
        sa.Column('logo_url', sa.String(length=1024), nullable=True),
        sa.Column('store_description', sa.Text(), nullable=True),
        sa.Column('store_phone', sa.String(length=32), nullable=True),
        sa.Column('store_address', sa.String(length=255), nullable=True),
        sa.Column('store_website', sa.String(length=255), nullable=True),
        sa.Column('payout_account_id', sa.String(length=64), nullable=True),
    )
    _create_missing(
        tables, 'canonical_products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('normalized_name', sa.String(length=255), nullable=False),
        sa.Column('upc', sa.String(length=64), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('manufacturer', sa.String(length=120), nullable=True),
        sa.Column('marketplace_category', sa.String(length=64), nullable=True),
        sa.Column('image_qa_completed_at', sa.DateTime(), nullable=True),
        sa.Column('image_qa_completed_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('canonical_product_id', sa.Integer(), sa.ForeignKey('canonical_products.id'), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('marketplace_category', sa.String(length=64), nullable=True),
        sa.Column('marketplace_subcategory', sa.String(length=64), nullable=True),
        sa.Column('marketplace_level_3_category', sa.String(length=64), nullable=True),
        sa.Column('bike_type', sa.String(length=64), nullable=True),
        sa.Column('frame_size', sa.String(length=32), nullable=True),
        sa.Column('condition_rating', sa.String(length=32), nullable=True),
        sa.Column('model_year', sa.Integer(), nullable=True),
        sa.Column('qoh', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('listing_type', sa.String(length=32), nullable=False, server_default='private_listing'),
        sa.Column('listing_status', sa.String(length=24), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('sold_at', sa.DateTime(), nullable=True),
        sa.Column('shipping_available', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('shipping_cost', sa.Float(), nullable=True),
        sa.Column('pickup_location', sa.String(length=255), nullable=True),
        sa.Column('primary_image_url', sa.String(length=1024), nullable=True),
        sa.Column('images_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'product_images',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('canonical_product_id', sa.Integer(), sa.ForeignKey('canonical_products.id'), nullable=True),
        sa.Column('storage_path', sa.String(length=512), nullable=True),
        sa.Column('external_url', sa.String(length=1024), nullable=True),
        sa.Column('cloudinary_url', sa.String(length=1024), nullable=True),
        sa.Column('card_url', sa.String(length=1024), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=1024), nullable=True),
        sa.Column('mobile_card_url', sa.String(length=1024), nullable=True),
        sa.Column('gallery_url', sa.String(length=1024), nullable=True),
        sa.Column('detail_url', sa.String(length=1024), nullable=True),
        sa.Column('is_downloaded', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('mime_type', sa.String(length=64), nullable=True),
        sa.Column('phash', sa.String(length=16), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=False, server_default='upload'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
    )
    _create_missing(
        tables, 'image_discovery_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('canonical_product_id', sa.Integer(), sa.ForeignKey('canonical_products.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('images_found', sa.Integer(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
    )
    _create_missing(
        tables, 'purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('buyer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('seller_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('offer_id', sa.Integer(), nullable=True),
        sa.Column('item_price', sa.Float(), nullable=False),
        sa.Column('original_price', sa.Float(), nullable=True),
        sa.Column('shipping_cost', sa.Float(), nullable=False),
        sa.Column('buyer_fee', sa.Float(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('platform_fee', sa.Float(), nullable=False),
        sa.Column('seller_payout_amount', sa.Float(), nullable=False),
        sa.Column('delivery_method', sa.String(length=32), nullable=False),
        sa.Column('shipping_address_json', sa.Text(), nullable=True),
        sa.Column('buyer_email', sa.String(length=255), nullable=True),
        sa.Column('buyer_phone', sa.String(length=32), nullable=True),
        sa.Column('stripe_session_id', sa.String(length=128), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('payment_status', sa.String(length=24), nullable=False),
        sa.Column('payout_status', sa.String(length=24), nullable=False),
        sa.Column('funds_status', sa.String(length=24), nullable=True),
        sa.Column('funds_release_at', sa.DateTime(), nullable=True),
        sa.Column('funds_released_at', sa.DateTime(), nullable=True),
        sa.Column('stripe_transfer_id', sa.String(length=128), nullable=True),
        sa.Column('payout_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('payout_error', sa.Text(), nullable=True),
        sa.Column('purchase_date', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'offers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('buyer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('seller_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('original_price', sa.Float(), nullable=False),
        sa.Column('offer_amount', sa.Float(), nullable=False),
        sa.Column('offer_percentage', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=True),
        sa.Column('payment_deadline', sa.DateTime(), nullable=True),
        sa.Column('stripe_session_id', sa.String(length=128), nullable=True),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'offer_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('offer_id', sa.Integer(), sa.ForeignKey('offers.id'), nullable=False),
        sa.Column('action_type', sa.String(length=16), nullable=False),
        sa.Column('offered_by_id', sa.Integer(), nullable=True),
        sa.Column('previous_amount', sa.Float(), nullable=True),
        sa.Column('new_amount', sa.Float(), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'support_tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_number', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('purchases.id'), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('seller_id', sa.Integer(), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('subject', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('assigned_to', sa.Integer(), nullable=True),
        sa.Column('resolution', sa.String(length=64), nullable=True),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'ticket_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('support_tickets.id'), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=False),
        sa.Column('sender_type', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'ticket_attachments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('support_tickets.id'), nullable=False),
        sa.Column('message_id', sa.Integer(), nullable=True),
        sa.Column('uploaded_by', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=1024), nullable=False),
        sa.Column('file_type', sa.String(length=64), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'ticket_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('support_tickets.id'), nullable=False),
        sa.Column('action', sa.String(length=24), nullable=False),
        sa.Column('old_value', sa.String(length=64), nullable=True),
        sa.Column('new_value', sa.String(length=64), nullable=True),
        sa.Column('performed_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'store_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('lightspeed_category_id', sa.String(length=64), nullable=True),
        sa.Column('product_ids_json', sa.Text(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'store_services',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_id', sa.String(length=128), nullable=False, unique=True),
        sa.Column('event_type', sa.String(length=64), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('request_id', sa.String(length=64), nullable=True),
        sa.Column('payload_hash', sa.String(length=128), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    _create_missing(
        tables, 'job_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_name', sa.String(length=64), nullable=False),
        sa.Column('ran_at', sa.DateTime(), nullable=False),
        sa.Column('ok', sa.Boolean(), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('processed', sa.Integer(), nullable=False),
        sa.Column('failed', sa.Integer(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
    )

    insp = sa.inspect(bind)
    # indexes
    _ensure_indexes(insp, 'users', [('ix_users_email', ['email'], True)])
    _ensure_indexes(insp, 'canonical_products', [('ix_canonical_products_upc', ['upc'], False)])
    _ensure_indexes(insp, 'products', [
        ('ix_products_user_id', ['user_id'], False),
        ('ix_products_canonical_product_id', ['canonical_product_id'], False),
        ('ix_products_marketplace_category', ['marketplace_category'], False),
        ('ix_products_marketplace_subcategory', ['marketplace_subcategory'], False),
        ('ix_products_listing_status', ['listing_status'], False),
        ('ix_products_is_active', ['is_active'], False),
    ])
    _ensure_indexes(insp, 'product_images', [
        ('ix_product_images_product_id', ['product_id'], False),
        ('ix_product_images_canonical_product_id', ['canonical_product_id'], False),
        ('ix_product_images_approval_status', ['approval_status'], False),
    ])
    _ensure_indexes(insp, 'image_discovery_jobs', [
        ('ix_image_discovery_jobs_canonical_product_id', ['canonical_product_id'], False),
        ('ix_image_discovery_jobs_status', ['status'], False),
    ])
    _ensure_indexes(insp, 'purchases', [
        ('ix_purchases_order_number', ['order_number'], True),
        ('ix_purchases_buyer_id', ['buyer_id'], False),
        ('ix_purchases_seller_id', ['seller_id'], False),
        ('ix_purchases_product_id', ['product_id'], False),
        ('ix_purchases_stripe_session_id', ['stripe_session_id'], True),
        ('ix_purchases_status', ['status'], False),
        ('ix_purchases_funds_status', ['funds_status'], False),
        ('ix_purchases_funds_release_at', ['funds_release_at'], False),
        ('ix_purchases_purchase_date', ['purchase_date'], False),
    ])
    _ensure_indexes(insp, 'offers', [
        ('ix_offers_product_id', ['product_id'], False),
        ('ix_offers_buyer_id', ['buyer_id'], False),
        ('ix_offers_seller_id', ['seller_id'], False),
        ('ix_offers_status', ['status'], False),
        ('ix_offers_expires_at', ['expires_at'], False),
    ])
    _ensure_indexes(insp, 'offer_history', [('ix_offer_history_offer_id', ['offer_id'], False)])
    _ensure_indexes(insp, 'support_tickets', [
        ('ix_support_tickets_ticket_number', ['ticket_number'], True),
        ('ix_support_tickets_user_id', ['user_id'], False),
        ('ix_support_tickets_purchase_id', ['purchase_id'], False),
        ('ix_support_tickets_seller_id', ['seller_id'], False),
        ('ix_support_tickets_status', ['status'], False),
        ('ix_support_tickets_created_at', ['created_at'], False),
    ])
    _ensure_indexes(insp, 'ticket_messages', [
        ('ix_ticket_messages_ticket_id', ['ticket_id'], False),
        ('ix_ticket_messages_created_at', ['created_at'], False),
    ])
    _ensure_indexes(insp, 'ticket_attachments', [('ix_ticket_attachments_ticket_id', ['ticket_id'], False)])
    _ensure_indexes(insp, 'ticket_history', [('ix_ticket_history_ticket_id', ['ticket_id'], False)])
    _ensure_indexes(insp, 'store_categories', [('ix_store_categories_user_id', ['user_id'], False)])
    _ensure_indexes(insp, 'store_services', [('ix_store_services_user_id', ['user_id'], False)])
    _ensure_indexes(insp, 'job_runs', [
        ('ix_job_runs_job_name', ['job_name'], False),
        ('ix_job_runs_ran_at', ['ran_at'], False),
    ])


def downgrade():
    for name in (
        'job_runs',
        'webhook_events',
        'store_services',
        'store_categories',
        'ticket_history',
        'ticket_attachments',
        'ticket_messages',
        'support_tickets',
        'offer_history',
        'offers',
        'purchases',
        'image_discovery_jobs',
        'product_images',
        'products',
        'canonical_products',
        'users',
    ):
        op.drop_table(name)
