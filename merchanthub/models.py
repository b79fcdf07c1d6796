from flask_login import UserMixin
from datetime import datetime, timezone
from extensions import db
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from flask import current_app


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() + 'Z' if value else None


class TokenMixin:
    """Bearer tokens bound to the account's password version."""
    token_kind = None

    def get_token(self, salt='access-token'):
        s = URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=salt)
        return s.dumps({'kind': self.token_kind, 'id': self.id, 'pw_version': self.password_version})

    @staticmethod
    def read_token(token, salt='access-token', expires_sec=None):
        if expires_sec is None:
            expires_sec = current_app.config['ACCESS_TOKEN_EXPIRES_SEC']
        s = URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=salt)
        try:
            return s.loads(token, max_age=expires_sec)
        except (BadSignature, SignatureExpired):
            return None


class Merchant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False) # Used in URL: /api/public/menu/<code>
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.String(255))
    country = db.Column(db.String(50), default='Australia')
    currency = db.Column(db.String(3), nullable=False, default='AUD')
    timezone = db.Column(db.String(50), default='Australia/Sydney')
    enable_tax = db.Column(db.Boolean, default=False, nullable=False)
    tax_percentage = db.Column(db.Float, default=0.0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_open = db.Column(db.Boolean, default=True, nullable=False)
    referred_by_influencer_id = db.Column(db.Integer, db.ForeignKey('influencer.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    memberships = db.relationship('MerchantUser', backref='merchant', cascade="all, delete-orphan")
    subscription = db.relationship('MerchantSubscription', backref='merchant', uselist=False)
    balance_account = db.relationship('MerchantBalance', backref='merchant', uselist=False)
    referred_by = db.relationship('Influencer', backref='referred_merchants')

    @property
    def owner(self):
        return next((m.user for m in self.memberships if m.role == 'OWNER' and m.is_active), None)

    def to_dict(self):
        owner = self.owner
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'country': self.country,
            'currency': self.currency,
            'timezone': self.timezone,
            'enableTax': self.enable_tax,
            'taxPercentage': self.tax_percentage,
            'isActive': self.is_active,
            'isOpen': self.is_open,
            'owner': {'id': owner.id, 'name': owner.name, 'email': owner.email} if owner else None,
            'createdAt': isoformat(self.created_at),
        }


class User(TokenMixin, UserMixin, db.Model):
    token_kind = 'user'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False) # 'SUPER_ADMIN', 'MERCHANT_OWNER' or 'MERCHANT_STAFF'
    password_version = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    memberships = db.relationship('MerchantUser', backref='user', cascade="all, delete-orphan")

    @property
    def is_superadmin(self):
        return self.role == 'SUPER_ADMIN'

    @property
    def is_influencer(self):
        return False

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'isActive': self.is_active,
            'merchants': [
                {'merchantId': m.merchant_id, 'code': m.merchant.code, 'role': m.role}
                for m in self.memberships if m.is_active
            ],
            'createdAt': isoformat(self.created_at),
        }


class MerchantUser(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    role = db.Column(db.String(10), nullable=False, default='STAFF') # 'OWNER' or 'STAFF'
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (db.UniqueConstraint('merchant_id', 'user_id'),)


menu_category_association = db.Table('menu_category_association',
    db.Column('menu_id', db.Integer, db.ForeignKey('menu.id'), primary_key=True),
    db.Column('category_id', db.Integer, db.ForeignKey('menu_category.id'), primary_key=True)
)


class MenuCategory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class Menu(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float, nullable=False)
    image_url = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_best_seller = db.Column(db.Boolean, default=False, nullable=False)
    is_signature = db.Column(db.Boolean, default=False, nullable=False)
    track_stock = db.Column(db.Boolean, default=False, nullable=False)
    stock_qty = db.Column(db.Integer, nullable=True)
    schedule_enabled = db.Column(db.Boolean, default=False, nullable=False)
    schedule_start_time = db.Column(db.Time, nullable=True)
    schedule_end_time = db.Column(db.Time, nullable=True)
    schedule_days = db.Column(db.String(20), nullable=True) # Comma separated indices 0-6
    deleted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    categories = db.relationship('MenuCategory', secondary=menu_category_association, backref='menus')
    addon_links = db.relationship('MenuAddonCategory', backref='menu', cascade="all, delete-orphan",
                                  order_by='MenuAddonCategory.display_order')


class AddonCategory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    min_selection = db.Column(db.Integer, nullable=False, default=0)
    max_selection = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)
    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    items = db.relationship('AddonItem', backref='category', order_by='AddonItem.display_order')
    menu_links = db.relationship('MenuAddonCategory', backref='addon_category', cascade="all, delete-orphan")

    @property
    def live_items(self):
        return [item for item in self.items if item.deleted_at is None]

    def to_dict(self, include_items=True):
        data = {
            'id': self.id,
            'merchantId': self.merchant_id,
            'name': self.name,
            'description': self.description,
            'minSelection': self.min_selection,
            'maxSelection': self.max_selection,
            'isActive': self.is_active,
            'menuCount': len(self.menu_links),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }
        if include_items:
            data['addonItems'] = [item.to_dict() for item in self.live_items]
        return data


class AddonItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    addon_category_id = db.Column(db.Integer, db.ForeignKey('addon_category.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float, nullable=False, default=0.0)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    track_stock = db.Column(db.Boolean, default=False, nullable=False)
    stock_qty = db.Column(db.Integer, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    deleted_at = db.Column(db.DateTime, nullable=True)
    deleted_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'addonCategoryId': self.addon_category_id,
            'name': self.name,
            'description': self.description,
            'price': self.price,
            'isActive': self.is_active,
            'trackStock': self.track_stock,
            'stockQty': self.stock_qty,
            'displayOrder': self.display_order,
        }


class MenuAddonCategory(db.Model):
    menu_id = db.Column(db.Integer, db.ForeignKey('menu.id'), primary_key=True)
    addon_category_id = db.Column(db.Integer, db.ForeignKey('addon_category.id'), primary_key=True)
    is_required = db.Column(db.Boolean, default=False, nullable=False)
    display_order = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {
            'menuId': self.menu_id,
            'menuName': self.menu.name,
            'addonCategoryId': self.addon_category_id,
            'addonCategoryName': self.addon_category.name,
            'isRequired': self.is_required,
            'displayOrder': self.display_order,
        }


class Customer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, default=utcnow)


class Order(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey('customer.id'), nullable=True)
    order_number = db.Column(db.String(40), unique=True, nullable=False)
    order_type = db.Column(db.String(20), nullable=False, default='DINE_IN') # 'DINE_IN' or 'TAKEAWAY'
    table_number = db.Column(db.String(10))
    status = db.Column(db.String(20), nullable=False, default='PENDING')
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text)
    placed_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    items = db.relationship('OrderItem', backref='order', cascade="all, delete-orphan")
    history = db.relationship('OrderStatusHistory', backref='order', cascade="all, delete-orphan",
                              order_by='OrderStatusHistory.created_at')
    merchant = db.relationship('Merchant')
    customer = db.relationship('Customer', backref='orders')

    def to_dict(self, public=False):
        data = {
            'id': self.id,
            'orderNumber': self.order_number,
            'orderType': self.order_type,
            'tableNumber': self.table_number,
            'status': self.status,
            'subtotal': self.subtotal,
            'taxAmount': self.tax_amount,
            'totalAmount': self.total_amount,
            'notes': self.notes,
            'placedAt': isoformat(self.placed_at),
            'updatedAt': isoformat(self.updated_at),
            'items': [item.to_dict() for item in self.items],
            'merchant': {
                'code': self.merchant.code,
                'name': self.merchant.name,
                'currency': self.merchant.currency,
            },
        }
        if self.customer and not public:
            data['customer'] = {
                'id': self.customer.id,
                'name': self.customer.name,
                'email': self.customer.email,
                'phone': self.customer.phone,
            }
        elif self.customer:
            data['customerName'] = self.customer.name
        return data


class OrderItem(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=False)
    menu_id = db.Column(db.Integer, db.ForeignKey('menu.id'), nullable=False)
    menu_name = db.Column(db.String(100), nullable=False)
    menu_price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    subtotal = db.Column(db.Float, nullable=False)
    notes = db.Column(db.Text)
    addons = db.relationship('OrderItemAddon', backref='order_item', cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'menuId': self.menu_id,
            'menuName': self.menu_name,
            'menuPrice': self.menu_price,
            'quantity': self.quantity,
            'subtotal': self.subtotal,
            'notes': self.notes,
            'addons': [{
                'addonItemId': a.addon_item_id,
                'addonName': a.addon_name,
                'addonPrice': a.addon_price,
                'quantity': a.quantity,
                'subtotal': a.subtotal,
            } for a in self.addons],
        }


class OrderItemAddon(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey('order_item.id'), nullable=False)
    addon_item_id = db.Column(db.Integer, db.ForeignKey('addon_item.id'), nullable=False)
    addon_name = db.Column(db.String(100), nullable=False)
    addon_price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    subtotal = db.Column(db.Float, nullable=False)


class OrderStatusHistory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=False)
    from_status = db.Column(db.String(20))
    to_status = db.Column(db.String(20), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    note = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)


class SubscriptionPlan(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, default='Standard')
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    trial_days = db.Column(db.Integer, default=30, nullable=False)
    monthly_price_aud = db.Column(db.Float, default=15.0, nullable=False)
    monthly_price_idr = db.Column(db.Float, default=100000.0, nullable=False)
    order_fee_aud = db.Column(db.Float, default=0.04, nullable=False)
    order_fee_idr = db.Column(db.Float, default=250.0, nullable=False)
    influencer_first_commission_percent = db.Column(db.Float, default=10.0, nullable=False)
    influencer_recurring_commission_percent = db.Column(db.Float, default=5.0, nullable=False)
    influencer_min_withdrawal_aud = db.Column(db.Float, default=20.0, nullable=False)
    influencer_min_withdrawal_idr = db.Column(db.Float, default=100000.0, nullable=False)

    def monthly_price(self, currency):
        return self.monthly_price_idr if currency == 'IDR' else self.monthly_price_aud

    def order_fee(self, currency):
        return self.order_fee_idr if currency == 'IDR' else self.order_fee_aud

    def min_withdrawal(self, currency):
        return self.influencer_min_withdrawal_idr if currency == 'IDR' else self.influencer_min_withdrawal_aud

    @staticmethod
    def active():
        return SubscriptionPlan.query.filter_by(is_active=True).order_by(SubscriptionPlan.id.desc()).first()


class MerchantSubscription(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), unique=True, nullable=False)
    type = db.Column(db.String(10), nullable=False, default='TRIAL') # 'TRIAL', 'DEPOSIT' or 'MONTHLY'
    status = db.Column(db.String(10), nullable=False, default='ACTIVE') # 'ACTIVE', 'SUSPENDED', 'CANCELLED'
    trial_ends_at = db.Column(db.DateTime, nullable=True)
    current_period_start = db.Column(db.DateTime, nullable=True)
    current_period_end = db.Column(db.DateTime, nullable=True)
    suspended_at = db.Column(db.DateTime, nullable=True)
    suspend_reason = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            'type': self.type,
            'status': self.status,
            'trialEndsAt': isoformat(self.trial_ends_at),
            'currentPeriodStart': isoformat(self.current_period_start),
            'currentPeriodEnd': isoformat(self.current_period_end),
            'suspendedAt': isoformat(self.suspended_at),
            'suspendReason': self.suspend_reason,
        }


class MerchantBalance(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), unique=True, nullable=False)
    balance = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    transactions = db.relationship('BalanceTransaction', backref='merchant_balance',
                                   order_by='BalanceTransaction.created_at.desc()')


class BalanceTransaction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    balance_id = db.Column(db.Integer, db.ForeignKey('merchant_balance.id'), nullable=False)
    type = db.Column(db.String(20), nullable=False) # 'DEPOSIT', 'ORDER_FEE', 'ADJUSTMENT'
    order_id = db.Column(db.Integer, db.ForeignKey('order.id'), nullable=True)
    amount = db.Column(db.Float, nullable=False)
    balance_before = db.Column(db.Float, nullable=False)
    balance_after = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(255))
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class SubscriptionHistory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False, index=True)
    event_type = db.Column(db.String(30), nullable=False)
    previous_type = db.Column(db.String(10))
    previous_status = db.Column(db.String(10))
    previous_balance = db.Column(db.Float)
    previous_period_end = db.Column(db.DateTime)
    new_type = db.Column(db.String(10))
    new_status = db.Column(db.String(10))
    new_balance = db.Column(db.Float)
    new_period_end = db.Column(db.DateTime)
    reason = db.Column(db.String(255))
    # `metadata` is reserved on declarative models
    meta = db.Column('metadata', db.JSON, default=dict)
    triggered_by = db.Column(db.String(10), nullable=False, default='SYSTEM') # 'SYSTEM', 'ADMIN', 'MERCHANT'
    triggered_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'eventType': self.event_type,
            'previousType': self.previous_type,
            'previousStatus': self.previous_status,
            'previousBalance': self.previous_balance,
            'previousPeriodEnd': isoformat(self.previous_period_end),
            'newType': self.new_type,
            'newStatus': self.new_status,
            'newBalance': self.new_balance,
            'newPeriodEnd': isoformat(self.new_period_end),
            'reason': self.reason,
            'metadata': self.meta or {},
            'triggeredBy': self.triggered_by,
            'createdAt': isoformat(self.created_at),
        }


class PaymentRequest(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    type = db.Column(db.String(10), nullable=False) # 'DEPOSIT' or 'MONTHLY'
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    months = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(10), nullable=False, default='PENDING') # 'PENDING', 'VERIFIED', 'REJECTED'
    transfer_reference = db.Column(db.String(100))
    notes = db.Column(db.Text)
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=utcnow)
    merchant = db.relationship('Merchant', backref='payment_requests')

    def to_dict(self):
        return {
            'id': self.id,
            'merchantId': self.merchant_id,
            'merchantCode': self.merchant.code,
            'type': self.type,
            'amount': self.amount,
            'currency': self.currency,
            'months': self.months,
            'status': self.status,
            'transferReference': self.transfer_reference,
            'notes': self.notes,
            'verifiedAt': isoformat(self.verified_at),
            'rejectionReason': self.rejection_reason,
            'createdAt': isoformat(self.created_at),
        }


class Voucher(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255))
    type = db.Column(db.String(20), nullable=False) # 'BALANCE' or 'SUBSCRIPTION_DAYS'
    value = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)
    max_usage = db.Column(db.Integer, nullable=True)
    current_usage = db.Column(db.Integer, default=0, nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    redemptions = db.relationship('VoucherRedemption', backref='voucher')

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'description': self.description,
            'type': self.type,
            'value': self.value,
            'currency': self.currency,
            'isActive': self.is_active,
            'validFrom': isoformat(self.valid_from),
            'validUntil': isoformat(self.valid_until),
            'maxUsage': self.max_usage,
            'currentUsage': self.current_usage,
            'createdAt': isoformat(self.created_at),
        }


class VoucherRedemption(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey('voucher.id'), nullable=False)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=False)
    redeemed_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    voucher_code = db.Column(db.String(50), nullable=False)
    voucher_type = db.Column(db.String(20), nullable=False)
    value_applied = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    balance_before = db.Column(db.Float)
    balance_after = db.Column(db.Float)
    subscription_end_before = db.Column(db.DateTime)
    subscription_end_after = db.Column(db.DateTime)
    triggered_auto_switch = db.Column(db.Boolean, default=False, nullable=False)
    previous_sub_type = db.Column(db.String(10))
    new_sub_type = db.Column(db.String(10))
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (db.UniqueConstraint('voucher_id', 'merchant_id'),)


class Influencer(TokenMixin, UserMixin, db.Model):
    token_kind = 'influencer'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30))
    referral_code = db.Column(db.String(20), unique=True, nullable=False)
    is_approved = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    password_version = db.Column(db.Integer, nullable=False, default=0)
    bank_details = db.Column(db.JSON, default=dict) # {currency: {bankName, accountNumber, accountName}}
    created_at = db.Column(db.DateTime, default=utcnow)
    balances = db.relationship('InfluencerBalance', backref='influencer', cascade="all, delete-orphan")

    @property
    def is_superadmin(self):
        return False

    @property
    def is_influencer(self):
        return True

    def get_id(self):
        return f"influencer:{self.id}"

    def bank_for(self, currency):
        details = (self.bank_details or {}).get(currency) or {}
        if details.get('bankName') and details.get('accountNumber') and details.get('accountName'):
            return details
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'referralCode': self.referral_code,
            'isApproved': self.is_approved,
            'isActive': self.is_active,
            'bankDetails': self.bank_details or {},
            'referredMerchants': len(self.referred_merchants),
            'createdAt': isoformat(self.created_at),
        }


class InfluencerBalance(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey('influencer.id'), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    balance = db.Column(db.Float, nullable=False, default=0.0)
    total_earned = db.Column(db.Float, nullable=False, default=0.0)
    total_withdrawn = db.Column(db.Float, nullable=False, default=0.0)

    __table_args__ = (db.UniqueConstraint('influencer_id', 'currency'),)

    def to_dict(self):
        return {
            'currency': self.currency,
            'balance': self.balance,
            'totalEarned': self.total_earned,
            'totalWithdrawn': self.total_withdrawn,
        }


class InfluencerTransaction(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey('influencer.id'), nullable=False)
    merchant_id = db.Column(db.Integer, db.ForeignKey('merchant.id'), nullable=True)
    type = db.Column(db.String(30), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    balance_before = db.Column(db.Float, nullable=False)
    balance_after = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(255))
    payment_request_id = db.Column(db.Integer, db.ForeignKey('payment_request.id'), nullable=True)
    commission_rate = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'merchantId': self.merchant_id,
            'type': self.type,
            'currency': self.currency,
            'amount': self.amount,
            'balanceBefore': self.balance_before,
            'balanceAfter': self.balance_after,
            'description': self.description,
            'commissionRate': self.commission_rate,
            'createdAt': isoformat(self.created_at),
        }


class InfluencerWithdrawal(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    influencer_id = db.Column(db.Integer, db.ForeignKey('influencer.id'), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    status = db.Column(db.String(12), nullable=False, default='PENDING')
    bank_name = db.Column(db.String(100))
    bank_account_number = db.Column(db.String(50))
    bank_account_name = db.Column(db.String(100))
    admin_notes = db.Column(db.Text)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    influencer = db.relationship('Influencer', backref='withdrawals')

    def to_dict(self):
        return {
            'id': self.id,
            'influencerId': self.influencer_id,
            'influencerName': self.influencer.name,
            'currency': self.currency,
            'amount': self.amount,
            'status': self.status,
            'bankName': self.bank_name,
            'bankAccountNumber': self.bank_account_number,
            'bankAccountName': self.bank_account_name,
            'adminNotes': self.admin_notes,
            'processedAt': isoformat(self.processed_at),
            'createdAt': isoformat(self.created_at),
        }
