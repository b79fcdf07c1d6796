"""Merchant onboarding shared by self-registration and the admin console."""
import re

from flask import current_app
from werkzeug.security import generate_password_hash

from extensions import db
from .auth import assign_owner
from .errors import ValidationError, ConflictError, NotFoundError
from .influencers import find_referrer
from .models import (Merchant, User, MerchantUser, Order, Influencer, PaymentRequest,
                     InfluencerWithdrawal)
from .subscriptions import start_trial

CURRENCIES = ('AUD', 'IDR')
USER_ROLES = ('SUPER_ADMIN', 'MERCHANT_OWNER', 'MERCHANT_STAFF')
CODE_PATTERN = re.compile(r'^[A-Z0-9][A-Z0-9-]{1,49}$')


def normalize_code(code):
    code = (code or '').strip().upper()
    if not CODE_PATTERN.match(code):
        raise ValidationError('Merchant code must be 2-50 letters, digits or dashes')
    return code


def create_merchant(data):
    """Creates a merchant on a fresh TRIAL subscription. The caller commits."""
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    if not name or not email:
        raise ValidationError('Merchant name and email are required')
    code = normalize_code(data.get('code'))
    if Merchant.query.filter_by(code=code).first():
        raise ConflictError('Merchant code already exists', error='DUPLICATE_CODE')
    currency = data.get('currency') or current_app.config['DEFAULT_CURRENCY']
    if currency not in CURRENCIES:
        raise ValidationError('Currency must be AUD or IDR')
    try:
        tax_percentage = float(data.get('taxPercentage') or 0.0)
    except (TypeError, ValueError):
        raise ValidationError('taxPercentage must be a number')
    if tax_percentage < 0 or tax_percentage > 100:
        raise ValidationError('taxPercentage must be between 0 and 100')

    merchant = Merchant(
        code=code,
        name=name,
        email=email,
        phone=data.get('phone'),
        address=data.get('address'),
        country=data.get('country') or ('Indonesia' if currency == 'IDR' else 'Australia'),
        currency=currency,
        timezone=data.get('timezone') or current_app.config['DEFAULT_TIMEZONE'],
        enable_tax=bool(data.get('enableTax', False)),
        tax_percentage=tax_percentage,
    )
    db.session.add(merchant)
    db.session.flush()
    return merchant


def create_user(data, role):
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not name or not email:
        raise ValidationError('Name and email are required')
    if len(password) < 8:
        raise ValidationError('Password must be at least 8 characters')
    if User.query.filter_by(email=email).first():
        raise ConflictError('A user with this email already exists', error='EMAIL_EXISTS')
    user = User(name=name, email=email, role=role, password=generate_password_hash(password))
    db.session.add(user)
    db.session.flush()
    return user


def register_merchant(data):
    """Self-service signup: merchant, owner account and trial in one transaction."""
    owner_data = data.get('owner') or {}
    referrer = None
    if data.get('referralCode'):
        referrer = find_referrer(data['referralCode'])
        if referrer is None:
            raise ValidationError('Referral code is invalid', error='INVALID_REFERRAL_CODE')

    merchant = create_merchant(data)
    owner = create_user(owner_data, 'MERCHANT_OWNER')
    assign_owner(merchant, owner)
    if referrer is not None:
        merchant.referred_by = referrer
    start_trial(merchant, user_id=owner.id)
    db.session.commit()
    current_app.logger.info("Merchant %s registered%s", merchant.code,
                            f" via referral {referrer.referral_code}" if referrer else "")
    return merchant, owner


def get_merchant(merchant_id):
    merchant = db.session.get(Merchant, merchant_id)
    if merchant is None:
        raise NotFoundError('Merchant not found')
    return merchant


def add_staff(merchant, user):
    membership = MerchantUser.query.filter_by(merchant_id=merchant.id, user_id=user.id).first()
    if membership is None:
        membership = MerchantUser(merchant_id=merchant.id, user_id=user.id, role='STAFF')
        db.session.add(membership)
    membership.is_active = True
    return membership


def platform_counts():
    return {
        'merchants': Merchant.query.count(),
        'activeMerchants': Merchant.query.filter_by(is_active=True).count(),
        'users': User.query.count(),
        'orders': Order.query.count(),
        'influencers': Influencer.query.count(),
        'pendingInfluencers': Influencer.query.filter_by(is_approved=False).count(),
        'pendingPaymentRequests': PaymentRequest.query.filter_by(status='PENDING').count(),
        'pendingWithdrawals': InfluencerWithdrawal.query.filter_by(status='PENDING').count(),
    }
