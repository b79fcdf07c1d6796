"""Influencer referral program: commissions, balances and withdrawals."""
import random
import string

from flask import current_app
from werkzeug.security import generate_password_hash

from extensions import db
from .email import send_email
from .errors import ValidationError, NotFoundError, ConflictError, ForbiddenError
from .models import (Influencer, InfluencerBalance, InfluencerTransaction, InfluencerWithdrawal,
                     SubscriptionPlan, utcnow)

WITHDRAWAL_STATUSES = ('PENDING', 'PROCESSING', 'COMPLETED', 'REJECTED')
FINAL_WITHDRAWAL_STATUSES = ('COMPLETED', 'REJECTED')
OPEN_WITHDRAWAL_STATUSES = ('PENDING', 'PROCESSING')
CURRENCIES = ('AUD', 'IDR')
BANK_FIELDS = ('bankName', 'accountNumber', 'accountName')


def generate_referral_code(name):
    prefix = ''.join(c for c in (name or '').upper() if c.isalnum())[:4] or 'REF'
    while True:
        code = prefix + ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
        if not Influencer.query.filter_by(referral_code=code).first():
            return code


def register_influencer(data):
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not name or not email:
        raise ValidationError('Name and email are required')
    if len(password) < 8:
        raise ValidationError('Password must be at least 8 characters')
    if Influencer.query.filter_by(email=email).first():
        raise ConflictError('An influencer with this email already exists', error='EMAIL_EXISTS')

    influencer = Influencer(
        name=name,
        email=email,
        phone=data.get('phone'),
        password=generate_password_hash(password),
        referral_code=generate_referral_code(name),
        bank_details={},
    )
    db.session.add(influencer)
    db.session.commit()
    current_app.logger.info("Influencer %s registered, awaiting approval", influencer.email)
    return influencer


def find_referrer(referral_code):
    """Returns the approved, active influencer owning `referral_code`, if any."""
    if not referral_code:
        return None
    influencer = Influencer.query.filter_by(referral_code=referral_code.strip().upper()).first()
    if influencer and influencer.is_approved and influencer.is_active:
        return influencer
    return None


def get_balance(influencer, currency):
    balance = InfluencerBalance.query.filter_by(influencer_id=influencer.id, currency=currency).first()
    if balance is None:
        balance = InfluencerBalance(currency=currency, balance=0.0, total_earned=0.0, total_withdrawn=0.0)
        influencer.balances.append(balance)
        db.session.flush()
    return balance


def _add_transaction(influencer, balance, tx_type, amount, description, **extra):
    before = balance.balance or 0.0
    after = round(before + amount, 2)
    balance.balance = after
    tx = InfluencerTransaction(
        influencer_id=influencer.id,
        type=tx_type,
        currency=balance.currency,
        amount=amount,
        balance_before=before,
        balance_after=after,
        description=description,
        **extra
    )
    db.session.add(tx)
    return tx


# ==================== COMMISSIONS ====================

def process_payment_commission(merchant, payment_request):
    """Credits the referring influencer for a verified merchant payment.

    Returns the commission transaction, or None when nothing is owed.
    The caller commits.
    """
    influencer = merchant.referred_by
    if influencer is None or not influencer.is_approved or not influencer.is_active:
        return None

    plan = SubscriptionPlan.active()
    if plan is None:
        current_app.logger.warning("No active subscription plan; skipping commission for %s", merchant.code)
        return None

    previous = InfluencerTransaction.query.filter(
        InfluencerTransaction.influencer_id == influencer.id,
        InfluencerTransaction.merchant_id == merchant.id,
        InfluencerTransaction.type.in_(('COMMISSION_FIRST', 'COMMISSION_RECURRING')),
    ).first()
    is_first = previous is None
    rate = plan.influencer_first_commission_percent if is_first else plan.influencer_recurring_commission_percent
    amount = round(payment_request.amount * rate / 100.0, 2)
    if amount <= 0:
        return None

    currency = payment_request.currency
    balance = get_balance(influencer, currency)
    tx = _add_transaction(
        influencer, balance,
        'COMMISSION_FIRST' if is_first else 'COMMISSION_RECURRING',
        amount,
        f"{'First' if is_first else 'Recurring'} commission from {merchant.name} ({merchant.code})",
        merchant_id=merchant.id,
        payment_request_id=payment_request.id,
        commission_rate=rate,
    )
    balance.total_earned = round((balance.total_earned or 0.0) + amount, 2)
    current_app.logger.info("Influencer commission processed: %s %.2f to %s (%s%% %s)",
                            currency, amount, influencer.email, rate, 'first' if is_first else 'recurring')

    send_email(influencer.email, 'You earned a commission', 'email/commission_earned',
               influencer=influencer, merchant=merchant, amount=amount, currency=currency,
               rate=rate, balance=balance.balance, is_first=is_first)
    return tx


# ==================== DASHBOARD ====================

def dashboard(influencer):
    balances = {b.currency: b.to_dict() for b in influencer.balances}
    for currency in CURRENCIES:
        balances.setdefault(currency, {'currency': currency, 'balance': 0.0, 'totalEarned': 0.0,
                                       'totalWithdrawn': 0.0})
    merchants = [{
        'id': m.id,
        'code': m.code,
        'name': m.name,
        'currency': m.currency,
        'subscriptionType': m.subscription.type if m.subscription else None,
        'subscriptionStatus': m.subscription.status if m.subscription else None,
        'joinedAt': m.created_at.isoformat() + 'Z' if m.created_at else None,
    } for m in influencer.referred_merchants]
    recent = InfluencerTransaction.query.filter_by(influencer_id=influencer.id) \
        .order_by(InfluencerTransaction.created_at.desc(), InfluencerTransaction.id.desc()).limit(10).all()
    return {
        'influencer': influencer.to_dict(),
        'balances': list(balances.values()),
        'referredMerchants': merchants,
        'recentTransactions': [tx.to_dict() for tx in recent],
    }


def list_transactions(influencer, currency=None, limit=50, offset=0):
    query = InfluencerTransaction.query.filter_by(influencer_id=influencer.id)
    if currency:
        query = query.filter_by(currency=currency)
    total = query.count()
    rows = query.order_by(InfluencerTransaction.created_at.desc(), InfluencerTransaction.id.desc()) \
        .offset(offset).limit(limit).all()
    return rows, total


def update_bank_details(influencer, currency, details):
    if currency not in CURRENCIES:
        raise ValidationError('Currency must be AUD or IDR')
    details = details or {}
    cleaned = {}
    for field in BANK_FIELDS:
        value = (details.get(field) or '').strip()
        if not value:
            raise ValidationError(f'{field} is required')
        cleaned[field] = value
    bank_details = dict(influencer.bank_details or {})
    bank_details[currency] = cleaned
    # Reassigned so the JSON column is flagged dirty
    influencer.bank_details = bank_details
    db.session.commit()
    return influencer


# ==================== WITHDRAWALS ====================

def request_withdrawal(influencer, currency, amount):
    if currency not in CURRENCIES:
        raise ValidationError('Currency must be AUD or IDR')
    try:
        amount = round(float(amount), 2)
    except (TypeError, ValueError):
        raise ValidationError('Amount must be a number')
    if amount <= 0:
        raise ValidationError('Amount must be greater than zero')

    plan = SubscriptionPlan.active()
    minimum = plan.min_withdrawal(currency) if plan else 0.0
    if amount < minimum:
        raise ValidationError(f'Minimum withdrawal is {minimum:.2f} {currency}', error='BELOW_MINIMUM')
    if not influencer.is_approved:
        raise ForbiddenError('Your account has not been approved yet', error='NOT_APPROVED')

    bank = influencer.bank_for(currency)
    if bank is None:
        raise ValidationError(f'Please complete your {currency} bank details first', error='BANK_DETAILS_REQUIRED')

    balance = get_balance(influencer, currency)
    if (balance.balance or 0.0) < amount:
        raise ValidationError('Insufficient balance', error='INSUFFICIENT_BALANCE')

    pending = InfluencerWithdrawal.query.filter(
        InfluencerWithdrawal.influencer_id == influencer.id,
        InfluencerWithdrawal.currency == currency,
        InfluencerWithdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES),
    ).first()
    if pending:
        raise ConflictError('You already have a pending withdrawal for this currency', error='PENDING_WITHDRAWAL')

    withdrawal = InfluencerWithdrawal(
        influencer_id=influencer.id,
        currency=currency,
        amount=amount,
        status='PENDING',
        bank_name=bank['bankName'],
        bank_account_number=bank['accountNumber'],
        bank_account_name=bank['accountName'],
    )
    db.session.add(withdrawal)
    _add_transaction(influencer, balance, 'WITHDRAWAL', -amount, f'Withdrawal request ({currency})')
    db.session.commit()
    current_app.logger.info("Withdrawal %s requested by %s: %.2f %s", withdrawal.id, influencer.email, amount, currency)
    return withdrawal


def list_withdrawals(influencer=None, status=None):
    query = InfluencerWithdrawal.query
    if influencer is not None:
        query = query.filter_by(influencer_id=influencer.id)
    if status:
        if status not in WITHDRAWAL_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(WITHDRAWAL_STATUSES)}")
        query = query.filter_by(status=status)
    return query.order_by(InfluencerWithdrawal.created_at.desc(), InfluencerWithdrawal.id.desc()).all()


def process_withdrawal(withdrawal_id, status, admin_user_id=None, notes=None):
    """Moves a withdrawal forward; COMPLETED and REJECTED are final."""
    withdrawal = db.session.get(InfluencerWithdrawal, withdrawal_id)
    if withdrawal is None:
        raise NotFoundError('Withdrawal not found')
    if status not in ('PROCESSING', 'COMPLETED', 'REJECTED'):
        raise ValidationError('status must be PROCESSING, COMPLETED or REJECTED')
    if withdrawal.status in FINAL_WITHDRAWAL_STATUSES:
        raise ValidationError(f'Withdrawal is already {withdrawal.status.lower()}', error='WITHDRAWAL_FINAL')

    influencer = withdrawal.influencer
    balance = get_balance(influencer, withdrawal.currency)
    if status == 'REJECTED':
        _add_transaction(influencer, balance, 'WITHDRAWAL_REFUND', withdrawal.amount,
                         f'Refund of rejected withdrawal #{withdrawal.id}')
    elif status == 'COMPLETED':
        balance.total_withdrawn = round((balance.total_withdrawn or 0.0) + withdrawal.amount, 2)

    withdrawal.status = status
    if notes is not None:
        withdrawal.admin_notes = notes
    withdrawal.processed_by_user_id = admin_user_id
    withdrawal.processed_at = utcnow()
    db.session.commit()
    current_app.logger.info("Withdrawal %s marked %s", withdrawal.id, status)

    if status in FINAL_WITHDRAWAL_STATUSES:
        send_email(influencer.email, f'Withdrawal {status.lower()}', 'email/withdrawal_processed',
                   influencer=influencer, withdrawal=withdrawal)
    return withdrawal


def list_influencers(approved=None):
    query = Influencer.query
    if approved is not None:
        query = query.filter_by(is_approved=approved)
    return query.order_by(Influencer.created_at.desc(), Influencer.id.desc()).all()


def approve_influencer(influencer_id, approved=True):
    influencer = db.session.get(Influencer, influencer_id)
    if influencer is None:
        raise NotFoundError('Influencer not found')
    influencer.is_approved = bool(approved)
    db.session.commit()
    return influencer
