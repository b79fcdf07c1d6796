from datetime import datetime, timezone

from flask import current_app

from extensions import db
from .errors import ValidationError, NotFoundError
from .models import Voucher, VoucherRedemption, utcnow
from .subscriptions import (record_event, credit_balance, extend_period,
                            auto_switch_from_trial, get_balance_account)

VOUCHER_TYPES = ('BALANCE', 'SUBSCRIPTION_DAYS')
CURRENCIES = ('AUD', 'IDR')


def parse_datetime(value, field):
    """Parses an ISO 8601 string into a naive UTC datetime."""
    if value in (None, ''):
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 date')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _apply_fields(voucher, data):
    if 'code' in data:
        code = (data.get('code') or '').strip().upper()
        if not code:
            raise ValidationError('Voucher code is required')
        duplicate = Voucher.query.filter_by(code=code).first()
        if duplicate and duplicate.id != voucher.id:
            raise ValidationError('Voucher code already exists', error='DUPLICATE_CODE')
        voucher.code = code
    if 'type' in data:
        if data.get('type') not in VOUCHER_TYPES:
            raise ValidationError('Invalid voucher type')
        voucher.type = data['type']
    if 'description' in data:
        voucher.description = data.get('description') or None
    if 'value' in data:
        try:
            value = float(data.get('value'))
        except (TypeError, ValueError):
            raise ValidationError('Value must be a number')
        if value <= 0:
            raise ValidationError('Value must be greater than zero')
        voucher.value = value
    if 'currency' in data:
        currency = data.get('currency') or None
        if currency is not None and currency not in CURRENCIES:
            raise ValidationError('Currency must be IDR, AUD, or null (universal)')
        voucher.currency = currency
    if 'maxUsage' in data:
        max_usage = data.get('maxUsage')
        try:
            voucher.max_usage = int(max_usage) if max_usage not in (None, '') else None
        except (TypeError, ValueError):
            raise ValidationError('maxUsage must be a whole number')
    if 'validFrom' in data:
        voucher.valid_from = parse_datetime(data.get('validFrom'), 'validFrom')
    if 'validUntil' in data:
        voucher.valid_until = parse_datetime(data.get('validUntil'), 'validUntil')
    if 'isActive' in data:
        voucher.is_active = bool(data.get('isActive'))

    if voucher.valid_from and voucher.valid_until and voucher.valid_until <= voucher.valid_from:
        raise ValidationError('validUntil must be after validFrom')


def list_vouchers():
    return Voucher.query.order_by(Voucher.created_at.desc(), Voucher.id.desc()).all()


def get_voucher(voucher_id):
    voucher = db.session.get(Voucher, voucher_id)
    if not voucher:
        raise NotFoundError('Voucher not found')
    return voucher


def create_voucher(data, user_id=None):
    for field in ('code', 'type', 'value'):
        if data.get(field) in (None, ''):
            raise ValidationError(f'{field} is required')
    voucher = Voucher(created_by_user_id=user_id, current_usage=0)
    _apply_fields(voucher, data)
    db.session.add(voucher)
    db.session.commit()
    return voucher


def update_voucher(voucher_id, data):
    voucher = get_voucher(voucher_id)
    _apply_fields(voucher, data)
    db.session.commit()
    return voucher


def delete_voucher(voucher_id):
    """Deletes an unused voucher; returns False when it was deactivated instead."""
    voucher = get_voucher(voucher_id)
    if voucher.redemptions:
        voucher.is_active = False
        db.session.commit()
        return False
    db.session.delete(voucher)
    db.session.commit()
    return True


def check_redeemable(voucher, merchant, now=None):
    now = now or utcnow()
    if voucher is None:
        raise NotFoundError('Voucher code not found', error='VOUCHER_NOT_FOUND')
    if not voucher.is_active:
        raise ValidationError('This voucher is no longer active', error='VOUCHER_INACTIVE')
    if voucher.currency and voucher.currency != merchant.currency:
        raise ValidationError(f'This voucher is only valid for {voucher.currency} merchants',
                              error='CURRENCY_MISMATCH')
    if voucher.valid_from and now < voucher.valid_from:
        raise ValidationError('This voucher is not yet valid', error='VOUCHER_NOT_STARTED')
    if voucher.valid_until and now > voucher.valid_until:
        raise ValidationError('This voucher has expired', error='VOUCHER_EXPIRED')
    if voucher.max_usage is not None and voucher.current_usage >= voucher.max_usage:
        raise ValidationError('This voucher has reached its usage limit', error='VOUCHER_LIMIT_REACHED')
    if VoucherRedemption.query.filter_by(voucher_id=voucher.id, merchant_id=merchant.id).first():
        raise ValidationError('You have already used this voucher', error='ALREADY_REDEEMED')


def redeem_voucher(merchant, code, user_id=None, now=None):
    code = (code or '').strip().upper()
    if not code:
        raise ValidationError('Voucher code is required')
    now = now or utcnow()
    voucher = Voucher.query.filter_by(code=code).first()
    check_redeemable(voucher, merchant, now=now)

    subscription = merchant.subscription
    previous_type = subscription.type if subscription else None
    metadata = {
        'source': 'VOUCHER_REDEMPTION',
        'voucherCode': voucher.code,
        'currency': merchant.currency,
        'flowId': f'voucher-{voucher.code}',
        'flowType': 'VOUCHER_REDEMPTION',
    }
    redemption = VoucherRedemption(
        voucher_id=voucher.id,
        merchant_id=merchant.id,
        redeemed_by_user_id=user_id,
        voucher_code=voucher.code,
        voucher_type=voucher.type,
        value_applied=voucher.value,
        currency=merchant.currency,
    )

    if voucher.type == 'BALANCE':
        before, after = credit_balance(merchant, voucher.value, f'Voucher redemption: {voucher.code}', user_id=user_id)
        redemption.balance_before = before
        redemption.balance_after = after
        record_event(
            merchant.id, 'BALANCE_ADJUSTED',
            triggered_by='MERCHANT', user_id=user_id,
            reason=f'Voucher {voucher.code} redeemed (+{voucher.value:.2f} {merchant.currency})',
            metadata=metadata,
            previous_balance=before, new_balance=after,
        )
        db.session.flush()
        switched = auto_switch_from_trial(merchant, f'Balance topped up by voucher {voucher.code}',
                                          metadata=metadata, user_id=user_id)
        message = f'Successfully added {voucher.value:.2f} {merchant.currency} to your balance'
    else:
        if subscription is None:
            raise NotFoundError('Subscription not found')
        days = int(voucher.value)
        end_before = subscription.current_period_end
        end_after = extend_period(subscription, days, now=now)
        switched = previous_type == 'TRIAL'
        if switched:
            subscription.type = 'MONTHLY'
            subscription.current_period_start = now
        subscription.status = 'ACTIVE'
        subscription.current_period_end = end_after
        subscription.suspended_at = None
        subscription.suspend_reason = None
        merchant.is_open = True
        redemption.subscription_end_before = end_before
        redemption.subscription_end_after = end_after
        record_event(
            merchant.id, 'PERIOD_ADJUSTED',
            triggered_by='MERCHANT', user_id=user_id,
            reason=f'Voucher {voucher.code} redeemed (+{days} days subscription)',
            metadata=metadata,
            previous_type=previous_type, new_type=subscription.type,
            previous_period_end=end_before, new_period_end=end_after,
            new_status='ACTIVE',
        )
        message = f'Successfully added {days} days to your subscription'

    redemption.triggered_auto_switch = switched
    if switched:
        redemption.previous_sub_type = previous_type
        redemption.new_sub_type = subscription.type
    voucher.current_usage = (voucher.current_usage or 0) + 1
    db.session.add(redemption)
    db.session.commit()
    current_app.logger.info("Voucher %s redeemed by merchant %s", voucher.code, merchant.code)

    account = get_balance_account(merchant)
    return {
        'message': message,
        'voucherType': voucher.type,
        'valueApplied': voucher.value,
        'autoSwitchTriggered': switched,
        'subscription': subscription.to_dict() if subscription else None,
        'balance': account.balance,
    }
