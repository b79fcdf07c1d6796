from flask import current_app

from extensions import db
from .errors import ValidationError, NotFoundError, ConflictError
from .influencers import process_payment_commission
from .models import PaymentRequest, SubscriptionPlan, utcnow
from .subscriptions import (record_event, credit_balance, extend_period, auto_switch_from_trial,
                            reactivate_if_suspended, get_balance_account)

PAYMENT_TYPES = ('DEPOSIT', 'MONTHLY')
PAYMENT_STATUSES = ('PENDING', 'VERIFIED', 'REJECTED')
DAYS_PER_MONTH = 30


def flow_metadata(payment_request, **extra):
    metadata = {
        'requestId': payment_request.id,
        'flowId': f'payment-request-{payment_request.id}',
        'flowType': 'PAYMENT',
        'paymentType': payment_request.type,
        'amount': payment_request.amount,
        'currency': payment_request.currency,
    }
    metadata.update(extra)
    return metadata


def submit_payment_request(merchant, data, user_id=None):
    payment_type = data.get('type')
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError('type must be DEPOSIT or MONTHLY')
    if PaymentRequest.query.filter_by(merchant_id=merchant.id, status='PENDING').first():
        raise ConflictError('You already have a pending payment request. Please wait for it to be verified.')

    months = None
    if payment_type == 'MONTHLY':
        try:
            months = int(data.get('months') or 1)
        except (TypeError, ValueError):
            raise ValidationError('months must be a whole number')
        if months < 1 or months > 12:
            raise ValidationError('Months must be between 1 and 12')
        plan = SubscriptionPlan.active()
        if plan is None:
            raise ValidationError('No subscription plan is available')
        amount = round(plan.monthly_price(merchant.currency) * months, 2)
    else:
        try:
            amount = round(float(data.get('amount')), 2)
        except (TypeError, ValueError):
            raise ValidationError('amount must be a number')
        if amount <= 0:
            raise ValidationError('amount must be greater than zero')

    payment_request = PaymentRequest(
        merchant_id=merchant.id,
        type=payment_type,
        amount=amount,
        currency=merchant.currency,
        months=months,
        status='PENDING',
        transfer_reference=data.get('transferReference'),
        notes=data.get('notes'),
        submitted_by_user_id=user_id,
    )
    db.session.add(payment_request)
    db.session.flush()

    subscription = merchant.subscription
    record_event(
        merchant.id, 'PAYMENT_SUBMITTED',
        triggered_by='MERCHANT', user_id=user_id,
        reason=f'{payment_type.title()} payment of {amount:.2f} {merchant.currency} submitted',
        metadata=flow_metadata(payment_request, months=months),
        previous_type=subscription.type if subscription else None,
        previous_status=subscription.status if subscription else None,
    )
    db.session.commit()
    current_app.logger.info("Payment request %s submitted by merchant %s", payment_request.id, merchant.code)
    return payment_request


def list_payment_requests(status=None, merchant_id=None):
    query = PaymentRequest.query
    if status:
        if status not in PAYMENT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")
        query = query.filter_by(status=status)
    if merchant_id is not None:
        query = query.filter_by(merchant_id=merchant_id)
    return query.order_by(PaymentRequest.created_at.desc(), PaymentRequest.id.desc()).all()


def get_payment_request(request_id):
    payment_request = db.session.get(PaymentRequest, request_id)
    if payment_request is None:
        raise NotFoundError('Payment request not found')
    return payment_request


def verify_payment_request(request_id, admin_user_id=None, notes=None):
    """Applies a pending payment to the merchant's subscription and pays any referral commission."""
    payment_request = get_payment_request(request_id)
    if payment_request.status != 'PENDING':
        raise ValidationError(f'Cannot verify a {payment_request.status.lower()} request')

    merchant = payment_request.merchant
    subscription = merchant.subscription
    if subscription is None:
        raise NotFoundError('Subscription not found')
    now = utcnow()
    metadata = flow_metadata(payment_request)

    payment_request.status = 'VERIFIED'
    payment_request.verified_by_user_id = admin_user_id
    payment_request.verified_at = now
    if notes:
        payment_request.notes = notes

    previous_type = subscription.type
    previous_status = subscription.status
    previous_end = subscription.current_period_end

    if payment_request.type == 'DEPOSIT':
        before, after = credit_balance(merchant, payment_request.amount,
                                       f'Top-up from payment request #{payment_request.id}',
                                       user_id=admin_user_id)
        record_event(
            merchant.id, 'PAYMENT_RECEIVED',
            triggered_by='ADMIN', user_id=admin_user_id,
            reason=f'Deposit of {payment_request.amount:.2f} {payment_request.currency} verified',
            metadata=metadata,
            previous_type=previous_type, new_type=previous_type,
            previous_status=previous_status, new_status=previous_status,
            previous_balance=before, new_balance=after,
        )
        db.session.flush()
        auto_switch_from_trial(merchant, 'Deposit received during trial', metadata=metadata,
                               user_id=admin_user_id)
    else:
        days = (payment_request.months or 1) * DAYS_PER_MONTH
        if subscription.type != 'MONTHLY':
            subscription.type = 'MONTHLY'
            subscription.current_period_start = now
        subscription.current_period_end = extend_period(subscription, days, now=now)
        account = get_balance_account(merchant)
        record_event(
            merchant.id, 'PAYMENT_RECEIVED',
            triggered_by='ADMIN', user_id=admin_user_id,
            reason=f'Monthly payment for {payment_request.months or 1} month(s) verified',
            metadata=metadata,
            previous_type=previous_type, new_type='MONTHLY',
            previous_status=previous_status, new_status=previous_status,
            previous_balance=account.balance, new_balance=account.balance,
            previous_period_end=previous_end, new_period_end=subscription.current_period_end,
        )
        if previous_type == 'TRIAL':
            record_event(
                merchant.id, 'AUTO_SWITCHED',
                triggered_by='SYSTEM', user_id=admin_user_id,
                reason='Monthly payment received during trial',
                metadata=metadata,
                previous_type='TRIAL', new_type='MONTHLY',
                previous_status=previous_status, new_status='ACTIVE',
            )

    reactivate_if_suspended(merchant, 'Payment verified', metadata=metadata,
                            triggered_by='ADMIN', user_id=admin_user_id)
    process_payment_commission(merchant, payment_request)
    db.session.commit()
    current_app.logger.info("Payment request %s verified for merchant %s", payment_request.id, merchant.code)
    return payment_request


def reject_payment_request(request_id, admin_user_id=None, reason=None):
    payment_request = get_payment_request(request_id)
    if payment_request.status == 'VERIFIED':
        raise ValidationError('Cannot reject an already verified payment')
    if payment_request.status == 'REJECTED':
        raise ValidationError('Payment request is already rejected')
    if not reason or not str(reason).strip():
        raise ValidationError('A rejection reason is required')

    payment_request.status = 'REJECTED'
    payment_request.rejection_reason = str(reason).strip()
    payment_request.verified_by_user_id = admin_user_id
    payment_request.verified_at = utcnow()
    record_event(
        payment_request.merchant_id, 'PAYMENT_REJECTED',
        triggered_by='ADMIN', user_id=admin_user_id,
        reason=payment_request.rejection_reason,
        metadata=flow_metadata(payment_request),
    )
    db.session.commit()
    current_app.logger.info("Payment request %s rejected", payment_request.id)
    return payment_request
