from datetime import timedelta

from flask import current_app

from extensions import db
from .errors import NotFoundError
from .models import (MerchantSubscription, MerchantBalance, BalanceTransaction,
                     SubscriptionHistory, SubscriptionPlan, utcnow)

EVENT_TYPES = (
    'CREATED', 'TRIAL_EXPIRED', 'AUTO_SWITCHED', 'SUSPENDED', 'REACTIVATED',
    'PAYMENT_SUBMITTED', 'PAYMENT_RECEIVED', 'PAYMENT_REJECTED', 'ORDER_FEE_DEDUCTED',
    'BALANCE_ADJUSTED', 'PERIOD_ADJUSTED', 'MANUAL_ADJUSTMENT',
)


def record_event(merchant_id, event_type, triggered_by='SYSTEM', user_id=None, reason=None,
                 metadata=None, **changes):
    """Adds a subscription history row to the session.

    `changes` accepts previous_type, previous_status, previous_balance,
    previous_period_end and their new_* counterparts.
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown subscription event type: {event_type}")
    event = SubscriptionHistory(
        merchant_id=merchant_id,
        event_type=event_type,
        reason=reason,
        meta=metadata or {},
        triggered_by=triggered_by,
        triggered_by_user_id=user_id,
        **changes
    )
    db.session.add(event)
    return event


def start_trial(merchant, user_id=None):
    plan = SubscriptionPlan.active()
    trial_days = plan.trial_days if plan else 30
    now = utcnow()
    subscription = MerchantSubscription(
        merchant_id=merchant.id,
        type='TRIAL',
        status='ACTIVE',
        trial_ends_at=now + timedelta(days=trial_days),
        current_period_start=now,
        current_period_end=now + timedelta(days=trial_days),
    )
    merchant.subscription = subscription
    merchant.balance_account = MerchantBalance(balance=0.0)
    record_event(
        merchant.id, 'CREATED',
        triggered_by='MERCHANT', user_id=user_id,
        reason=f'{trial_days}-day trial started',
        new_type='TRIAL', new_status='ACTIVE', new_balance=0.0,
        new_period_end=subscription.current_period_end,
    )
    return subscription


def get_balance_account(merchant):
    account = merchant.balance_account
    if account is None:
        account = MerchantBalance(balance=0.0)
        merchant.balance_account = account
        db.session.flush()
    return account


def credit_balance(merchant, amount, description, user_id=None, tx_type='DEPOSIT', order_id=None):
    """Credits the merchant's deposit balance; returns (before, after).

    Negative amounts debit the balance, which may go below zero.
    """
    account = get_balance_account(merchant)
    before = account.balance or 0.0
    after = round(before + amount, 2)
    account.balance = after
    db.session.add(BalanceTransaction(
        balance_id=account.id,
        type=tx_type,
        order_id=order_id,
        amount=amount,
        balance_before=before,
        balance_after=after,
        description=description,
        created_by_user_id=user_id,
    ))
    return before, after


def deduct_order_fee(merchant, order):
    """Charges the plan's per-order fee to a DEPOSIT merchant. The caller commits."""
    subscription = merchant.subscription
    if subscription is None or subscription.type != 'DEPOSIT':
        return None
    plan = SubscriptionPlan.active()
    fee = plan.order_fee(merchant.currency) if plan else 0.0
    if fee <= 0:
        return None

    before, after = credit_balance(merchant, -fee, f'Order fee for #{order.order_number}',
                                   tx_type='ORDER_FEE', order_id=order.id)
    record_event(
        merchant.id, 'ORDER_FEE_DEDUCTED',
        reason=f'Order fee of {fee:g} {merchant.currency} deducted for order #{order.order_number}',
        metadata={'orderId': order.id, 'orderNumber': order.order_number, 'fee': fee},
        previous_balance=before, new_balance=after,
    )
    if after < 0:
        current_app.logger.warning("Merchant %s balance is negative (%.2f) after order %s",
                                   merchant.code, after, order.order_number)
    return fee


def extend_period(subscription, days, now=None):
    """Extends from the current end when it is still in the future, else from now."""
    now = now or utcnow()
    base = subscription.current_period_end if subscription.current_period_end and subscription.current_period_end > now else now
    return base + timedelta(days=days)


def _switch_to_deposit(subscription):
    # Deposit mode has no billing period
    subscription.type = 'DEPOSIT'
    subscription.status = 'ACTIVE'
    subscription.trial_ends_at = None
    subscription.current_period_start = None
    subscription.current_period_end = None
    subscription.suspended_at = None
    subscription.suspend_reason = None


def auto_switch_from_trial(merchant, reason, metadata=None, user_id=None):
    """Moves a TRIAL merchant with a positive deposit balance onto DEPOSIT."""
    subscription = merchant.subscription
    account = merchant.balance_account
    if not subscription or subscription.type != 'TRIAL' or not account or account.balance <= 0:
        return False

    previous_status = subscription.status
    _switch_to_deposit(subscription)
    if previous_status == 'SUSPENDED':
        merchant.is_open = True
    record_event(
        merchant.id, 'AUTO_SWITCHED',
        triggered_by='SYSTEM', user_id=user_id, reason=reason, metadata=metadata,
        previous_type='TRIAL', previous_status=previous_status,
        new_type='DEPOSIT', new_status='ACTIVE', new_balance=account.balance,
    )
    current_app.logger.info("Merchant %s auto-switched from TRIAL to DEPOSIT", merchant.code)
    return True


def reactivate_if_suspended(merchant, reason, metadata=None, triggered_by='SYSTEM', user_id=None):
    subscription = merchant.subscription
    if not subscription or subscription.status != 'SUSPENDED':
        return False
    subscription.status = 'ACTIVE'
    subscription.suspended_at = None
    subscription.suspend_reason = None
    merchant.is_open = True
    record_event(
        merchant.id, 'REACTIVATED',
        triggered_by=triggered_by, user_id=user_id, reason=reason, metadata=metadata,
        previous_type=subscription.type, previous_status='SUSPENDED',
        new_type=subscription.type, new_status='ACTIVE',
    )
    return True


def suspend_subscription(merchant, reason):
    """Suspends the subscription and closes the store. The caller commits."""
    subscription = merchant.subscription
    account = merchant.balance_account
    balance = account.balance if account else 0.0
    previous_status = subscription.status
    subscription.status = 'SUSPENDED'
    subscription.suspended_at = utcnow()
    subscription.suspend_reason = reason
    merchant.is_open = False
    record_event(
        merchant.id, 'SUSPENDED', reason=reason,
        previous_type=subscription.type, previous_status=previous_status,
        new_type=subscription.type, new_status='SUSPENDED',
        previous_balance=balance, new_balance=balance,
    )
    current_app.logger.warning("Merchant %s suspended: %s", merchant.code, reason)


def _auto_switch(merchant, new_type, reason):
    subscription = merchant.subscription
    account = merchant.balance_account
    previous_type = subscription.type
    previous_status = subscription.status
    if new_type == 'DEPOSIT':
        _switch_to_deposit(subscription)
    else:
        subscription.type = new_type
        subscription.status = 'ACTIVE'
    merchant.is_open = True
    record_event(
        merchant.id, 'AUTO_SWITCHED', reason=reason,
        previous_type=previous_type, previous_status=previous_status,
        new_type=new_type, new_status='ACTIVE',
        new_balance=account.balance if account else 0.0,
        new_period_end=subscription.current_period_end,
    )
    current_app.logger.info("Merchant %s auto-switched from %s to %s", merchant.code, previous_type, new_type)


def check_subscription(merchant, now=None):
    """Applies trial expiry, monthly expiry and deposit exhaustion rules.

    Returns 'NO_CHANGE', 'AUTO_SWITCHED' or 'SUSPENDED'. The caller commits.
    """
    now = now or utcnow()
    subscription = merchant.subscription
    if subscription is None or subscription.status != 'ACTIVE':
        return 'NO_CHANGE'
    account = merchant.balance_account
    balance = account.balance if account else 0.0

    if subscription.type == 'TRIAL':
        if subscription.trial_ends_at is None or now <= subscription.trial_ends_at:
            return 'NO_CHANGE'
        record_event(
            merchant.id, 'TRIAL_EXPIRED', reason='Trial period ended',
            previous_type='TRIAL', previous_status='ACTIVE',
            previous_period_end=subscription.trial_ends_at,
        )
        if balance > 0:
            _auto_switch(merchant, 'DEPOSIT', 'Trial expired, switched to Deposit (has balance)')
            return 'AUTO_SWITCHED'
        suspend_subscription(merchant, 'Trial expired with no balance or monthly subscription')
        return 'SUSPENDED'

    if subscription.type == 'MONTHLY':
        if subscription.current_period_end is None or now <= subscription.current_period_end:
            return 'NO_CHANGE'
        if balance > 0:
            _auto_switch(merchant, 'DEPOSIT', 'Monthly expired, switched to Deposit (has balance)')
            return 'AUTO_SWITCHED'
        suspend_subscription(merchant, 'Monthly subscription expired with no balance')
        return 'SUSPENDED'

    if balance > 0:
        return 'NO_CHANGE'
    if subscription.current_period_end and subscription.current_period_end > now:
        _auto_switch(merchant, 'MONTHLY', 'Deposit balance exhausted, switched to Monthly (has active period)')
        return 'AUTO_SWITCHED'
    suspend_subscription(merchant, 'Deposit balance exhausted')
    return 'SUSPENDED'


def check_all_subscriptions(now=None):
    """Runs check_subscription for every active merchant; returns a count per outcome."""
    results = {'NO_CHANGE': 0, 'AUTO_SWITCHED': 0, 'SUSPENDED': 0}
    subscriptions = MerchantSubscription.query.filter_by(status='ACTIVE').all()
    for subscription in subscriptions:
        merchant = subscription.merchant
        if not merchant.is_active:
            continue
        results[check_subscription(merchant, now=now)] += 1
    db.session.commit()
    current_app.logger.info("Subscription check: %s", results)
    return results


def merchant_history(merchant_id, limit=50, offset=0, event_type=None):
    query = SubscriptionHistory.query.filter_by(merchant_id=merchant_id)
    if event_type:
        query = query.filter_by(event_type=event_type)
    total = query.count()
    rows = query.order_by(SubscriptionHistory.created_at.desc(), SubscriptionHistory.id.desc()) \
        .offset(offset).limit(limit).all()
    return rows, total


def subscription_summary(merchant):
    subscription = merchant.subscription
    if subscription is None:
        raise NotFoundError('Subscription not found')
    account = merchant.balance_account
    data = subscription.to_dict()
    data['balance'] = account.balance if account else 0.0
    data['currency'] = merchant.currency
    data['isOpen'] = merchant.is_open
    now = utcnow()
    if subscription.current_period_end:
        data['daysRemaining'] = max(0, (subscription.current_period_end - now).days)
    else:
        data['daysRemaining'] = None
    return data
