from datetime import timedelta

import pytest

from extensions import db
from merchanthub.models import BalanceTransaction, SubscriptionHistory, utcnow
from merchanthub.subscriptions import check_subscription


def _place(client, addon_setup):
    return client.post('/api/public/orders', json={
        'merchantCode': 'CAFE1',
        'orderType': 'TAKEAWAY',
        'items': [{'menuId': addon_setup['menu'].id, 'addons': [{'addonItemId': addon_setup['regular'].id}]}],
    })


def _set_state(merchant, type_, balance, period_end=None):
    subscription = merchant.subscription
    subscription.type = type_
    subscription.trial_ends_at = None
    subscription.current_period_end = period_end
    merchant.balance_account.balance = balance
    db.session.commit()


def _event_types(merchant):
    rows = SubscriptionHistory.query.filter_by(merchant_id=merchant.id).order_by(SubscriptionHistory.id)
    return [row.event_type for row in rows]


def test_order_fee_deducted_for_deposit_merchant(client, merchant, owner_headers, addon_setup):
    _set_state(merchant, 'DEPOSIT', 1.0)

    assert _place(client, addon_setup).status_code == 201
    assert _place(client, addon_setup).status_code == 201

    assert merchant.balance_account.balance == 0.92
    fees = BalanceTransaction.query.filter_by(type='ORDER_FEE').all()
    assert [tx.amount for tx in fees] == [-0.04, -0.04]
    assert all(tx.order_id is not None for tx in fees)

    event = SubscriptionHistory.query.filter_by(event_type='ORDER_FEE_DEDUCTED').order_by(SubscriptionHistory.id).first()
    assert (event.previous_balance, event.new_balance) == (1.0, 0.96)
    assert event.meta['orderNumber'].startswith('CAFE1-')

    flows = client.get('/api/merchant/subscription/flows', headers=owner_headers).get_json()['data']['flows']
    fee_flow = flows[0]
    assert fee_flow['flowType'] == 'ORDER_FEES'
    assert fee_flow['eventCount'] == 2
    assert fee_flow['balanceDelta'] == -0.08


def test_trial_merchant_pays_no_order_fee(client, merchant, addon_setup):
    assert _place(client, addon_setup).status_code == 201
    assert merchant.balance_account.balance == 0.0
    assert 'ORDER_FEE_DEDUCTED' not in _event_types(merchant)


def test_expired_trial_without_balance_is_suspended(client, merchant, addon_setup):
    later = merchant.subscription.trial_ends_at + timedelta(days=1)
    assert check_subscription(merchant, now=later) == 'SUSPENDED'
    db.session.commit()

    assert merchant.subscription.status == 'SUSPENDED'
    assert merchant.subscription.suspend_reason
    assert merchant.is_open is False
    assert _event_types(merchant)[-2:] == ['TRIAL_EXPIRED', 'SUSPENDED']

    resp = _place(client, addon_setup)
    assert resp.get_json()['error'] == 'STORE_CLOSED'
    assert check_subscription(merchant, now=later) == 'NO_CHANGE'


def test_expired_trial_with_balance_switches_to_deposit(merchant):
    merchant.balance_account.balance = 5.0
    db.session.commit()
    later = merchant.subscription.trial_ends_at + timedelta(days=1)

    assert check_subscription(merchant, now=later) == 'AUTO_SWITCHED'
    subscription = merchant.subscription
    assert (subscription.type, subscription.status) == ('DEPOSIT', 'ACTIVE')
    assert subscription.current_period_end is None
    assert _event_types(merchant)[-2:] == ['TRIAL_EXPIRED', 'AUTO_SWITCHED']


@pytest.mark.parametrize('type_, balance, period_days, outcome, new_type', [
    ('MONTHLY', 0.0, -1, 'SUSPENDED', 'MONTHLY'),
    ('MONTHLY', 3.0, -1, 'AUTO_SWITCHED', 'DEPOSIT'),
    ('MONTHLY', 0.0, 5, 'NO_CHANGE', 'MONTHLY'),
    ('DEPOSIT', 0.0, None, 'SUSPENDED', 'DEPOSIT'),
    ('DEPOSIT', -0.5, 10, 'AUTO_SWITCHED', 'MONTHLY'),
    ('DEPOSIT', 2.0, None, 'NO_CHANGE', 'DEPOSIT'),
])
def test_paid_subscription_rules(merchant, type_, balance, period_days, outcome, new_type):
    now = utcnow()
    period_end = now + timedelta(days=period_days) if period_days is not None else None
    _set_state(merchant, type_, balance, period_end)

    assert check_subscription(merchant, now=now) == outcome
    db.session.commit()
    assert merchant.subscription.type == new_type
    assert merchant.is_open is (outcome != 'SUSPENDED')


def test_admin_runs_subscription_check(client, merchant, admin_headers):
    merchant.subscription.trial_ends_at = utcnow() - timedelta(days=1)
    db.session.commit()

    resp = client.post('/api/admin/subscriptions/check', headers=admin_headers)
    assert resp.get_json()['data'] == {'NO_CHANGE': 0, 'AUTO_SWITCHED': 0, 'SUSPENDED': 1}
    assert merchant.subscription.status == 'SUSPENDED'


def test_deposit_after_trial_suspension_reopens_store(client, merchant, owner_headers, admin_headers):
    check_subscription(merchant, now=merchant.subscription.trial_ends_at + timedelta(days=1))
    db.session.commit()

    request_id = client.post('/api/merchant/subscription/payment-requests', headers=owner_headers,
                             json={'type': 'DEPOSIT', 'amount': 30}).get_json()['data']['id']
    client.post(f'/api/admin/payment-requests/{request_id}/verify', headers=admin_headers, json={})

    subscription = merchant.subscription
    assert (subscription.type, subscription.status) == ('DEPOSIT', 'ACTIVE')
    assert merchant.is_open is True
