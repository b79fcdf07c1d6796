from datetime import datetime

from merchanthub.flows import flow_key, group_flows
from merchanthub.models import SubscriptionHistory


def _event(id, event_type, at, metadata=None, previous_balance=None, new_balance=None, new_status=None):
    return SubscriptionHistory(id=id, merchant_id=1, event_type=event_type, created_at=at, meta=metadata or {},
                               triggered_by='SYSTEM', previous_balance=previous_balance,
                               new_balance=new_balance, new_status=new_status)


def test_flow_key_priority():
    assert flow_key({'flowId': 'abc', 'requestId': 4, 'voucherCode': 'X'}) == ('abc', None)
    assert flow_key({'requestId': 4, 'voucherCode': 'X'}) == ('payment-request-4', 'PAYMENT')
    assert flow_key({'voucherCode': 'spring'}) == ('voucher-SPRING', 'VOUCHER_REDEMPTION')
    assert flow_key({}) == (None, None)
    assert flow_key(None) == (None, None)


def test_keyed_events_group_across_days():
    events = [
        _event(1, 'PAYMENT_SUBMITTED', datetime(2025, 1, 1, 9), {'requestId': 7}),
        _event(2, 'PAYMENT_RECEIVED', datetime(2025, 1, 3, 10), {'requestId': 7, 'flowType': 'PAYMENT'},
               previous_balance=0.0, new_balance=50.0),
        _event(3, 'AUTO_SWITCHED', datetime(2025, 1, 3, 10), {'requestId': 7}, new_status='ACTIVE'),
    ]
    flows = group_flows(events)
    assert len(flows) == 1
    flow = flows[0]
    assert flow['flowId'] == 'payment-request-7'
    assert flow['flowType'] == 'PAYMENT'
    assert flow['isHeuristic'] is False
    assert flow['balanceDelta'] == 50.0
    assert flow['startedAt'] == '2025-01-01T09:00:00Z'
    assert flow['endedAt'] == '2025-01-03T10:00:00Z'
    assert [e['eventType'] for e in flow['events']] == ['PAYMENT_SUBMITTED', 'PAYMENT_RECEIVED', 'AUTO_SWITCHED']


def test_legacy_events_bucket_by_day_and_family():
    events = [
        _event(1, 'ORDER_FEE_DEDUCTED', datetime(2025, 2, 1, 9), previous_balance=10.0, new_balance=9.96),
        _event(2, 'ORDER_FEE_DEDUCTED', datetime(2025, 2, 1, 15), previous_balance=9.96, new_balance=9.92),
        _event(3, 'ORDER_FEE_DEDUCTED', datetime(2025, 2, 2, 9), previous_balance=9.92, new_balance=9.88),
        _event(4, 'PAYMENT_RECEIVED', datetime(2025, 2, 2, 11), previous_balance=9.88, new_balance=29.88),
        _event(5, 'REACTIVATED', datetime(2025, 2, 2, 11, 1), new_status='ACTIVE'),
        _event(6, 'SUSPENDED', datetime(2025, 2, 3, 0, 5), new_status='SUSPENDED'),
    ]
    flows = group_flows(events)
    assert [f['flowId'] for f in flows] == [
        'legacy-2025-02-03-lifecycle',
        'legacy-2025-02-02-payment',
        'legacy-2025-02-02-fee',
        'legacy-2025-02-01-fee',
    ]
    assert all(f['isHeuristic'] for f in flows)

    payment = flows[1]
    assert payment['flowType'] == 'PAYMENT'
    assert [e['eventType'] for e in payment['events']] == ['PAYMENT_RECEIVED', 'REACTIVATED']
    assert payment['finalStatus'] == 'ACTIVE'

    fees = flows[3]
    assert fees['flowType'] == 'ORDER_FEES'
    assert fees['eventCount'] == 2
    assert fees['balanceDelta'] == -0.08


def test_input_order_does_not_matter():
    events = [
        _event(2, 'BALANCE_ADJUSTED', datetime(2025, 5, 1, 12), {'flowId': 'voucher-A'}),
        _event(1, 'AUTO_SWITCHED', datetime(2025, 5, 1, 12), {'flowId': 'voucher-A'}),
    ]
    flows = group_flows(events)
    assert [e['id'] for e in flows[0]['events']] == [1, 2]
    assert flows[0]['flowType'] == 'VOUCHER_REDEMPTION'
