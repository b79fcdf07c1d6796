"""Groups subscription history rows into display flows.

A flow is the set of events produced by one user-visible action, such as a
payment request moving from submitted to received, or a voucher redemption.
Newer rows carry an identifier in their metadata and are grouped exactly.
Legacy rows without one are bucketed by UTC day and event family; those
flows are flagged ``isHeuristic`` because the grouping can be wrong.
"""
from .models import isoformat

EVENT_FAMILIES = {
    'PAYMENT_SUBMITTED': 'payment',
    'PAYMENT_RECEIVED': 'payment',
    'PAYMENT_REJECTED': 'payment',
    'ORDER_FEE_DEDUCTED': 'fee',
    'BALANCE_ADJUSTED': 'adjustment',
    'PERIOD_ADJUSTED': 'adjustment',
    'MANUAL_ADJUSTMENT': 'adjustment',
    'CREATED': 'lifecycle',
    'TRIAL_EXPIRED': 'lifecycle',
    'AUTO_SWITCHED': 'lifecycle',
    'SUSPENDED': 'lifecycle',
    'REACTIVATED': 'lifecycle',
}

FAMILY_FLOW_TYPES = {
    'payment': 'PAYMENT',
    'fee': 'ORDER_FEES',
    'adjustment': 'ADJUSTMENT',
    'lifecycle': 'LIFECYCLE',
}

# Legacy side effects that usually follow a payment or adjustment on the same day
FOLLOW_ON_EVENTS = ('AUTO_SWITCHED', 'REACTIVATED')


def flow_key(metadata):
    """Returns (key, flow type) for rows that identify their flow, else (None, None)."""
    metadata = metadata or {}
    if metadata.get('flowId'):
        key = str(metadata['flowId'])
        return key, metadata.get('flowType') or _type_from_key(key)
    if metadata.get('requestId') is not None:
        return f"payment-request-{metadata['requestId']}", metadata.get('flowType') or 'PAYMENT'
    if metadata.get('voucherCode'):
        return f"voucher-{str(metadata['voucherCode']).upper()}", metadata.get('flowType') or 'VOUCHER_REDEMPTION'
    return None, None


def _type_from_key(key):
    if key.startswith('payment-request-'):
        return 'PAYMENT'
    if key.startswith('voucher-'):
        return 'VOUCHER_REDEMPTION'
    return None


def _family(event_type):
    return EVENT_FAMILIES.get(event_type, 'adjustment')


def _legacy_key(day, family):
    return f"legacy-{day}-{family}"


def group_flows(events):
    """Groups SubscriptionHistory rows into flows, newest flow first."""
    ordered = sorted(events, key=lambda e: (e.created_at, e.id or 0))
    flows = {}

    for event in ordered:
        key, flow_type = flow_key(event.meta)
        heuristic = key is None
        if heuristic:
            day = event.created_at.date().isoformat()
            family = _family(event.event_type)
            key = _legacy_key(day, family)
            if event.event_type in FOLLOW_ON_EVENTS:
                for parent in ('payment', 'adjustment'):
                    if _legacy_key(day, parent) in flows:
                        key = _legacy_key(day, parent)
                        break
            flow_type = FAMILY_FLOW_TYPES[key.rsplit('-', 1)[1]]

        flow = flows.get(key)
        if flow is None:
            flow = flows[key] = {
                'flowId': key,
                'flowType': flow_type or FAMILY_FLOW_TYPES[_family(event.event_type)],
                'isHeuristic': heuristic,
                'events': [],
            }
        elif flow_type and not flow['flowType']:
            flow['flowType'] = flow_type
        flow['events'].append(event)

    result = []
    for flow in flows.values():
        rows = flow['events']
        balance_delta = 0.0
        for row in rows:
            if row.previous_balance is not None and row.new_balance is not None:
                balance_delta += row.new_balance - row.previous_balance
        result.append({
            'flowId': flow['flowId'],
            'flowType': flow['flowType'],
            'isHeuristic': flow['isHeuristic'],
            'startedAt': isoformat(rows[0].created_at),
            'endedAt': isoformat(rows[-1].created_at),
            'eventCount': len(rows),
            'balanceDelta': round(balance_delta, 2),
            'finalStatus': next((r.new_status for r in reversed(rows) if r.new_status), None),
            'events': [row.to_dict() for row in rows],
            '_sort': (rows[-1].created_at, rows[-1].id or 0),
        })

    result.sort(key=lambda f: f['_sort'], reverse=True)
    for flow in result:
        del flow['_sort']
    return result
