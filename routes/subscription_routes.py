from flask import Blueprint, request, jsonify, g
from flask_login import current_user

from merchanthub.auth import merchant_required, owner_required
from merchanthub.errors import ValidationError
from merchanthub.flows import group_flows
from merchanthub.payments import submit_payment_request, list_payment_requests
from merchanthub.subscriptions import EVENT_TYPES, merchant_history, subscription_summary
from merchanthub.vouchers import redeem_voucher

subscription_bp = Blueprint('subscription', __name__, url_prefix='/api/merchant')

# Flows are built from the most recent events only
FLOW_EVENT_WINDOW = 500


def _paging(default_limit=50, max_limit=100):
    limit = request.args.get('limit', default_limit, type=int)
    offset = request.args.get('offset', 0, type=int)
    if limit < 1 or limit > max_limit:
        raise ValidationError(f'limit must be between 1 and {max_limit}')
    if offset < 0:
        raise ValidationError('offset cannot be negative')
    return limit, offset


@subscription_bp.route('/subscription')
@merchant_required
def current_subscription():
    return jsonify({'success': True, 'data': subscription_summary(g.merchant)})


@subscription_bp.route('/subscription/history')
@merchant_required
def subscription_history():
    limit, offset = _paging()
    event_type = request.args.get('eventType') or None
    if event_type and event_type not in EVENT_TYPES:
        raise ValidationError(f'Unknown eventType: {event_type}')

    rows, total = merchant_history(g.merchant.id, limit=limit, offset=offset, event_type=event_type)
    return jsonify({
        'success': True,
        'data': {
            'history': [row.to_dict() for row in rows],
            'pagination': {
                'total': total,
                'limit': limit,
                'offset': offset,
                'hasMore': offset + len(rows) < total,
            },
        }
    })


@subscription_bp.route('/subscription/flows')
@merchant_required
def subscription_flows():
    limit, _ = _paging(default_limit=20)
    rows, _ = merchant_history(g.merchant.id, limit=FLOW_EVENT_WINDOW)
    flows = group_flows(rows)
    return jsonify({'success': True, 'data': {'flows': flows[:limit], 'hasMore': len(flows) > limit}})


@subscription_bp.route('/subscription/payment-requests', methods=['GET'])
@merchant_required
def my_payment_requests():
    payment_requests = list_payment_requests(status=request.args.get('status'), merchant_id=g.merchant.id)
    return jsonify({'success': True, 'data': [r.to_dict() for r in payment_requests]})


@subscription_bp.route('/subscription/payment-requests', methods=['POST'])
@owner_required
def create_payment_request():
    payment_request = submit_payment_request(g.merchant, request.get_json(silent=True) or {}, user_id=current_user.id)
    return jsonify({'success': True, 'data': payment_request.to_dict(),
                    'message': 'Payment request submitted. We will verify it shortly.'}), 201


@subscription_bp.route('/vouchers/redeem', methods=['POST'])
@owner_required
def redeem():
    data = request.get_json(silent=True) or {}
    result = redeem_voucher(g.merchant, data.get('code'), user_id=current_user.id)
    message = result.pop('message')
    return jsonify({'success': True, 'message': message, 'data': result})
