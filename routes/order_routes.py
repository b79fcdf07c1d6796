from flask import Blueprint, request, jsonify, g
from flask_login import current_user

from merchanthub.auth import merchant_required
from merchanthub.orders import list_orders, update_status

order_bp = Blueprint('orders', __name__, url_prefix='/api/merchant/orders')


@order_bp.route('', methods=['GET'])
@merchant_required
def merchant_orders():
    limit = min(max(request.args.get('limit', 50, type=int), 1), 200)
    offset = max(request.args.get('offset', 0, type=int), 0)
    orders, total = list_orders(g.merchant.id, status=request.args.get('status'), limit=limit, offset=offset)
    return jsonify({
        'success': True,
        'data': {
            'orders': [o.to_dict() for o in orders],
            'pagination': {'total': total, 'limit': limit, 'offset': offset, 'hasMore': offset + len(orders) < total},
        }
    })


@order_bp.route('/<int:order_id>/status', methods=['PATCH'])
@merchant_required
def change_order_status(order_id):
    data = request.get_json(silent=True) or {}
    order = update_status(order_id, g.merchant.id, data.get('status'), user_id=current_user.id, note=data.get('note'))
    return jsonify({'success': True, 'data': order.to_dict()})
