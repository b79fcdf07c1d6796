from flask import Blueprint, request, jsonify

from merchanthub.errors import NotFoundError, ValidationError
from merchanthub.merchants import register_merchant
from merchanthub.models import Merchant
from merchanthub.orders import place_order, get_public_order
from merchanthub.search import search_menus

public_bp = Blueprint('public', __name__, url_prefix='/api/public')


def _float_arg(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f'{name} must be a number')


def _int_arg(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be a whole number')


@public_bp.route('/menu/<merchant_code>/search')
def search_menu(merchant_code):
    merchant = Merchant.query.filter_by(code=merchant_code.upper(), is_active=True).first()
    if not merchant:
        raise NotFoundError('Merchant not found')

    results = search_menus(
        merchant,
        query=request.args.get('q', ''),
        category_id=_int_arg('categoryId'),
        min_price=_float_arg('minPrice'),
        max_price=_float_arg('maxPrice'),
        sort=request.args.get('sort', 'relevance'),
        limit=_int_arg('limit'),
        cursor=request.args.get('cursor') or None,
    )
    return jsonify({'success': True, 'data': results})


@public_bp.route('/orders', methods=['POST'])
def create_order():
    order = place_order(request.get_json(silent=True) or {})
    return jsonify({'success': True, 'data': order.to_dict(public=True),
                    'message': 'Order placed successfully'}), 201


@public_bp.route('/orders/<order_number>')
def track_order(order_number):
    order = get_public_order(order_number)
    data = order.to_dict(public=True)
    data['statusHistory'] = [{'status': h.to_status, 'at': h.created_at.isoformat() + 'Z'} for h in order.history]
    return jsonify({'success': True, 'data': data})


@public_bp.route('/merchant/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    merchant, owner = register_merchant(data)
    return jsonify({
        'success': True,
        'message': 'Merchant registered successfully',
        'data': {
            'merchant': merchant.to_dict(),
            'subscription': merchant.subscription.to_dict(),
            'accessToken': owner.get_token(),
        }
    }), 201
