from flask import Blueprint, request, jsonify
from flask_login import current_user

from merchanthub import influencers
from merchanthub.auth import influencer_required

influencer_bp = Blueprint('influencer', __name__, url_prefix='/api/influencer')


@influencer_bp.route('/dashboard')
@influencer_required
def dashboard():
    return jsonify({'success': True, 'data': influencers.dashboard(current_user._get_current_object())})


@influencer_bp.route('/transactions')
@influencer_required
def transactions():
    limit = min(max(request.args.get('limit', 50, type=int), 1), 100)
    offset = max(request.args.get('offset', 0, type=int), 0)
    rows, total = influencers.list_transactions(current_user._get_current_object(),
                                                currency=request.args.get('currency'), limit=limit, offset=offset)
    return jsonify({
        'success': True,
        'data': {
            'transactions': [tx.to_dict() for tx in rows],
            'pagination': {'total': total, 'limit': limit, 'offset': offset, 'hasMore': offset + len(rows) < total},
        }
    })


@influencer_bp.route('/bank-details', methods=['PUT'])
@influencer_required
def bank_details():
    data = request.get_json(silent=True) or {}
    influencer = influencers.update_bank_details(current_user._get_current_object(), data.get('currency'), data)
    return jsonify({'success': True, 'data': influencer.bank_details, 'message': 'Bank details updated'})


@influencer_bp.route('/withdrawals', methods=['GET'])
@influencer_required
def my_withdrawals():
    rows = influencers.list_withdrawals(influencer=current_user._get_current_object())
    return jsonify({'success': True, 'data': [w.to_dict() for w in rows]})


@influencer_bp.route('/withdrawals', methods=['POST'])
@influencer_required
def request_withdrawal():
    data = request.get_json(silent=True) or {}
    withdrawal = influencers.request_withdrawal(current_user._get_current_object(), data.get('currency'), data.get('amount'))
    return jsonify({'success': True, 'data': withdrawal.to_dict(), 'message': 'Withdrawal requested'}), 201
