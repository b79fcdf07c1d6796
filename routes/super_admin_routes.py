from flask import Blueprint, request, jsonify
from flask_login import current_user

from merchanthub import influencers, vouchers
from merchanthub.auth import superadmin_required

super_admin_bp = Blueprint('super_admin', __name__, url_prefix='/api/superadmin')


# ==================== VOUCHERS ====================

@super_admin_bp.route('/vouchers', methods=['GET'])
@superadmin_required
def list_vouchers():
    return jsonify({'success': True, 'data': [v.to_dict() for v in vouchers.list_vouchers()]})


@super_admin_bp.route('/vouchers', methods=['POST'])
@superadmin_required
def create_voucher():
    voucher = vouchers.create_voucher(request.get_json(silent=True) or {}, user_id=current_user.id)
    return jsonify({'success': True, 'data': voucher.to_dict(), 'message': 'Voucher created successfully'}), 201


@super_admin_bp.route('/vouchers/<int:voucher_id>', methods=['GET'])
@superadmin_required
def voucher_detail(voucher_id):
    voucher = vouchers.get_voucher(voucher_id)
    data = voucher.to_dict()
    data['redemptions'] = [{
        'merchantId': r.merchant_id,
        'valueApplied': r.value_applied,
        'currency': r.currency,
        'triggeredAutoSwitch': r.triggered_auto_switch,
        'redeemedAt': r.created_at.isoformat() + 'Z' if r.created_at else None,
    } for r in voucher.redemptions]
    return jsonify({'success': True, 'data': data})


@super_admin_bp.route('/vouchers/<int:voucher_id>', methods=['PUT'])
@superadmin_required
def update_voucher(voucher_id):
    voucher = vouchers.update_voucher(voucher_id, request.get_json(silent=True) or {})
    return jsonify({'success': True, 'data': voucher.to_dict(), 'message': 'Voucher updated successfully'})


@super_admin_bp.route('/vouchers/<int:voucher_id>', methods=['DELETE'])
@superadmin_required
def delete_voucher(voucher_id):
    if vouchers.delete_voucher(voucher_id):
        return jsonify({'success': True, 'message': 'Voucher deleted successfully'})
    return jsonify({'success': True, 'message': 'Voucher has redemption history and was deactivated instead of deleted'})


# ==================== INFLUENCER WITHDRAWALS ====================

@super_admin_bp.route('/influencer-withdrawals', methods=['GET'])
@superadmin_required
def list_withdrawals():
    rows = influencers.list_withdrawals(status=request.args.get('status'))
    return jsonify({'success': True, 'data': [w.to_dict() for w in rows]})


@super_admin_bp.route('/influencer-withdrawals/<int:withdrawal_id>', methods=['PUT'])
@superadmin_required
def process_withdrawal(withdrawal_id):
    data = request.get_json(silent=True) or {}
    withdrawal = influencers.process_withdrawal(withdrawal_id, data.get('status'),
                                                admin_user_id=current_user.id, notes=data.get('notes'))
    return jsonify({'success': True, 'data': withdrawal.to_dict()})
