from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user

from extensions import db
from merchanthub import influencers, payments
from merchanthub.auth import superadmin_required, assign_owner
from merchanthub.errors import ValidationError, NotFoundError
from merchanthub.merchants import create_merchant, create_user, get_merchant, add_staff, platform_counts
from merchanthub.models import Merchant, User
from merchanthub.subscriptions import start_trial, check_all_subscriptions

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


@admin_bp.route('/dashboard')
@superadmin_required
def dashboard():
    return jsonify({'success': True, 'data': platform_counts()})


# ==================== MERCHANTS ====================

@admin_bp.route('/merchants', methods=['GET'])
@superadmin_required
def list_merchants():
    query = Merchant.query
    search = (request.args.get('q') or '').strip()
    if search:
        like = f'%{search}%'
        query = query.filter(db.or_(Merchant.name.ilike(like), Merchant.code.ilike(like)))
    merchants = query.order_by(Merchant.created_at.desc(), Merchant.id.desc()).all()
    return jsonify({'success': True, 'data': [m.to_dict() for m in merchants]})


@admin_bp.route('/merchants', methods=['POST'])
@superadmin_required
def create_merchant_route():
    merchant = create_merchant(request.get_json(silent=True) or {})
    start_trial(merchant, user_id=current_user.id)
    db.session.commit()
    current_app.logger.info("Merchant %s created by %s", merchant.code, current_user.email)
    return jsonify({'success': True, 'data': merchant.to_dict(), 'message': 'Merchant created successfully'}), 201


@admin_bp.route('/merchants/<int:merchant_id>')
@superadmin_required
def merchant_detail(merchant_id):
    merchant = get_merchant(merchant_id)
    data = merchant.to_dict()
    data['subscription'] = merchant.subscription.to_dict() if merchant.subscription else None
    data['balance'] = merchant.balance_account.balance if merchant.balance_account else 0.0
    data['members'] = [{'userId': m.user_id, 'name': m.user.name, 'email': m.user.email,
                        'role': m.role, 'isActive': m.is_active} for m in merchant.memberships]
    return jsonify({'success': True, 'data': data})


@admin_bp.route('/merchants/<int:merchant_id>/toggle-active', methods=['PATCH'])
@superadmin_required
def toggle_merchant(merchant_id):
    merchant = get_merchant(merchant_id)
    merchant.is_active = not merchant.is_active
    db.session.commit()
    return jsonify({'success': True, 'new_status': merchant.is_active, 'data': merchant.to_dict()})


@admin_bp.route('/merchants/<int:merchant_id>/assign-owner', methods=['POST'])
@superadmin_required
def assign_merchant_owner(merchant_id):
    merchant = get_merchant(merchant_id)
    user_id = (request.get_json(silent=True) or {}).get('userId')
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError('User not found')
    if user.is_superadmin:
        raise ValidationError('A super admin cannot own a merchant')
    assign_owner(merchant, user)
    db.session.commit()
    return jsonify({'success': True, 'data': merchant.to_dict(), 'message': f'{user.name} is now the owner'})


@admin_bp.route('/users', methods=['POST'])
@superadmin_required
def create_user_route():
    data = request.get_json(silent=True) or {}
    role = data.get('role') or 'MERCHANT_STAFF'
    user = create_user(data, role)
    if data.get('merchantId') is not None and role != 'SUPER_ADMIN':
        merchant = get_merchant(data['merchantId'])
        if role == 'MERCHANT_OWNER':
            assign_owner(merchant, user)
        else:
            add_staff(merchant, user)
    db.session.commit()
    return jsonify({'success': True, 'data': user.to_dict()}), 201


# ==================== SUBSCRIPTIONS ====================

@admin_bp.route('/subscriptions/check', methods=['POST'])
@superadmin_required
def check_subscriptions():
    return jsonify({'success': True, 'data': check_all_subscriptions()})


# ==================== PAYMENT REQUESTS ====================

@admin_bp.route('/payment-requests')
@superadmin_required
def payment_requests():
    rows = payments.list_payment_requests(status=request.args.get('status'))
    return jsonify({'success': True, 'data': [r.to_dict() for r in rows]})


@admin_bp.route('/payment-requests/<int:request_id>/verify', methods=['POST'])
@superadmin_required
def verify_payment(request_id):
    notes = (request.get_json(silent=True) or {}).get('notes')
    payment_request = payments.verify_payment_request(request_id, admin_user_id=current_user.id, notes=notes)
    return jsonify({'success': True, 'data': payment_request.to_dict(), 'message': 'Payment verified'})


@admin_bp.route('/payment-requests/<int:request_id>/reject', methods=['POST'])
@superadmin_required
def reject_payment(request_id):
    reason = (request.get_json(silent=True) or {}).get('reason')
    payment_request = payments.reject_payment_request(request_id, admin_user_id=current_user.id, reason=reason)
    return jsonify({'success': True, 'data': payment_request.to_dict(), 'message': 'Payment rejected'})


# ==================== INFLUENCERS ====================

@admin_bp.route('/influencers')
@superadmin_required
def list_influencers():
    approved = request.args.get('approved')
    if approved is not None:
        approved = approved.lower() in ('1', 'true', 'yes')
    rows = influencers.list_influencers(approved=approved)
    return jsonify({'success': True, 'data': [i.to_dict() for i in rows]})


@admin_bp.route('/influencers/<int:influencer_id>/approve', methods=['PATCH'])
@superadmin_required
def approve_influencer(influencer_id):
    approved = (request.get_json(silent=True) or {}).get('approved', True)
    influencer = influencers.approve_influencer(influencer_id, approved=approved)
    return jsonify({'success': True, 'data': influencer.to_dict()})
