from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from merchanthub.auth import login_required
from merchanthub.errors import UnauthorizedError, ValidationError
from merchanthub.influencers import register_influencer
from merchanthub.models import User, Influencer

auth_bp = Blueprint('auth', __name__)


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not email or not password:
        raise ValidationError('Email and password are required')
    return email, password


@auth_bp.route('/api/auth/login', methods=['POST'])
def login():
    email, password = _credentials()
    user = User.query.filter_by(email=email).first()

    if user and user.is_active and user.password and check_password_hash(user.password, password):
        current_app.logger.info("User %s logged in", user.email)
        return jsonify({'success': True, 'data': {'accessToken': user.get_token(), 'user': user.to_dict()}})
    raise UnauthorizedError('Invalid email or password', error='INVALID_CREDENTIALS')


@auth_bp.route('/api/auth/me')
@login_required
def me():
    return jsonify({'success': True, 'data': current_user.to_dict()})


@auth_bp.route('/api/auth/change-password', methods=['POST'])
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_password = data.get('currentPassword') or ''
    new_password = data.get('newPassword') or ''

    if not current_user.password or not check_password_hash(current_user.password, current_password):
        raise ValidationError('Incorrect current password.', error='INVALID_PASSWORD')
    if len(new_password) < 8:
        raise ValidationError('New password must be at least 8 characters.')

    current_user.password = generate_password_hash(new_password)
    current_user.password_version += 1
    db.session.commit()
    # Every older token is now revoked; hand back a fresh one
    return jsonify({'success': True, 'message': 'Your password has been updated.',
                    'data': {'accessToken': current_user.get_token()}})


@auth_bp.route('/api/influencer/auth/register', methods=['POST'])
def influencer_register():
    influencer = register_influencer(request.get_json(silent=True) or {})
    return jsonify({
        'success': True,
        'message': 'Registration received. Your account will be reviewed by our team.',
        'data': {'influencer': influencer.to_dict(), 'accessToken': influencer.get_token()}
    }), 201


@auth_bp.route('/api/influencer/auth/login', methods=['POST'])
def influencer_login():
    email, password = _credentials()
    influencer = Influencer.query.filter_by(email=email).first()

    if influencer and influencer.is_active and check_password_hash(influencer.password, password):
        return jsonify({'success': True, 'data': {'accessToken': influencer.get_token(),
                                                  'influencer': influencer.to_dict()}})
    raise UnauthorizedError('Invalid email or password', error='INVALID_CREDENTIALS')
