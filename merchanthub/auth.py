from functools import wraps
from flask import g, request
from flask_login import current_user

from extensions import db, login_manager
from .errors import UnauthorizedError, ForbiddenError, ValidationError, ConflictError
from .models import User, Influencer, MerchantUser, TokenMixin


def bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


@login_manager.request_loader
def load_user_from_request(req):
    token = bearer_token()
    if not token:
        return None
    data = TokenMixin.read_token(token)
    if not data:
        return None

    model = Influencer if data.get('kind') == 'influencer' else User
    account = db.session.get(model, data.get('id'))
    # Changing the password bumps the version and revokes older tokens
    if account and account.is_active and account.password_version == data.get('pw_version'):
        return account
    return None


@login_manager.unauthorized_handler
def unauthorized():
    raise UnauthorizedError('Authentication required.')


def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            raise UnauthorizedError('Authentication required.')
        return f(*args, **kwargs)
    return decorated_function


def superadmin_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_superadmin:
            raise ForbiddenError('Super admin access required.')
        return f(*args, **kwargs)
    return decorated_function


def influencer_required(f):
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_influencer:
            raise ForbiddenError('Influencer access required.')
        return f(*args, **kwargs)
    return decorated_function


def merchant_required(f):
    """Resolves the caller's merchant into g.merchant.

    Users belonging to several merchants pick one with the X-Merchant-Id header.
    """
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if current_user.is_influencer or current_user.is_superadmin:
            raise ForbiddenError('Merchant access required.')

        memberships = [m for m in current_user.memberships if m.is_active and m.merchant.is_active]
        requested = request.headers.get('X-Merchant-Id')
        if requested:
            try:
                requested = int(requested)
            except ValueError:
                raise ValidationError('X-Merchant-Id must be an integer.')
            memberships = [m for m in memberships if m.merchant_id == requested]
        if not memberships:
            raise ForbiddenError('You are not a member of an active merchant.')

        membership = memberships[0]
        g.merchant = membership.merchant
        g.merchant_role = membership.role
        return f(*args, **kwargs)
    return decorated_function


def owner_required(f):
    @wraps(f)
    @merchant_required
    def decorated_function(*args, **kwargs):
        if g.merchant_role != 'OWNER':
            raise ForbiddenError('Only the merchant owner can do this.')
        return f(*args, **kwargs)
    return decorated_function


def assign_owner(merchant, user):
    """Makes `user` the merchant's owner. A merchant has at most one active owner."""
    existing = MerchantUser.query.filter_by(merchant_id=merchant.id, role='OWNER', is_active=True).first()
    if existing and existing.user_id != user.id:
        raise ConflictError('This merchant already has an owner.', error='OWNER_EXISTS')

    membership = MerchantUser.query.filter_by(merchant_id=merchant.id, user_id=user.id).first()
    if membership is None:
        membership = MerchantUser(merchant_id=merchant.id, user_id=user.id)
        db.session.add(membership)
    membership.role = 'OWNER'
    membership.is_active = True
    user.role = 'MERCHANT_OWNER'
    return membership
