"""
Shared pytest fixtures.

Every test gets a fresh application on an in-memory SQLite database with a
subscription plan, a super admin, and one AUD merchant with its owner.
"""
import pytest
from flask import g
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from merchanthub.auth import assign_owner
from merchanthub.merchants import create_merchant
from merchanthub.models import (User, Influencer, Menu, MenuCategory, AddonCategory, AddonItem,
                                MenuAddonCategory, SubscriptionPlan)
from merchanthub.subscriptions import start_trial

PASSWORD = 'password123'


def auth(token):
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def app():
    app = create_app('testing')

    @app.before_request
    def reset_login_user():
        # The test app context outlives each request, so Flask-Login must not reuse its cached user
        g.pop('_login_user', None)

    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def plan(app):
    plan = SubscriptionPlan(name='Standard', is_active=True, trial_days=30,
                            monthly_price_aud=15.0, monthly_price_idr=100000.0,
                            influencer_first_commission_percent=10.0,
                            influencer_recurring_commission_percent=5.0,
                            influencer_min_withdrawal_aud=20.0,
                            influencer_min_withdrawal_idr=100000.0)
    db.session.add(plan)
    db.session.commit()
    return plan


@pytest.fixture
def superadmin(app):
    user = User(name='Root', email='root@example.com', role='SUPER_ADMIN',
                password=generate_password_hash(PASSWORD))
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def merchant(app, plan):
    merchant = create_merchant({'code': 'cafe1', 'name': 'Cafe One', 'email': 'cafe@example.com',
                                'currency': 'AUD', 'timezone': 'Australia/Sydney',
                                'enableTax': True, 'taxPercentage': 10})
    start_trial(merchant)
    db.session.commit()
    return merchant


@pytest.fixture
def owner(merchant):
    user = User(name='Olivia Owner', email='owner@example.com', role='MERCHANT_OWNER',
                password=generate_password_hash(PASSWORD))
    db.session.add(user)
    db.session.flush()
    assign_owner(merchant, user)
    db.session.commit()
    return user


@pytest.fixture
def influencer(app):
    influencer = Influencer(name='Ina Fluence', email='ina@example.com', referral_code='INA12345',
                            password=generate_password_hash(PASSWORD), is_approved=True,
                            bank_details={'AUD': {'bankName': 'ANZ', 'accountNumber': '123456',
                                                  'accountName': 'Ina Fluence'}})
    db.session.add(influencer)
    db.session.commit()
    return influencer


@pytest.fixture
def owner_headers(owner):
    return auth(owner.get_token())


@pytest.fixture
def admin_headers(superadmin):
    return auth(superadmin.get_token())


@pytest.fixture
def influencer_headers(influencer):
    return auth(influencer.get_token())


@pytest.fixture
def make_menu(merchant):
    def _make_menu(name, price, category=None, description=None, **kwargs):
        menu = Menu(merchant_id=merchant.id, name=name, price=price, description=description, **kwargs)
        if category is not None:
            menu.categories.append(category)
        db.session.add(menu)
        db.session.commit()
        return menu
    return _make_menu


@pytest.fixture
def make_category(merchant):
    def _make_category(name):
        category = MenuCategory(merchant_id=merchant.id, name=name)
        db.session.add(category)
        db.session.commit()
        return category
    return _make_category


@pytest.fixture
def addon_setup(merchant, make_menu):
    """A burger whose required 'Size' addon category allows exactly one choice."""
    burger = make_menu('Classic Burger', 12.0)
    size = AddonCategory(merchant_id=merchant.id, name='Size', min_selection=1, max_selection=1)
    extras = AddonCategory(merchant_id=merchant.id, name='Extras', min_selection=0, max_selection=2)
    db.session.add_all([size, extras])
    db.session.flush()
    regular = AddonItem(addon_category_id=size.id, name='Regular', price=0.0, display_order=0)
    large = AddonItem(addon_category_id=size.id, name='Large', price=2.5, display_order=1)
    cheese = AddonItem(addon_category_id=extras.id, name='Cheese', price=1.0, display_order=0,
                       track_stock=True, stock_qty=5)
    bacon = AddonItem(addon_category_id=extras.id, name='Bacon', price=2.0, display_order=1)
    db.session.add_all([regular, large, cheese, bacon])
    db.session.add_all([
        MenuAddonCategory(menu_id=burger.id, addon_category_id=size.id, is_required=True, display_order=0),
        MenuAddonCategory(menu_id=burger.id, addon_category_id=extras.id, is_required=False, display_order=1),
    ])
    db.session.commit()
    return {'menu': burger, 'size': size, 'extras': extras,
            'regular': regular, 'large': large, 'cheese': cheese, 'bacon': bacon}
