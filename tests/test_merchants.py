from conftest import PASSWORD
from extensions import db
from merchanthub.models import Merchant, MerchantUser, PaymentRequest, SubscriptionHistory, User


def _registration(**extra):
    body = {
        'code': 'noodle-bar',
        'name': 'Noodle Bar',
        'email': 'hello@noodle.example',
        'currency': 'IDR',
        'owner': {'name': 'Nina', 'email': 'nina@noodle.example', 'password': PASSWORD},
    }
    body.update(extra)
    return body


def test_public_registration_starts_trial(client, plan):
    resp = client.post('/api/public/merchant/register', json=_registration())
    assert resp.status_code == 201
    data = resp.get_json()['data']
    assert data['merchant']['code'] == 'NOODLE-BAR'
    assert data['merchant']['owner']['email'] == 'nina@noodle.example'
    assert data['subscription']['type'] == 'TRIAL'

    merchant = Merchant.query.filter_by(code='NOODLE-BAR').one()
    assert merchant.balance_account.balance == 0.0
    assert SubscriptionHistory.query.filter_by(merchant_id=merchant.id).one().event_type == 'CREATED'

    summary = client.get('/api/merchant/subscription',
                         headers={'Authorization': f"Bearer {data['accessToken']}"}).get_json()['data']
    assert summary['type'] == 'TRIAL'
    assert summary['currency'] == 'IDR'
    assert 29 <= summary['daysRemaining'] <= 30


def test_registration_with_referral_code(client, plan, influencer):
    resp = client.post('/api/public/merchant/register', json=_registration(referralCode='ina12345'))
    assert resp.status_code == 201
    assert Merchant.query.filter_by(code='NOODLE-BAR').one().referred_by_influencer_id == influencer.id

    resp = client.post('/api/public/merchant/register',
                       json=_registration(code='OTHER', referralCode='NOPE',
                                          owner={'name': 'X', 'email': 'x@example.com', 'password': PASSWORD}))
    assert resp.get_json()['error'] == 'INVALID_REFERRAL_CODE'
    assert Merchant.query.filter_by(code='OTHER').count() == 0


def test_registration_conflicts(client, merchant):
    resp = client.post('/api/public/merchant/register', json=_registration(code='cafe1'))
    assert resp.status_code == 409
    resp = client.post('/api/public/merchant/register', json=_registration(code='a b'))
    assert resp.status_code == 400


def test_admin_creates_and_lists_merchants(client, plan, admin_headers):
    resp = client.post('/api/admin/merchants', headers=admin_headers,
                       json={'code': 'deli', 'name': 'Deli', 'email': 'deli@example.com'})
    assert resp.status_code == 201
    merchant_id = resp.get_json()['data']['id']
    assert db.session.get(Merchant, merchant_id).subscription.type == 'TRIAL'

    listed = client.get('/api/admin/merchants?q=del', headers=admin_headers).get_json()['data']
    assert [m['code'] for m in listed] == ['DELI']

    detail = client.get(f'/api/admin/merchants/{merchant_id}', headers=admin_headers).get_json()['data']
    assert detail['balance'] == 0.0
    assert detail['members'] == []


def test_toggle_merchant_active(client, merchant, owner_headers, admin_headers):
    resp = client.patch(f'/api/admin/merchants/{merchant.id}/toggle-active', headers=admin_headers)
    assert resp.get_json()['new_status'] is False
    assert client.get('/api/merchant/addon-categories', headers=owner_headers).status_code == 403


def test_assign_owner_conflicts_with_existing_owner(client, merchant, owner, admin_headers):
    resp = client.post('/api/admin/users', headers=admin_headers,
                       json={'name': 'Second', 'email': 'second@example.com', 'password': PASSWORD,
                             'role': 'MERCHANT_STAFF', 'merchantId': merchant.id})
    assert resp.status_code == 201
    second = User.query.filter_by(email='second@example.com').one()
    assert MerchantUser.query.filter_by(user_id=second.id).one().role == 'STAFF'

    resp = client.post(f'/api/admin/merchants/{merchant.id}/assign-owner', headers=admin_headers,
                       json={'userId': second.id})
    assert resp.status_code == 409
    assert resp.get_json()['error'] == 'OWNER_EXISTS'

    owner_membership = MerchantUser.query.filter_by(user_id=owner.id).one()
    owner_membership.is_active = False
    db.session.commit()
    resp = client.post(f'/api/admin/merchants/{merchant.id}/assign-owner', headers=admin_headers,
                       json={'userId': second.id})
    assert resp.status_code == 200
    assert resp.get_json()['data']['owner']['email'] == 'second@example.com'


def test_staff_cannot_use_owner_endpoints(client, merchant, owner, admin_headers):
    client.post('/api/admin/users', headers=admin_headers,
                json={'name': 'Staff', 'email': 'staff@example.com', 'password': PASSWORD,
                      'merchantId': merchant.id})
    login = client.post('/api/auth/login', json={'email': 'staff@example.com', 'password': PASSWORD})
    headers = {'Authorization': f"Bearer {login.get_json()['data']['accessToken']}"}
    assert client.get('/api/merchant/addon-categories', headers=headers).status_code == 200
    resp = client.post('/api/merchant/vouchers/redeem', headers=headers, json={'code': 'ANY'})
    assert resp.status_code == 403


def test_admin_dashboard_counts(client, merchant, owner, admin_headers):
    data = client.get('/api/admin/dashboard', headers=admin_headers).get_json()['data']
    assert data['merchants'] == 1
    assert data['users'] == 2


def test_create_merchant_rejects_bad_tax_percentage(client, plan, admin_headers):
    body = {'code': 'deli', 'name': 'Deli', 'email': 'deli@example.com', 'taxPercentage': 'ten'}
    resp = client.post('/api/admin/merchants', headers=admin_headers, json=body)
    assert resp.status_code == 400
    assert 'taxPercentage' in resp.get_json()['message']

    body['taxPercentage'] = -5
    assert client.post('/api/admin/merchants', headers=admin_headers, json=body).status_code == 400
    assert Merchant.query.count() == 0


def test_subscription_history_pagination_and_filter(client, merchant, owner_headers):
    for amount in (10, 20):
        request_id = client.post('/api/merchant/subscription/payment-requests', headers=owner_headers,
                                 json={'type': 'DEPOSIT', 'amount': amount}).get_json()['data']['id']
        PaymentRequest.query.filter_by(id=request_id).update({'status': 'REJECTED'})
        db.session.commit()

    resp = client.get('/api/merchant/subscription/history?limit=2', headers=owner_headers)
    data = resp.get_json()['data']
    assert data['pagination'] == {'total': 3, 'limit': 2, 'offset': 0, 'hasMore': True}
    assert [e['eventType'] for e in data['history']] == ['PAYMENT_SUBMITTED', 'PAYMENT_SUBMITTED']

    data = client.get('/api/merchant/subscription/history?limit=2&offset=2',
                      headers=owner_headers).get_json()['data']
    assert [e['eventType'] for e in data['history']] == ['CREATED']
    assert data['pagination']['hasMore'] is False

    data = client.get('/api/merchant/subscription/history?eventType=CREATED',
                      headers=owner_headers).get_json()['data']
    assert data['pagination']['total'] == 1

    assert client.get('/api/merchant/subscription/history?eventType=NOPE',
                      headers=owner_headers).status_code == 400
    assert client.get('/api/merchant/subscription/history?limit=0', headers=owner_headers).status_code == 400
    assert client.get('/api/merchant/subscription/history?limit=101', headers=owner_headers).status_code == 400
