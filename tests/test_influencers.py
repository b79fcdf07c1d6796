from extensions import db
from merchanthub.email import send_email
from merchanthub.influencers import get_balance
from merchanthub.models import InfluencerTransaction, InfluencerWithdrawal


def _fund(influencer, amount, currency='AUD'):
    balance = get_balance(influencer, currency)
    balance.balance = amount
    balance.total_earned = amount
    db.session.commit()
    return balance


def _withdraw(client, headers, amount, currency='AUD'):
    return client.post('/api/influencer/withdrawals', headers=headers, json={'currency': currency, 'amount': amount})


def test_withdrawal_debits_balance_on_request(client, plan, influencer, influencer_headers):
    balance = _fund(influencer, 100.0)
    resp = _withdraw(client, influencer_headers, 40)
    assert resp.status_code == 201
    data = resp.get_json()['data']
    assert data['status'] == 'PENDING'
    assert data['bankName'] == 'ANZ'
    assert balance.balance == 60.0
    assert InfluencerTransaction.query.one().type == 'WITHDRAWAL'


def test_withdrawal_validation(client, plan, influencer, influencer_headers):
    _fund(influencer, 30.0)
    assert _withdraw(client, influencer_headers, 0).status_code == 400
    assert _withdraw(client, influencer_headers, 10).get_json()['error'] == 'BELOW_MINIMUM'
    assert _withdraw(client, influencer_headers, 50).get_json()['error'] == 'INSUFFICIENT_BALANCE'
    assert _withdraw(client, influencer_headers, 200000, currency='IDR').get_json()['error'] == 'BANK_DETAILS_REQUIRED'

    assert _withdraw(client, influencer_headers, 20).status_code == 201
    _fund(influencer, 30.0)
    assert _withdraw(client, influencer_headers, 20).get_json()['error'] == 'PENDING_WITHDRAWAL'


def test_unapproved_influencer_cannot_withdraw(client, plan, influencer, influencer_headers):
    _fund(influencer, 100.0)
    influencer.is_approved = False
    db.session.commit()
    resp = _withdraw(client, influencer_headers, 50)
    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'NOT_APPROVED'


def test_bank_details_update(client, influencer, influencer_headers):
    resp = client.put('/api/influencer/bank-details', headers=influencer_headers,
                      json={'currency': 'IDR', 'bankName': 'BCA', 'accountNumber': '999', 'accountName': 'Ina'})
    assert resp.status_code == 200
    assert set(resp.get_json()['data']) == {'AUD', 'IDR'}
    assert influencer.bank_for('IDR')['bankName'] == 'BCA'

    resp = client.put('/api/influencer/bank-details', headers=influencer_headers,
                      json={'currency': 'IDR', 'bankName': 'BCA'})
    assert resp.status_code == 400


def test_rejected_withdrawal_refunds_and_is_final(client, plan, influencer, influencer_headers, admin_headers):
    balance = _fund(influencer, 100.0)
    withdrawal_id = _withdraw(client, influencer_headers, 40).get_json()['data']['id']
    url = f'/api/superadmin/influencer-withdrawals/{withdrawal_id}'

    assert client.put(url, headers=admin_headers, json={'status': 'PROCESSING'}).status_code == 200
    resp = client.put(url, headers=admin_headers, json={'status': 'REJECTED', 'notes': 'Account closed'})
    assert resp.get_json()['data']['status'] == 'REJECTED'
    assert balance.balance == 100.0
    assert [t.type for t in InfluencerTransaction.query.order_by(InfluencerTransaction.id)] == ['WITHDRAWAL', 'WITHDRAWAL_REFUND']

    again = client.put(url, headers=admin_headers, json={'status': 'COMPLETED'})
    assert again.status_code == 400
    assert again.get_json()['error'] == 'WITHDRAWAL_FINAL'


def test_completed_withdrawal_counts_as_withdrawn(client, plan, influencer, influencer_headers, admin_headers):
    balance = _fund(influencer, 100.0)
    withdrawal_id = _withdraw(client, influencer_headers, 25).get_json()['data']['id']
    client.put(f'/api/superadmin/influencer-withdrawals/{withdrawal_id}', headers=admin_headers,
               json={'status': 'COMPLETED'})
    assert balance.balance == 75.0
    assert balance.total_withdrawn == 25.0
    assert db.session.get(InfluencerWithdrawal, withdrawal_id).processed_at is not None

    listed = client.get('/api/superadmin/influencer-withdrawals?status=COMPLETED', headers=admin_headers).get_json()['data']
    assert [w['id'] for w in listed] == [withdrawal_id]
    assert client.get('/api/superadmin/influencer-withdrawals?status=NOPE', headers=admin_headers).status_code == 400


def test_dashboard_and_transactions(client, plan, influencer, influencer_headers):
    _fund(influencer, 50.0)
    _withdraw(client, influencer_headers, 20)
    dashboard = client.get('/api/influencer/dashboard', headers=influencer_headers).get_json()['data']
    balances = {b['currency']: b for b in dashboard['balances']}
    assert balances['AUD']['balance'] == 30.0
    assert balances['IDR']['balance'] == 0.0

    txs = client.get('/api/influencer/transactions', headers=influencer_headers).get_json()['data']
    assert txs['pagination']['total'] == 1


def test_admin_approves_influencer(client, influencer, admin_headers):
    influencer.is_approved = False
    db.session.commit()
    pending = client.get('/api/admin/influencers?approved=false', headers=admin_headers).get_json()['data']
    assert [i['id'] for i in pending] == [influencer.id]
    resp = client.patch(f'/api/admin/influencers/{influencer.id}/approve', headers=admin_headers)
    assert resp.get_json()['data']['isApproved'] is True


def test_email_template_errors_are_not_raised(app):
    assert send_email('ina@example.com', 'Hello', 'email/does_not_exist', influencer=None) is False
