from extensions import db
from merchanthub.models import AddonItem, Customer, Menu, Order, OrderStatusHistory


def _order(addon_setup, addons, quantity=1, **extra):
    body = {
        'merchantCode': 'cafe1',
        'orderType': 'DINE_IN',
        'tableNumber': '4',
        'customer': {'name': 'Sam', 'email': 'Sam@Example.com'},
        'items': [{'menuId': addon_setup['menu'].id, 'quantity': quantity,
                   'addons': [{'addonItemId': a.id} for a in addons]}],
    }
    body.update(extra)
    return body


def test_place_order_computes_totals_and_tax(client, addon_setup):
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['large'], addon_setup['cheese']], quantity=2))
    assert resp.status_code == 201
    data = resp.get_json()['data']
    # (12.00 + 2.50 + 1.00) x 2 with 10% tax
    assert data['subtotal'] == 31.0
    assert data['taxAmount'] == 3.1
    assert data['totalAmount'] == 34.1
    assert data['status'] == 'PENDING'
    assert data['orderNumber'].startswith('CAFE1-')
    assert 'customer' not in data

    assert db.session.get(AddonItem, addon_setup['cheese'].id).stock_qty == 3
    assert Customer.query.filter_by(email='sam@example.com').count() == 1


def test_required_addon_category_must_be_selected(client, addon_setup):
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['bacon']]))
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'ADDON_SELECTION_INVALID'
    assert Order.query.count() == 0


def test_addon_max_selection_is_enforced(client, addon_setup):
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular'], addon_setup['large']]))
    assert resp.status_code == 400
    assert 'at most 1' in resp.get_json()['message']


def test_addon_from_unlinked_category_is_rejected(client, addon_setup, merchant):
    from merchanthub.models import AddonCategory
    loose = AddonCategory(merchant_id=merchant.id, name='Loose')
    db.session.add(loose)
    db.session.flush()
    stray = AddonItem(addon_category_id=loose.id, name='Stray', price=1.0)
    db.session.add(stray)
    db.session.commit()
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular'], stray]))
    assert resp.status_code == 400


def test_out_of_stock_is_rejected_without_side_effects(client, addon_setup):
    menu = addon_setup['menu']
    menu.track_stock = True
    menu.stock_qty = 1
    db.session.commit()
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']], quantity=2))
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'OUT_OF_STOCK'
    assert db.session.get(Menu, menu.id).stock_qty == 1


def test_closed_store_and_validation(client, addon_setup, merchant):
    assert client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']], tableNumber=None)).status_code == 400
    assert client.post('/api/public/orders', json=_order(addon_setup, [], items=[])).status_code == 400

    merchant.is_open = False
    db.session.commit()
    resp = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']]))
    assert resp.get_json()['error'] == 'STORE_CLOSED'


def test_public_lookup(client, addon_setup):
    number = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']])).get_json()['data']['orderNumber']
    resp = client.get(f'/api/public/orders/{number}')
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['items'][0]['addons'][0]['addonName'] == 'Regular'
    assert data['merchant']['code'] == 'CAFE1'
    assert data['statusHistory'][0]['status'] == 'PENDING'
    assert client.get('/api/public/orders/NOPE-1').status_code == 404


def test_status_transitions(client, owner_headers, addon_setup):
    order_id = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']])).get_json()['data']['id']
    url = f'/api/merchant/orders/{order_id}/status'

    resp = client.patch(url, headers=owner_headers, json={'status': 'READY'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'INVALID_TRANSITION'

    for status in ('ACCEPTED', 'IN_PROGRESS', 'READY', 'COMPLETED'):
        assert client.patch(url, headers=owner_headers, json={'status': status}).status_code == 200
    assert client.patch(url, headers=owner_headers, json={'status': 'CANCELLED'}).status_code == 400
    assert OrderStatusHistory.query.filter_by(order_id=order_id).count() == 5


def test_cancel_restores_stock(client, owner_headers, addon_setup):
    order_id = client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular'], addon_setup['cheese']])).get_json()['data']['id']
    assert db.session.get(AddonItem, addon_setup['cheese'].id).stock_qty == 4
    client.patch(f'/api/merchant/orders/{order_id}/status', headers=owner_headers, json={'status': 'CANCELLED'})
    assert db.session.get(AddonItem, addon_setup['cheese'].id).stock_qty == 5


def test_merchant_order_list(client, owner_headers, addon_setup):
    for _ in range(3):
        client.post('/api/public/orders', json=_order(addon_setup, [addon_setup['regular']]))
    resp = client.get('/api/merchant/orders?limit=2', headers=owner_headers)
    data = resp.get_json()['data']
    assert len(data['orders']) == 2
    assert data['pagination'] == {'total': 3, 'limit': 2, 'offset': 0, 'hasMore': True}
    assert data['orders'][0]['customer']['email'] == 'sam@example.com'
    assert client.get('/api/merchant/orders?status=BOGUS', headers=owner_headers).status_code == 400


def test_repeated_addon_entries_share_stock(client, addon_setup):
    cheese = addon_setup['cheese']
    cheese.stock_qty = 1
    db.session.commit()
    resp = client.post('/api/public/orders',
                       json=_order(addon_setup, [addon_setup['regular'], cheese, cheese]))
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'OUT_OF_STOCK'
    assert db.session.get(AddonItem, cheese.id).stock_qty == 1
    assert Order.query.count() == 0
