"""Order placement and the order status lifecycle."""
import random
import string

from flask import current_app

from extensions import db, socketio
from .errors import ValidationError, NotFoundError
from .models import (Merchant, Menu, AddonItem, Customer, Order, OrderItem, OrderItemAddon,
                     OrderStatusHistory, utcnow)
from .search import is_menu_available
from .subscriptions import deduct_order_fee

ORDER_TYPES = ('DINE_IN', 'TAKEAWAY')
ORDER_STATUSES = ('PENDING', 'ACCEPTED', 'IN_PROGRESS', 'READY', 'COMPLETED', 'CANCELLED')
FINAL_STATUSES = ('COMPLETED', 'CANCELLED')
STATUS_TRANSITIONS = {
    'PENDING': ('ACCEPTED', 'CANCELLED'),
    'ACCEPTED': ('IN_PROGRESS', 'CANCELLED'),
    'IN_PROGRESS': ('READY', 'CANCELLED'),
    'READY': ('COMPLETED', 'CANCELLED'),
    'COMPLETED': (),
    'CANCELLED': (),
}


def _positive_int(value, field, default=None):
    if value is None and default is not None:
        return default
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a whole number')
    if value < 1:
        raise ValidationError(f'{field} must be at least 1')
    return value


def generate_order_number(merchant):
    date_part = utcnow().strftime('%Y%m%d')
    while True:
        suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=5))
        number = f"{merchant.code}-{date_part}-{suffix}"
        if not Order.query.filter_by(order_number=number).first():
            return number


def get_or_create_customer(data):
    data = data or {}
    email = (data.get('email') or '').strip().lower()
    if not email:
        return None
    customer = Customer.query.filter_by(email=email).first()
    if customer is None:
        customer = Customer(email=email, name=(data.get('name') or '').strip() or email.split('@')[0],
                            phone=data.get('phone'))
        db.session.add(customer)
    elif data.get('phone') and not customer.phone:
        customer.phone = data.get('phone')
    return customer


def _resolve_addons(menu, selections, quantity):
    """Validates addon selections for one order line against the menu's addon categories.

    Returns a list of (AddonItem, addon quantity).
    """
    links = {link.addon_category_id: link for link in menu.addon_links
             if link.addon_category.deleted_at is None and link.addon_category.is_active}

    chosen = []
    per_category = {}
    # Repeated entries for one addon draw on the same stock
    requested = {}
    for entry in selections or []:
        if not isinstance(entry, dict):
            raise ValidationError('Each addon needs an addonItemId')
        addon_id = entry.get('addonItemId')
        addon_qty = _positive_int(entry.get('quantity'), 'Addon quantity', default=1)
        addon = db.session.get(AddonItem, addon_id) if addon_id is not None else None
        if addon is None or addon.deleted_at is not None or addon.addon_category_id not in links:
            raise ValidationError(f'Addon {addon_id} is not available for {menu.name}')
        if not addon.is_active:
            raise ValidationError(f'{addon.name} is currently unavailable')
        requested[addon.id] = requested.get(addon.id, 0) + addon_qty
        if addon.track_stock and (addon.stock_qty or 0) < requested[addon.id] * quantity:
            raise ValidationError(f'{addon.name} is out of stock', error='OUT_OF_STOCK')
        per_category[addon.addon_category_id] = per_category.get(addon.addon_category_id, 0) + addon_qty
        chosen.append((addon, addon_qty))

    for category_id, link in links.items():
        category = link.addon_category
        count = per_category.get(category_id, 0)
        if count == 0 and not link.is_required:
            continue
        minimum = max(category.min_selection or 0, 1 if link.is_required else 0)
        if count < minimum:
            raise ValidationError(f'Please select at least {minimum} option(s) for {category.name}',
                                  error='ADDON_SELECTION_INVALID')
        if category.max_selection is not None and count > category.max_selection:
            raise ValidationError(f'Please select at most {category.max_selection} option(s) for {category.name}',
                                  error='ADDON_SELECTION_INVALID')
    return chosen


def place_order(data):
    data = data or {}
    merchant = Merchant.query.filter_by(code=(data.get('merchantCode') or '').strip().upper()).first()
    if merchant is None or not merchant.is_active:
        raise NotFoundError('Merchant not found')
    if not merchant.is_open:
        raise ValidationError('This store is currently closed', error='STORE_CLOSED')

    order_type = data.get('orderType') or 'DINE_IN'
    if order_type not in ORDER_TYPES:
        raise ValidationError('orderType must be DINE_IN or TAKEAWAY')
    if order_type == 'DINE_IN' and not data.get('tableNumber'):
        raise ValidationError('tableNumber is required for dine-in orders')
    lines = data.get('items')
    if not isinstance(lines, list) or not lines:
        raise ValidationError('Order must contain at least one item')

    order = Order(
        merchant_id=merchant.id,
        order_number=generate_order_number(merchant),
        order_type=order_type,
        table_number=data.get('tableNumber') if order_type == 'DINE_IN' else None,
        status='PENDING',
        notes=data.get('notes'),
        customer=get_or_create_customer(data.get('customer')),
    )

    subtotal = 0.0
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError('Each item needs a menuId')
        quantity = _positive_int(line.get('quantity'), 'Quantity', default=1)
        menu = Menu.query.filter_by(id=line.get('menuId'), merchant_id=merchant.id, deleted_at=None).first()
        if menu is None:
            raise ValidationError(f"Menu {line.get('menuId')} not found")
        if not is_menu_available(menu, merchant.timezone):
            raise ValidationError(f'{menu.name} is not available right now', error='MENU_UNAVAILABLE')
        if menu.track_stock:
            if (menu.stock_qty or 0) < quantity:
                raise ValidationError(f'{menu.name} is out of stock', error='OUT_OF_STOCK')
            menu.stock_qty -= quantity

        chosen = _resolve_addons(menu, line.get('addons'), quantity)
        item = OrderItem(menu_id=menu.id, menu_name=menu.name, menu_price=menu.price,
                         quantity=quantity, notes=line.get('notes'))
        unit_price = menu.price
        for addon, addon_qty in chosen:
            if addon.track_stock:
                addon.stock_qty -= addon_qty * quantity
            item.addons.append(OrderItemAddon(
                addon_item_id=addon.id,
                addon_name=addon.name,
                addon_price=addon.price,
                quantity=addon_qty,
                subtotal=round(addon.price * addon_qty, 2),
            ))
            unit_price += addon.price * addon_qty
        item.subtotal = round(unit_price * quantity, 2)
        subtotal += item.subtotal
        order.items.append(item)

    order.subtotal = round(subtotal, 2)
    order.tax_amount = round(subtotal * (merchant.tax_percentage or 0) / 100.0, 2) if merchant.enable_tax else 0.0
    order.total_amount = round(order.subtotal + order.tax_amount, 2)
    order.history.append(OrderStatusHistory(from_status=None, to_status='PENDING', note='Order placed'))
    db.session.add(order)
    db.session.flush()
    deduct_order_fee(merchant, order)
    db.session.commit()
    current_app.logger.info("Order %s placed for merchant %s", order.order_number, merchant.code)

    # Notify the merchant dashboard
    socketio.emit('new_order', {'orderId': order.id, 'orderNumber': order.order_number,
                                'totalAmount': order.total_amount}, room=f"merchant_{merchant.id}")
    return order


def get_public_order(order_number):
    order = Order.query.filter_by(order_number=order_number).first()
    if order is None:
        raise NotFoundError('Order not found')
    return order


def list_orders(merchant_id, status=None, limit=50, offset=0):
    query = Order.query.filter_by(merchant_id=merchant_id)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        query = query.filter_by(status=status)
    total = query.count()
    rows = query.order_by(Order.placed_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def _restore_stock(order):
    for item in order.items:
        menu = db.session.get(Menu, item.menu_id)
        if menu is not None and menu.track_stock:
            menu.stock_qty = (menu.stock_qty or 0) + item.quantity
        for addon_line in item.addons:
            addon = db.session.get(AddonItem, addon_line.addon_item_id)
            if addon is not None and addon.track_stock:
                addon.stock_qty = (addon.stock_qty or 0) + addon_line.quantity * item.quantity


def update_status(order_id, merchant_id, new_status, user_id=None, note=None):
    order = Order.query.filter_by(id=order_id, merchant_id=merchant_id).first()
    if order is None:
        raise NotFoundError('Order not found')
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    if new_status not in STATUS_TRANSITIONS[order.status]:
        raise ValidationError(f'Cannot change order status from {order.status} to {new_status}',
                              error='INVALID_TRANSITION')

    previous = order.status
    order.status = new_status
    if new_status == 'CANCELLED':
        _restore_stock(order)
    order.history.append(OrderStatusHistory(from_status=previous, to_status=new_status,
                                            changed_by_user_id=user_id, note=note))
    db.session.commit()

    socketio.emit('status_change', {'orderNumber': order.order_number, 'status': new_status},
                  room=f"order_{order.order_number}")
    return order
