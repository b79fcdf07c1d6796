"""Addon categories and items for a merchant's menus.

Categories and items are soft deleted so historical orders keep pointing at
real rows. Every lookup here is scoped to one merchant.
"""
from sqlalchemy import func

from extensions import db
from .errors import ValidationError, NotFoundError, ConflictError
from .models import AddonCategory, AddonItem, Menu, MenuAddonCategory, OrderItemAddon, utcnow

NAME_MAX_LENGTH = 100


def _clean_name(name, label):
    if name is None or not str(name).strip():
        raise ValidationError(f'{label} name is required')
    name = str(name).strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(f'{label} name must be less than {NAME_MAX_LENGTH} characters')
    return name


def int_or_none(value, field):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a whole number')


def _number(value, field):
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be a number')


def validate_selection(min_selection, max_selection):
    if min_selection is not None and min_selection < 0:
        raise ValidationError('Minimum selection cannot be negative')
    if max_selection is not None:
        if max_selection < 0:
            raise ValidationError('Maximum selection cannot be negative')
        if max_selection < (min_selection or 0):
            raise ValidationError('Maximum selection must be greater than or equal to minimum selection')


# ==================== ADDON CATEGORIES ====================

def list_categories(merchant_id):
    return AddonCategory.query.filter_by(merchant_id=merchant_id, deleted_at=None) \
        .order_by(AddonCategory.name).all()


def get_category(category_id, merchant_id):
    category = AddonCategory.query.filter_by(id=category_id, merchant_id=merchant_id, deleted_at=None).first()
    if not category:
        raise NotFoundError('Addon category not found')
    return category


def create_category(merchant_id, data):
    name = _clean_name(data.get('name'), 'Category')
    min_selection = int_or_none(data.get('minSelection'), 'minSelection') or 0
    max_selection = int_or_none(data.get('maxSelection'), 'maxSelection')
    validate_selection(min_selection, max_selection)

    category = AddonCategory(
        merchant_id=merchant_id,
        name=name,
        description=data.get('description'),
        min_selection=min_selection,
        max_selection=max_selection,
    )
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id, merchant_id, data):
    category = get_category(category_id, merchant_id)

    if 'name' in data:
        category.name = _clean_name(data.get('name'), 'Category')
    if 'description' in data:
        category.description = data.get('description')

    min_selection = category.min_selection
    max_selection = category.max_selection
    if 'minSelection' in data:
        min_selection = int_or_none(data.get('minSelection'), 'minSelection') or 0
    if 'maxSelection' in data:
        max_selection = int_or_none(data.get('maxSelection'), 'maxSelection')
    # Checked against the effective pair so a partial update cannot break min <= max
    validate_selection(min_selection, max_selection)
    category.min_selection = min_selection
    category.max_selection = max_selection

    if 'isActive' in data:
        category.is_active = bool(data.get('isActive'))

    db.session.commit()
    return category


def toggle_category(category_id, merchant_id):
    category = get_category(category_id, merchant_id)
    category.is_active = not category.is_active
    db.session.commit()
    return category


def delete_category(category_id, merchant_id, user_id=None):
    category = get_category(category_id, merchant_id)
    for link in list(category.menu_links):
        category.menu_links.remove(link)
    category.deleted_at = utcnow()
    category.deleted_by_user_id = user_id
    db.session.commit()
    return category


def reorder_items(category_id, merchant_id, item_orders):
    """Applies new display orders to the items of a category in one commit."""
    category = get_category(category_id, merchant_id)
    if not isinstance(item_orders, list) or not item_orders:
        raise ValidationError('itemOrders must be a non-empty list')

    items_by_id = {item.id: item for item in category.live_items}
    updates = []
    for entry in item_orders:
        if not isinstance(entry, dict):
            raise ValidationError('Each itemOrders entry needs an id and a displayOrder')
        item_id = int_or_none(entry.get('id'), 'id')
        display_order = int_or_none(entry.get('displayOrder'), 'displayOrder')
        if item_id is None or display_order is None:
            raise ValidationError('Each itemOrders entry needs an id and a displayOrder')
        if display_order < 0:
            raise ValidationError('Display order cannot be negative')
        if item_id not in items_by_id:
            raise NotFoundError(f'Addon item {item_id} does not belong to this category')
        updates.append((items_by_id[item_id], display_order))

    for item, display_order in updates:
        item.display_order = display_order
    db.session.commit()
    return sorted(category.live_items, key=lambda i: (i.display_order, i.id))


# ==================== ADDON ITEMS ====================

def list_items(merchant_id, category_id=None):
    query = AddonItem.query.join(AddonCategory).filter(
        AddonCategory.merchant_id == merchant_id,
        AddonCategory.deleted_at.is_(None),
        AddonItem.deleted_at.is_(None),
    )
    if category_id is not None:
        get_category(category_id, merchant_id)
        query = query.filter(AddonItem.addon_category_id == category_id)
    return query.order_by(AddonCategory.name, AddonItem.display_order, AddonItem.id).all()


def get_item(item_id, merchant_id):
    item = AddonItem.query.join(AddonCategory).filter(
        AddonItem.id == item_id,
        AddonItem.deleted_at.is_(None),
        AddonCategory.merchant_id == merchant_id,
    ).first()
    if not item:
        raise NotFoundError('Addon item not found')
    return item


def _stock_fields(data, item=None):
    track_stock = bool(data.get('trackStock')) if 'trackStock' in data else (item.track_stock if item else False)
    stock_qty = int_or_none(data.get('stockQty'), 'stockQty') if 'stockQty' in data else (item.stock_qty if item else None)
    if stock_qty is not None and stock_qty < 0:
        raise ValidationError('Stock quantity cannot be negative')
    if track_stock and stock_qty is None:
        stock_qty = 0
    return track_stock, stock_qty


def create_item(merchant_id, data):
    name = _clean_name(data.get('name'), 'Addon item')
    if data.get('price') is None:
        raise ValidationError('Price is required')
    price = _number(data.get('price'), 'price')
    if price < 0:
        raise ValidationError('Price cannot be negative')

    category_id = int_or_none(data.get('addonCategoryId'), 'addonCategoryId')
    if category_id is None:
        raise ValidationError('addonCategoryId is required')
    category = get_category(category_id, merchant_id)
    track_stock, stock_qty = _stock_fields(data)

    display_order = int_or_none(data.get('displayOrder'), 'displayOrder')
    if display_order is None:
        highest = db.session.query(func.max(AddonItem.display_order)) \
            .filter(AddonItem.addon_category_id == category.id).scalar()
        display_order = (highest if highest is not None else -1) + 1
    elif display_order < 0:
        raise ValidationError('Display order cannot be negative')

    item = AddonItem(
        addon_category_id=category.id,
        name=name,
        description=data.get('description'),
        price=price,
        track_stock=track_stock,
        stock_qty=stock_qty,
        display_order=display_order,
    )
    db.session.add(item)
    db.session.commit()
    return item


def update_item(item_id, merchant_id, data):
    item = get_item(item_id, merchant_id)

    if 'name' in data:
        item.name = _clean_name(data.get('name'), 'Addon item')
    if 'description' in data:
        item.description = data.get('description')
    if 'price' in data:
        price = _number(data.get('price'), 'price')
        if price < 0:
            raise ValidationError('Price cannot be negative')
        item.price = price
    if 'addonCategoryId' in data:
        item.addon_category_id = get_category(int_or_none(data.get('addonCategoryId'), 'addonCategoryId'), merchant_id).id
    if 'isActive' in data:
        item.is_active = bool(data.get('isActive'))
    item.track_stock, item.stock_qty = _stock_fields(data, item)

    db.session.commit()
    return item


def toggle_item(item_id, merchant_id):
    item = get_item(item_id, merchant_id)
    item.is_active = not item.is_active
    db.session.commit()
    return item


def adjust_item_stock(item_id, merchant_id, quantity, mode='add'):
    """`add` applies a signed delta; `set` stores an absolute quantity."""
    item = get_item(item_id, merchant_id)
    if not item.track_stock:
        raise ValidationError('Stock tracking is not enabled for this addon item')
    quantity = int_or_none(quantity, 'quantity')
    if quantity is None:
        raise ValidationError('quantity is required')

    if mode == 'set':
        if quantity < 0:
            raise ValidationError('Stock quantity cannot be negative')
        item.stock_qty = quantity
    elif mode == 'add':
        if quantity == 0:
            raise ValidationError('Quantity must be non-zero')
        new_qty = (item.stock_qty or 0) + quantity
        if new_qty < 0:
            raise ValidationError('Stock cannot go below zero')
        item.stock_qty = new_qty
    else:
        raise ValidationError("mode must be 'add' or 'set'")

    db.session.commit()
    return item


def delete_item(item_id, merchant_id, user_id=None):
    item = get_item(item_id, merchant_id)
    if OrderItemAddon.query.filter_by(addon_item_id=item.id).count() > 0:
        raise ConflictError(
            'Cannot delete addon item that has been used in orders. Consider deactivating instead.',
            error='ADDON_ITEM_IN_USE'
        )
    item.deleted_at = utcnow()
    item.deleted_by_user_id = user_id
    db.session.commit()
    return item


# ==================== MENU-ADDON ASSOCIATIONS ====================

def _get_menu(menu_id, merchant_id):
    menu = Menu.query.filter_by(id=menu_id, merchant_id=merchant_id, deleted_at=None).first()
    if not menu:
        raise NotFoundError('Menu not found')
    return menu


def menus_for_category(category_id, merchant_id):
    category = get_category(category_id, merchant_id)
    links = [link for link in category.menu_links if link.menu.deleted_at is None]
    return sorted(links, key=lambda link: link.menu.name)


def categories_for_menu(menu_id, merchant_id):
    menu = _get_menu(menu_id, merchant_id)
    return [link for link in menu.addon_links if link.addon_category.deleted_at is None]


def attach_category_to_menu(menu_id, category_id, merchant_id, is_required=False, display_order=None):
    menu = _get_menu(menu_id, merchant_id)
    category = get_category(category_id, merchant_id)
    if db.session.get(MenuAddonCategory, (menu.id, category.id)):
        raise ConflictError('Addon category is already attached to this menu')

    if display_order is None:
        display_order = len(menu.addon_links)
    elif display_order < 0:
        raise ValidationError('Display order cannot be negative')

    link = MenuAddonCategory(menu_id=menu.id, addon_category_id=category.id,
                             is_required=bool(is_required), display_order=display_order)
    db.session.add(link)
    db.session.commit()
    return link


def update_menu_category(menu_id, category_id, merchant_id, data):
    _get_menu(menu_id, merchant_id)
    link = db.session.get(MenuAddonCategory, (menu_id, category_id))
    if not link or link.addon_category.merchant_id != merchant_id:
        raise NotFoundError('Addon category is not attached to this menu')
    if 'isRequired' in data:
        link.is_required = bool(data.get('isRequired'))
    if 'displayOrder' in data:
        display_order = int_or_none(data.get('displayOrder'), 'displayOrder')
        if display_order is None or display_order < 0:
            raise ValidationError('Display order cannot be negative')
        link.display_order = display_order
    db.session.commit()
    return link


def detach_category_from_menu(menu_id, category_id, merchant_id):
    _get_menu(menu_id, merchant_id)
    link = db.session.get(MenuAddonCategory, (menu_id, category_id))
    if not link or link.addon_category.merchant_id != merchant_id:
        raise NotFoundError('Addon category is not attached to this menu')
    db.session.delete(link)
    db.session.commit()
