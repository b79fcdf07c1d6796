from flask import Blueprint, request, jsonify, g
from flask_login import current_user

from merchanthub import addons
from merchanthub.auth import merchant_required
from merchanthub.errors import ValidationError

addon_bp = Blueprint('addons', __name__, url_prefix='/api/merchant')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


# ==================== ADDON CATEGORIES ====================

@addon_bp.route('/addon-categories', methods=['GET'])
@merchant_required
def list_addon_categories():
    categories = addons.list_categories(g.merchant.id)
    return jsonify({'success': True, 'data': [c.to_dict() for c in categories]})


@addon_bp.route('/addon-categories', methods=['POST'])
@merchant_required
def create_addon_category():
    category = addons.create_category(g.merchant.id, _json_body())
    return jsonify({'success': True, 'data': category.to_dict(), 'message': 'Addon category created successfully'}), 201


@addon_bp.route('/addon-categories/<int:category_id>', methods=['GET'])
@merchant_required
def get_addon_category(category_id):
    category = addons.get_category(category_id, g.merchant.id)
    return jsonify({'success': True, 'data': category.to_dict()})


@addon_bp.route('/addon-categories/<int:category_id>', methods=['PUT'])
@merchant_required
def update_addon_category(category_id):
    category = addons.update_category(category_id, g.merchant.id, _json_body())
    return jsonify({'success': True, 'data': category.to_dict(), 'message': 'Addon category updated successfully'})


@addon_bp.route('/addon-categories/<int:category_id>', methods=['DELETE'])
@merchant_required
def delete_addon_category(category_id):
    addons.delete_category(category_id, g.merchant.id, user_id=current_user.id)
    return jsonify({'success': True, 'message': 'Addon category deleted successfully'})


@addon_bp.route('/addon-categories/<int:category_id>/toggle-active', methods=['PATCH'])
@merchant_required
def toggle_addon_category(category_id):
    category = addons.toggle_category(category_id, g.merchant.id)
    return jsonify({'success': True, 'new_status': category.is_active, 'data': category.to_dict(include_items=False)})


@addon_bp.route('/addon-categories/<int:category_id>/items', methods=['GET'])
@merchant_required
def list_addon_category_items(category_id):
    items = addons.list_items(g.merchant.id, category_id=category_id)
    return jsonify({'success': True, 'data': [i.to_dict() for i in items]})


@addon_bp.route('/addon-categories/<int:category_id>/reorder-items', methods=['POST'])
@merchant_required
def reorder_addon_items(category_id):
    items = addons.reorder_items(category_id, g.merchant.id, _json_body().get('itemOrders'))
    return jsonify({'success': True, 'data': [i.to_dict() for i in items], 'message': 'Addon items reordered successfully'})


@addon_bp.route('/addon-categories/<int:category_id>/menus', methods=['GET'])
@merchant_required
def list_addon_category_menus(category_id):
    links = addons.menus_for_category(category_id, g.merchant.id)
    return jsonify({'success': True, 'data': [link.to_dict() for link in links]})


# ==================== ADDON ITEMS ====================

@addon_bp.route('/addon-items', methods=['GET'])
@merchant_required
def list_addon_items():
    category_id = request.args.get('categoryId', type=int)
    items = addons.list_items(g.merchant.id, category_id=category_id)
    return jsonify({'success': True, 'data': [i.to_dict() for i in items]})


@addon_bp.route('/addon-items', methods=['POST'])
@merchant_required
def create_addon_item():
    item = addons.create_item(g.merchant.id, _json_body())
    return jsonify({'success': True, 'data': item.to_dict(), 'message': 'Addon item created successfully'}), 201


@addon_bp.route('/addon-items/<int:item_id>', methods=['GET'])
@merchant_required
def get_addon_item(item_id):
    return jsonify({'success': True, 'data': addons.get_item(item_id, g.merchant.id).to_dict()})


@addon_bp.route('/addon-items/<int:item_id>', methods=['PUT'])
@merchant_required
def update_addon_item(item_id):
    item = addons.update_item(item_id, g.merchant.id, _json_body())
    return jsonify({'success': True, 'data': item.to_dict(), 'message': 'Addon item updated successfully'})


@addon_bp.route('/addon-items/<int:item_id>', methods=['DELETE'])
@merchant_required
def delete_addon_item(item_id):
    addons.delete_item(item_id, g.merchant.id, user_id=current_user.id)
    return jsonify({'success': True, 'message': 'Addon item deleted successfully'})


@addon_bp.route('/addon-items/<int:item_id>/toggle-active', methods=['PATCH'])
@merchant_required
def toggle_addon_item(item_id):
    item = addons.toggle_item(item_id, g.merchant.id)
    return jsonify({'success': True, 'new_status': item.is_active, 'data': item.to_dict()})


@addon_bp.route('/addon-items/<int:item_id>/stock', methods=['PATCH'])
@merchant_required
def update_addon_item_stock(item_id):
    data = _json_body()
    item = addons.adjust_item_stock(item_id, g.merchant.id, data.get('quantity'), mode=data.get('mode', 'add'))
    return jsonify({'success': True, 'data': item.to_dict()})


# ==================== MENU-ADDON ASSOCIATIONS ====================

@addon_bp.route('/menus/<int:menu_id>/addon-categories', methods=['GET'])
@merchant_required
def list_menu_addon_categories(menu_id):
    links = addons.categories_for_menu(menu_id, g.merchant.id)
    return jsonify({'success': True, 'data': [
        dict(link.to_dict(), addonCategory=link.addon_category.to_dict()) for link in links
    ]})


@addon_bp.route('/menus/<int:menu_id>/addon-categories', methods=['POST'])
@merchant_required
def attach_menu_addon_category(menu_id):
    data = _json_body()
    category_id = addons.int_or_none(data.get('addonCategoryId'), 'addonCategoryId')
    if category_id is None:
        raise ValidationError('addonCategoryId is required')
    link = addons.attach_category_to_menu(
        menu_id, category_id, g.merchant.id,
        is_required=data.get('isRequired', False),
        display_order=addons.int_or_none(data.get('displayOrder'), 'displayOrder'),
    )
    return jsonify({'success': True, 'data': link.to_dict()}), 201


@addon_bp.route('/menus/<int:menu_id>/addon-categories/<int:category_id>', methods=['PUT'])
@merchant_required
def update_menu_addon_category(menu_id, category_id):
    link = addons.update_menu_category(menu_id, category_id, g.merchant.id, _json_body())
    return jsonify({'success': True, 'data': link.to_dict()})


@addon_bp.route('/menus/<int:menu_id>/addon-categories/<int:category_id>', methods=['DELETE'])
@merchant_required
def detach_menu_addon_category(menu_id, category_id):
    addons.detach_category_from_menu(menu_id, category_id, g.merchant.id)
    return jsonify({'success': True, 'message': 'Addon category removed from menu'})
