"""Public menu search with fuzzy matching and cursor pagination.

Results have a total order of ``(sort key, menu id)``. A cursor is a signed
token holding the position of the last row returned, along with the query
and sort it was issued for, so the next page starts strictly after it.
"""
import re
from datetime import datetime

import pytz
from flask import current_app
from itsdangerous import URLSafeSerializer, BadSignature

from .errors import ValidationError
from .models import Menu

SORT_OPTIONS = ('relevance', 'price_asc', 'price_desc', 'name', 'popular')
QUERY_THRESHOLD = 0.3
CURSOR_SALT = 'menu-search-cursor'


def levenshtein_distance(a, b):
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def fuzzy_match_score(query, text):
    """Scores how well `text` matches `query`, from 0 to 1."""
    query = query.lower().strip()
    text = (text or '').lower().strip()
    if not query or not text:
        return 0.0

    if text == query:
        return 1.0
    if query in text:
        return 0.95 if text.startswith(query) else 0.85

    query_words = re.split(r'\s+', query)
    text_words = re.split(r'\s+', text)
    matched = [qw for qw in query_words if any(qw in tw or tw in qw for tw in text_words)]
    if matched:
        return 0.7 * (len(matched) / len(query_words))

    distance = levenshtein_distance(query, text)
    similarity = 1 - distance / max(len(query), len(text))
    return similarity * 0.6 if similarity > 0.5 else 0.0


def score_menu(query, menu):
    if not query:
        return 1.0
    name_score = fuzzy_match_score(query, menu.name)
    desc_score = fuzzy_match_score(query, menu.description) * 0.5 if menu.description else 0.0
    category_score = max([fuzzy_match_score(query, c.name) * 0.3 for c in menu.categories] or [0.0])
    return max(name_score, desc_score, category_score)


def is_menu_available(menu, tz_name, now=None):
    """Checks a menu's schedule in the merchant's local time.

    `schedule_days` holds weekday indices (Monday is 0). A start time later
    than the end time is an overnight window.
    """
    if not menu.is_active:
        return False
    if not menu.schedule_enabled:
        return True

    try:
        merchant_tz = pytz.timezone(tz_name or 'UTC')
    except pytz.UnknownTimeZoneError:
        merchant_tz = pytz.utc

    now = now or datetime.now(pytz.utc)
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    now_local = now.astimezone(merchant_tz)
    current_time = now_local.time()

    if menu.schedule_days is not None:
        days = [d.strip() for d in menu.schedule_days.split(',') if d.strip()]
        if str(now_local.weekday()) not in days:
            return False

    start, end = menu.schedule_start_time, menu.schedule_end_time
    if not start or not end:
        return True
    if start <= end:
        return start <= current_time <= end
    return current_time >= start or current_time <= end


def popularity(menu):
    return (2 if menu.is_best_seller else 0) + (1 if menu.is_signature else 0)


def sort_key(sort, menu, score):
    if sort == 'price_asc':
        return [menu.price]
    if sort == 'price_desc':
        return [-menu.price]
    if sort == 'name':
        return [menu.name.lower()]
    if sort == 'popular':
        return [-popularity(menu), menu.name.lower()]
    return [-score]


def _serializer():
    return URLSafeSerializer(current_app.config['SECRET_KEY'], salt=CURSOR_SALT)


def encode_cursor(query, sort, key, menu_id):
    return _serializer().dumps({'q': query, 's': sort, 'k': key, 'id': menu_id})


def decode_cursor(cursor, query, sort):
    try:
        data = _serializer().loads(cursor)
    except BadSignature:
        raise ValidationError('Invalid cursor', error='INVALID_CURSOR')
    if data.get('q') != query or data.get('s') != sort:
        raise ValidationError('Cursor does not belong to this search', error='INVALID_CURSOR')
    return data['k'], data['id']


def menu_payload(menu):
    addon_categories = []
    for link in menu.addon_links:
        category = link.addon_category
        if category.deleted_at is not None or not category.is_active:
            continue
        addon_categories.append({
            'id': category.id,
            'name': category.name,
            'minSelection': category.min_selection,
            'maxSelection': category.max_selection,
            'isRequired': link.is_required,
            'addonItems': [{
                'id': item.id,
                'name': item.name,
                'price': item.price,
                'isActive': item.is_active,
            } for item in category.live_items if item.is_active],
        })

    return {
        'id': menu.id,
        'name': menu.name,
        'description': menu.description,
        'price': menu.price,
        'imageUrl': menu.image_url,
        'isBestSeller': menu.is_best_seller,
        'isSignature': menu.is_signature,
        'trackStock': menu.track_stock,
        'stockQty': menu.stock_qty,
        'categories': [{'id': c.id, 'name': c.name} for c in menu.categories],
        'addonCategories': addon_categories,
    }


def search_menus(merchant, query='', category_id=None, min_price=None, max_price=None,
                 sort='relevance', limit=None, cursor=None, now=None):
    query = (query or '').strip()
    if sort not in SORT_OPTIONS:
        raise ValidationError(f"sort must be one of: {', '.join(SORT_OPTIONS)}")
    max_limit = current_app.config['SEARCH_MAX_LIMIT']
    limit = current_app.config['SEARCH_DEFAULT_LIMIT'] if limit is None else limit
    if limit < 1:
        raise ValidationError('limit must be at least 1')
    limit = min(limit, max_limit)

    menus_query = Menu.query.filter_by(merchant_id=merchant.id, is_active=True, deleted_at=None)
    if min_price is not None:
        menus_query = menus_query.filter(Menu.price >= min_price)
    if max_price is not None:
        menus_query = menus_query.filter(Menu.price <= max_price)
    menus = menus_query.all()

    if category_id is not None:
        menus = [m for m in menus if any(c.id == category_id for c in m.categories)]
    menus = [m for m in menus if is_menu_available(m, merchant.timezone, now=now)]

    threshold = QUERY_THRESHOLD if query else 0
    ranked = []
    for menu in menus:
        score = score_menu(query, menu)
        if score >= threshold:
            ranked.append((sort_key(sort, menu, score), menu.id, menu))
    ranked.sort(key=lambda row: (row[0], row[1]))
    total = len(ranked)

    if cursor:
        after_key, after_id = decode_cursor(cursor, query, sort)
        ranked = [row for row in ranked if (row[0], row[1]) > (after_key, after_id)]

    page = ranked[:limit]
    has_more = len(ranked) > limit
    next_cursor = encode_cursor(query, sort, page[-1][0], page[-1][1]) if has_more else None

    return {
        'query': query,
        'totalResults': total,
        'menus': [menu_payload(row[2]) for row in page],
        'nextCursor': next_cursor,
        'hasMore': has_more,
    }
