from flask import Blueprint, current_app, jsonify

from ..services import get_services

main_bp = Blueprint('main', __name__)

PUBLIC_COLLECTIONS = {
    'categories': ('id', 'name', 'slug', 'order'),
    'brands': ('id', 'name', 'slug', 'logo_url', 'description'),
    'menu_links': ('id', 'text', 'url', 'icon', 'order', 'open_in_new_tab', 'featured'),
    'social_links': ('id', 'platform', 'name', 'icon', 'url', 'order'),
}


def _public_listing(attribute):
    result = getattr(get_services(), attribute).list_active()
    if not result.ok:
        return jsonify({'success': False, 'error': 'Catalog temporarily unavailable.'}), 503
    fields = PUBLIC_COLLECTIONS[attribute]
    items = [{field: record.get(field) for field in fields} for record in result.value]
    response = jsonify({'success': True, 'data': items})
    max_age = int(current_app.config.get('PUBLIC_CACHE_SECONDS', 120))
    response.headers['Cache-Control'] = f'public, max-age={max_age}'
    return response


@main_bp.get('/categories')
def categories():
    return _public_listing('categories')


@main_bp.get('/brands')
def brands():
    return _public_listing('brands')


@main_bp.get('/menu-links')
def menu_links():
    return _public_listing('menu_links')


@main_bp.get('/social-links')
def social_links():
    return _public_listing('social_links')
