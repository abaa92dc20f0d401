from functools import wraps

from flask import Blueprint, jsonify, request

from ..auth_provider import INTERNAL_ERROR, NETWORK_REQUEST_FAILED, REQUIRES_RECENT_LOGIN
from ..results import (
    CODE_CONFLICT,
    CODE_INVALID,
    CODE_LOCKED,
    CODE_NOT_FOUND,
    CODE_UNAUTHENTICATED,
    CODE_UNAVAILABLE,
    Failure,
)
from ..services import get_services
from ..utils import clean_text, get_request_ip

admin_bp = Blueprint('admin', __name__)

STATUS_BY_CODE = {
    CODE_INVALID: 400,
    CODE_NOT_FOUND: 404,
    CODE_CONFLICT: 409,
    CODE_UNAVAILABLE: 503,
    CODE_UNAUTHENTICATED: 401,
    CODE_LOCKED: 429,
    REQUIRES_RECENT_LOGIN: 403,
    NETWORK_REQUEST_FAILED: 503,
    INTERNAL_ERROR: 502,
}

# URL segment -> AdminServices attribute, and whether the collection can be reordered.
COLLECTION_ROUTES = (
    ('categories', 'categories', True),
    ('brands', 'brands', False),
    ('product-types', 'product_types', False),
    ('menu-links', 'menu_links', True),
    ('social-links', 'social_links', True),
)


def _payload(allow_list=False):
    if request.is_json:
        data = request.get_json(silent=True)
        if isinstance(data, dict) or (allow_list and isinstance(data, list)):
            return data
        return {}
    data = request.form.to_dict()
    if 'size_options' in request.form:
        data['size_options'] = request.form.getlist('size_options')
    return data


def _request_context():
    return {
        'user_agent': clean_text(request.user_agent.string, 300),
        'ip': get_request_ip(),
    }


def result_response(result, success_status=200):
    if result.ok:
        return jsonify(result.to_dict()), success_status
    response = jsonify(result.to_dict())
    response.status_code = STATUS_BY_CODE.get(result.code, 400)
    if result.code == CODE_LOCKED and result.retry_after:
        response.headers['Retry-After'] = str(result.retry_after)
    return response


def auth_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not get_services().auth.is_authenticated():
            return result_response(Failure(error='User not authenticated.', code=CODE_UNAUTHENTICATED))
        return view(*args, **kwargs)

    return wrapped


# Session
@admin_bp.get('/session')
def session_state():
    from .. import get_csrf_token

    services = get_services()
    user = services.auth.get_current_user()
    return jsonify({
        'authenticated': user is not None,
        'user': user.to_dict() if user else None,
        'csrf_token': get_csrf_token(),
        'theme': services.theme.get(),
    })


@admin_bp.post('/login')
def login():
    data = _payload()
    result = get_services().auth.login(data.get('email'), data.get('password') or '', _request_context())
    if not result.ok and result.code.startswith('auth/') and result.code not in STATUS_BY_CODE:
        response = jsonify(result.to_dict())
        response.status_code = 401
        return response
    return result_response(result)


@admin_bp.post('/logout')
def logout():
    return result_response(get_services().auth.logout(_request_context()))


@admin_bp.post('/password-reset')
def password_reset():
    data = _payload()
    return result_response(get_services().auth.reset_password(data.get('email')))


@admin_bp.post('/password-reset/confirm')
def password_reset_confirm():
    data = _payload()
    token = data.get('token') or request.args.get('token') or ''
    return result_response(get_services().auth.confirm_password_reset(token, data.get('password') or ''))


@admin_bp.patch('/profile')
@auth_required
def update_profile():
    return result_response(get_services().auth.update_profile(_payload()))


@admin_bp.put('/profile/email')
@auth_required
def update_email():
    data = _payload()
    return result_response(get_services().auth.update_email(data.get('email')))


@admin_bp.put('/profile/password')
@auth_required
def update_password():
    data = _payload()
    return result_response(get_services().auth.update_password(data.get('password') or ''))


# Catalog collections
def _collection_views(attribute, reorderable):
    def service():
        return getattr(get_services(), attribute)

    def list_view():
        if attribute == 'brands' and request.args.get('with_counts'):
            return result_response(service().list_with_product_counts())
        return result_response(service().list())

    def create_view():
        return result_response(service().create(_payload()), success_status=201)

    def detail_view(doc_id):
        return result_response(service().get(doc_id))

    def update_view(doc_id):
        return result_response(service().update(doc_id, _payload()))

    def delete_view(doc_id):
        return result_response(service().delete(doc_id))

    views = {
        'list': (list_view, '', ['GET']),
        'create': (create_view, '', ['POST']),
        'detail': (detail_view, '/<doc_id>', ['GET']),
        'update': (update_view, '/<doc_id>', ['PUT']),
        'delete': (delete_view, '/<doc_id>', ['DELETE']),
    }
    if reorderable:
        def reorder_view():
            data = _payload(allow_list=True)
            items = data.get('items') if isinstance(data, dict) else data
            return result_response(service().reorder(items))

        views['reorder'] = (reorder_view, '/reorder', ['POST'])
    return views


@admin_bp.get('/social-links/platforms')
@auth_required
def social_link_platforms():
    return jsonify({'success': True, 'data': get_services().social_links.platforms()})


for _segment, _attribute, _reorderable in COLLECTION_ROUTES:
    for _name, (_view, _suffix, _methods) in _collection_views(_attribute, _reorderable).items():
        admin_bp.add_url_rule(
            f'/{_segment}{_suffix}',
            endpoint=f'{_attribute}_{_name}',
            view_func=auth_required(_view),
            methods=_methods,
        )


# Store settings
@admin_bp.get('/settings/communication')
@auth_required
def communication_settings():
    return result_response(get_services().settings.get())


@admin_bp.put('/settings/communication')
@auth_required
def save_communication_settings():
    return result_response(get_services().settings.save(_payload()))


@admin_bp.post('/settings/communication/preview')
@auth_required
def preview_communication_template():
    data = _payload()
    return result_response(get_services().settings.preview(data.get('template'), data.get('kind') or 'product'))


# Preferences
@admin_bp.get('/preferences/theme')
@auth_required
def theme_preference():
    return jsonify({'success': True, 'theme': get_services().theme.get()})


@admin_bp.put('/preferences/theme')
@auth_required
def set_theme_preference():
    data = _payload()
    try:
        theme = get_services().theme.set(data.get('theme'))
    except ValueError:
        return result_response(Failure.invalid(['Theme must be "light" or "dark".']))
    return jsonify({'success': True, 'theme': theme})


@admin_bp.post('/preferences/theme/toggle')
@auth_required
def toggle_theme_preference():
    return jsonify({'success': True, 'theme': get_services().theme.toggle()})
