from ..utils import as_flag, clean_text, coerce_order, is_valid_link_target, sanitize_input
from .base import OrderedCollectionService, check_text


class MenuLinkService(OrderedCollectionService):
    """Custom links shown in the storefront navigation menu."""

    collection = 'menu_links'
    label = 'menu link'
    plural_label = 'menu links'

    def validate(self, data):
        errors = []
        check_text(data, 'text', 'Link text', 60, errors, sanitize=True)
        url = check_text(data, 'url', 'URL', 500, errors)
        if url and not is_valid_link_target(url):
            errors.append('URL is invalid. Use an absolute address or a path starting with / or #.')
        check_text(data, 'icon', 'Icon', 40, errors, required=False)
        return errors

    def build(self, data):
        return {
            'text': sanitize_input(data.get('text')),
            'url': clean_text(data.get('url'), 500),
            'icon': clean_text(data.get('icon'), 40),
            'order': coerce_order(data.get('order')),
            'open_in_new_tab': as_flag(data.get('open_in_new_tab'), default=True),
            'featured': as_flag(data.get('featured'), default=False),
            'active': as_flag(data.get('active'), default=True),
        }
