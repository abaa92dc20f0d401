from ..utils import as_flag, clean_text, coerce_order, is_valid_url, sanitize_input
from .base import OrderedCollectionService, check_text

PLATFORMS = {
    'instagram': {'name': 'Instagram', 'icon': 'fa-brands fa-instagram', 'placeholder': 'https://instagram.com/yourprofile'},
    'facebook': {'name': 'Facebook', 'icon': 'fa-brands fa-facebook', 'placeholder': 'https://facebook.com/yourpage'},
    'tiktok': {'name': 'TikTok', 'icon': 'fa-brands fa-tiktok', 'placeholder': 'https://tiktok.com/@yourprofile'},
    'twitter': {'name': 'Twitter/X', 'icon': 'fa-brands fa-x-twitter', 'placeholder': 'https://twitter.com/yourprofile'},
    'youtube': {'name': 'YouTube', 'icon': 'fa-brands fa-youtube', 'placeholder': 'https://youtube.com/@yourchannel'},
    'linkedin': {'name': 'LinkedIn', 'icon': 'fa-brands fa-linkedin', 'placeholder': 'https://linkedin.com/company/yourcompany'},
    'whatsapp': {'name': 'WhatsApp', 'icon': 'fa-brands fa-whatsapp', 'placeholder': 'https://wa.me/5511999999999'},
    'pinterest': {'name': 'Pinterest', 'icon': 'fa-brands fa-pinterest', 'placeholder': 'https://pinterest.com/yourprofile'},
}


class SocialLinkService(OrderedCollectionService):
    collection = 'social_links'
    label = 'social link'
    plural_label = 'social links'

    @staticmethod
    def platforms():
        return [{'key': key, **details} for key, details in PLATFORMS.items()]

    def validate(self, data):
        errors = []
        platform = check_text(data, 'platform', 'Platform', 40, errors).lower()
        name = check_text(data, 'name', 'Name', 60, errors, required=False, sanitize=True)
        if platform and platform not in PLATFORMS and not name:
            errors.append('Choose a supported platform or give the link a name.')
        url = check_text(data, 'url', 'URL', 500, errors)
        if url and not is_valid_url(url):
            errors.append('URL must be a valid http or https address.')
        return errors

    def build(self, data):
        platform = clean_text(data.get('platform'), 40).lower()
        known = PLATFORMS.get(platform, {})
        return {
            'platform': platform,
            'name': known.get('name') or sanitize_input(data.get('name')),
            'icon': known.get('icon') or clean_text(data.get('icon'), 40),
            'url': clean_text(data.get('url'), 500),
            'order': coerce_order(data.get('order')),
            'active': as_flag(data.get('active'), default=True),
        }
