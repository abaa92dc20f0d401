"""WhatsApp ordering, opening hours and contact details for the storefront.

Everything lives in a single ``settings/communication`` document. Reads
merge the stored fields over ``DEFAULT_SETTINGS`` so new keys get sensible
values before an admin ever saves the page.
"""
import logging
import re

from ..datastore import SERVER_TIMESTAMP, DataStoreError
from ..results import Failure, Success
from ..utils import as_flag, clean_text, is_valid_email, is_valid_phone, sanitize_input
from .base import store_failure

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = 'settings'
COMMUNICATION_DOC_ID = 'communication'
TEMPLATE_MAX_LENGTH = 1000
MESSAGE_MAX_LENGTH = 500
TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')

DEFAULT_PRODUCT_TEMPLATE = (
    'Hello! I would like to place an order:\n\n'
    '*Product:* {product}\n*Brand:* {brand}\n*Size:* {size}\n'
    '*Payment:* {payment}\n*Price:* $ {price}'
)
DEFAULT_CART_TEMPLATE = 'Hello! I would like to complete my order:\n\n{products}\n\nTotal: $ {total}'

DEFAULT_SETTINGS = {
    'whatsapp': '',
    'product_message_template': DEFAULT_PRODUCT_TEMPLATE,
    'cart_message_template': DEFAULT_CART_TEMPLATE,
    'whatsapp_floating_button': True,
    'whatsapp_floating_message': '',
    'whatsapp_greeting': '',
    'weekday_opens_at': '09:00',
    'weekday_closes_at': '18:00',
    'saturday_opens_at': '09:00',
    'saturday_closes_at': '13:00',
    'after_hours_message': '',
    'contact_phone': '',
    'contact_email': '',
    'contact_address': '',
}

TEMPLATE_PLACEHOLDERS = {
    'product': ('product', 'brand', 'size', 'payment', 'price'),
    'cart': ('products', 'total'),
}

PREVIEW_VALUES = {
    'product': 'Nike Air Max Sneakers',
    'brand': 'Nike',
    'size': '42',
    'payment': 'PIX',
    'price': '299.90',
    'products': '1x Nike Air Max Sneakers (42)\n2x Adidas Shirt (M)',
    'total': '599.80',
}

HOUR_FIELDS = (
    ('weekday_opens_at', 'Weekday opening time'),
    ('weekday_closes_at', 'Weekday closing time'),
    ('saturday_opens_at', 'Saturday opening time'),
    ('saturday_closes_at', 'Saturday closing time'),
)
TEXT_FIELDS = (
    ('whatsapp_floating_message', MESSAGE_MAX_LENGTH),
    ('whatsapp_greeting', MESSAGE_MAX_LENGTH),
    ('after_hours_message', MESSAGE_MAX_LENGTH),
    ('contact_address', 300),
)


def render_template(template, values):
    # Placeholders are replaced literally so stray braces in the text are harmless.
    rendered = template
    for key, value in values.items():
        rendered = rendered.replace('{' + key + '}', value)
    return rendered


class StoreSettingsService:
    def __init__(self, store):
        self.store = store

    def _load(self):
        stored = self.store.get(SETTINGS_COLLECTION, COMMUNICATION_DOC_ID) or {}
        stored.pop('id', None)
        settings = dict(DEFAULT_SETTINGS)
        settings.update({key: value for key, value in stored.items() if value is not None})
        return settings

    def get(self):
        try:
            return Success(self._load())
        except DataStoreError as exc:
            logger.exception('Failed to load communication settings.')
            return store_failure('load the settings', exc)

    def validate(self, settings):
        errors = []
        if not is_valid_phone(settings.get('whatsapp')):
            errors.append('WhatsApp number is invalid. Use 10 to 15 digits, with country and area code.')
        for key in ('product_message_template', 'cart_message_template'):
            if len(str(settings.get(key) or '')) > TEMPLATE_MAX_LENGTH:
                errors.append(f'Message templates must be at most {TEMPLATE_MAX_LENGTH} characters.')
                break
        for key, label in HOUR_FIELDS:
            value = str(settings.get(key) or '').strip()
            if value and not TIME_RE.match(value):
                errors.append(f'{label} must use the HH:MM format.')
        for key, max_length in TEXT_FIELDS:
            if len(sanitize_input(settings.get(key))) > max_length:
                errors.append(f'{key.replace("_", " ").capitalize()} must be at most {max_length} characters.')
        phone = str(settings.get('contact_phone') or '').strip()
        if phone and not is_valid_phone(phone):
            errors.append('Contact phone is invalid.')
        email = str(settings.get('contact_email') or '').strip()
        if email and not is_valid_email(email):
            errors.append('Contact email is invalid.')
        return errors

    def save(self, data):
        data = data or {}
        try:
            settings = self._load()
        except DataStoreError as exc:
            logger.exception('Failed to load communication settings.')
            return store_failure('load the settings', exc)

        for key in DEFAULT_SETTINGS:
            if key in data:
                settings[key] = data[key]
        errors = self.validate(settings)
        if errors:
            return Failure.invalid(errors)

        record = {
            'whatsapp': clean_text(settings['whatsapp'], 30),
            'product_message_template': clean_text(settings['product_message_template'], TEMPLATE_MAX_LENGTH)
            or DEFAULT_PRODUCT_TEMPLATE,
            'cart_message_template': clean_text(settings['cart_message_template'], TEMPLATE_MAX_LENGTH)
            or DEFAULT_CART_TEMPLATE,
            'whatsapp_floating_button': as_flag(settings['whatsapp_floating_button'], default=True),
            'contact_phone': clean_text(settings['contact_phone'], 30),
            'contact_email': clean_text(settings['contact_email'], 254).lower(),
            'updated_at': SERVER_TIMESTAMP,
        }
        for key, _label in HOUR_FIELDS:
            record[key] = clean_text(settings[key], 5)
        for key, _max_length in TEXT_FIELDS:
            record[key] = sanitize_input(settings[key])

        try:
            self.store.set(SETTINGS_COLLECTION, COMMUNICATION_DOC_ID, record, merge=True)
        except DataStoreError as exc:
            logger.exception('Failed to save communication settings.')
            return store_failure('save the settings', exc)
        logger.info('Communication settings saved.')
        return Success(message='Settings saved successfully.')

    def preview(self, template=None, kind='product'):
        """Render a message template with sample order values."""
        if kind not in TEMPLATE_PLACEHOLDERS:
            return Failure.invalid(['Preview kind must be "product" or "cart".'])
        if not (template or '').strip():
            template = DEFAULT_PRODUCT_TEMPLATE if kind == 'product' else DEFAULT_CART_TEMPLATE
        values = {key: PREVIEW_VALUES[key] for key in TEMPLATE_PLACEHOLDERS[kind]}
        return Success({'kind': kind, 'text': render_template(template, values)})
