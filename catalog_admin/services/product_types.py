import re

from ..utils import as_flag, make_slug, sanitize_input
from .base import CollectionService, check_name_slug, check_text

SIZE_OPTION_MAX_LENGTH = 30
_SIZE_SPLIT_RE = re.compile(r'[,\n;]+')


def parse_size_options(value):
    """Accept a list or a comma/newline separated string of size options."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    options = []
    for item in value:
        options.extend(part.strip() for part in _SIZE_SPLIT_RE.split(str(item or '')))
    return [option for option in options if option]


class ProductTypeService(CollectionService):
    collection = 'product_types'
    label = 'product type'
    plural_label = 'product types'
    order_by = 'name'
    unique_slug = True
    reference_field = 'product_type'
    reference_message = 'Cannot delete this product type while products use it.'

    def validate(self, data):
        errors = []
        check_name_slug(data, errors)
        check_text(data, 'property_name', 'Property name', 60, errors, sanitize=True)

        options = parse_size_options(data.get('size_options'))
        if not options:
            errors.append('Add at least one size option.')
        if any(len(sanitize_input(option)) > SIZE_OPTION_MAX_LENGTH for option in options):
            errors.append(f'Size options must be at most {SIZE_OPTION_MAX_LENGTH} characters.')
        folded = [option.casefold() for option in options]
        if len(set(folded)) != len(folded):
            errors.append('Size options must be unique.')
        return errors

    def build(self, data):
        return {
            'name': sanitize_input(data.get('name')),
            'slug': make_slug(data.get('name')),
            'property_name': sanitize_input(data.get('property_name')),
            'size_options': [sanitize_input(option) for option in parse_size_options(data.get('size_options'))],
            'active': as_flag(data.get('active'), default=True),
        }
