from ..utils import as_flag, coerce_order, make_slug, sanitize_input
from .base import OrderedCollectionService, check_name_slug


class CategoryService(OrderedCollectionService):
    collection = 'categories'
    label = 'category'
    plural_label = 'categories'
    unique_slug = True
    reference_field = 'category'
    reference_message = 'Cannot delete this category while products are assigned to it.'

    def validate(self, data):
        errors = []
        check_name_slug(data, errors)
        return errors

    def build(self, data):
        name = sanitize_input(data.get('name'))
        return {
            'name': name,
            'slug': make_slug(data.get('name')),
            'order': coerce_order(data.get('order')),
            'active': as_flag(data.get('active'), default=True),
        }
