import logging
from collections import Counter

from ..datastore import DataStoreError
from ..results import Success
from ..utils import as_flag, clean_text, is_valid_url, make_slug, sanitize_input
from .base import PRODUCTS_COLLECTION, CollectionService, check_name_slug, check_text

logger = logging.getLogger(__name__)


class BrandService(CollectionService):
    collection = 'brands'
    label = 'brand'
    plural_label = 'brands'
    order_by = 'name'
    unique_slug = True
    reference_field = 'brand'
    reference_message = 'Cannot delete this brand while products are assigned to it.'

    def validate(self, data):
        errors = []
        check_name_slug(data, errors)
        logo_url = check_text(data, 'logo_url', 'Logo URL', 500, errors, required=False)
        if logo_url and not is_valid_url(logo_url):
            errors.append('Logo URL must be a valid http or https address.')
        check_text(data, 'description', 'Description', 500, errors, required=False, sanitize=True)
        return errors

    def build(self, data):
        return {
            'name': sanitize_input(data.get('name')),
            'slug': make_slug(data.get('name')),
            'logo_url': clean_text(data.get('logo_url'), 500),
            'description': sanitize_input(data.get('description')),
            'active': as_flag(data.get('active'), default=True),
        }

    def count_products(self, brand_id):
        try:
            return len(self.store.where(PRODUCTS_COLLECTION, 'brand', brand_id))
        except DataStoreError:
            logger.exception('Failed to count products for brand %s.', brand_id)
            return 0

    def list_with_product_counts(self):
        result = self.list()
        if not result.ok:
            return result
        try:
            counts = Counter(product.get('brand') for product in self.store.list(PRODUCTS_COLLECTION))
        except DataStoreError:
            logger.exception('Failed to count products per brand.')
            counts = Counter()
        brands = []
        for brand in result.value:
            brand['product_count'] = counts.get(brand['id'], 0)
            brands.append(brand)
        return Success(brands)
