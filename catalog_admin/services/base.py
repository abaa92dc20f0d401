import logging

from ..datastore import SERVER_TIMESTAMP, DataStoreError
from ..results import CODE_CONFLICT, CODE_NOT_FOUND, CODE_UNAVAILABLE, Failure, Success
from ..utils import coerce_order, make_slug, sanitize_input

logger = logging.getLogger(__name__)

PRODUCTS_COLLECTION = 'products'


def store_failure(action, exc):
    if exc.code == 'not-found':
        return Failure(error=exc.message, code=CODE_NOT_FOUND)
    return Failure(error=f'Unable to {action}. {exc.message}', code=CODE_UNAVAILABLE)


def check_text(data, key, label, max_length, errors, required=True, sanitize=False):
    """Check one text field and return it trimmed.

    With ``sanitize`` the length is measured on the escaped text that gets
    stored, so sending a stored value back unchanged stays valid.
    """
    value = str(data.get(key) or '').strip()
    if sanitize:
        value = sanitize_input(value)
    if not value:
        if required:
            errors.append(f'{label} is required.')
    elif len(value) > max_length:
        errors.append(f'{label} must be at most {max_length} characters.')
    return value


def check_name_slug(data, errors, max_length=100):
    name = check_text(data, 'name', 'Name', max_length, errors, sanitize=True)
    if name and not make_slug(name):
        errors.append('Name must contain letters or numbers.')
    return name


class CollectionService:
    """CRUD over one document collection.

    Subclasses provide ``validate`` (a list of messages, empty when valid)
    and ``build`` (the normalized record to store). Validation always runs
    before the store is touched.
    """

    collection = ''
    label = 'record'
    plural_label = 'records'
    order_by = None
    unique_slug = False
    # Field on product documents that points at this entity.
    reference_field = None
    reference_message = ''

    def __init__(self, store):
        self.store = store

    def validate(self, data):
        return []

    def build(self, data):
        raise NotImplementedError

    def list(self):
        try:
            records = self.store.list(self.collection, order_by=self.order_by)
        except DataStoreError as exc:
            logger.exception('Failed to list %s.', self.collection)
            return store_failure(f'list {self.plural_label}', exc)
        return Success(records)

    def list_active(self):
        result = self.list()
        if not result.ok:
            return result
        return Success([record for record in result.value if record.get('active') is not False])

    def get(self, doc_id):
        try:
            record = self.store.get(self.collection, doc_id)
        except DataStoreError as exc:
            logger.exception('Failed to read %s/%s.', self.collection, doc_id)
            return store_failure(f'load the {self.label}', exc)
        if record is None:
            return Failure(error=f'{self.label.capitalize()} not found.', code=CODE_NOT_FOUND)
        return Success(record)

    def _slug_conflict(self, slug, doc_id=None):
        if not self.unique_slug or not slug:
            return None
        matches = self.store.where(self.collection, 'slug', slug)
        if any(match['id'] != doc_id for match in matches):
            return Failure(
                error=f'A {self.label} with this name already exists.',
                code=CODE_CONFLICT,
            )
        return None

    def create(self, data):
        data = data or {}
        errors = self.validate(data)
        if errors:
            return Failure.invalid(errors)
        record = self.build(data)
        try:
            conflict = self._slug_conflict(record.get('slug'))
            if conflict:
                return conflict
            record['created_at'] = SERVER_TIMESTAMP
            record['updated_at'] = SERVER_TIMESTAMP
            doc_id = self.store.add(self.collection, record)
        except DataStoreError as exc:
            logger.exception('Failed to create %s.', self.label)
            return store_failure(f'create the {self.label}', exc)
        logger.info('Created %s %s.', self.label, doc_id)
        return Success(doc_id, message=f'{self.label.capitalize()} created successfully.')

    def update(self, doc_id, data):
        data = data or {}
        errors = self.validate(data)
        if errors:
            return Failure.invalid(errors)
        record = self.build(data)
        try:
            conflict = self._slug_conflict(record.get('slug'), doc_id)
            if conflict:
                return conflict
            record['updated_at'] = SERVER_TIMESTAMP
            self.store.update(self.collection, doc_id, record)
        except DataStoreError as exc:
            if exc.code == 'not-found':
                return Failure(error=f'{self.label.capitalize()} not found.', code=CODE_NOT_FOUND)
            logger.exception('Failed to update %s/%s.', self.collection, doc_id)
            return store_failure(f'update the {self.label}', exc)
        logger.info('Updated %s %s.', self.label, doc_id)
        return Success(doc_id, message=f'{self.label.capitalize()} updated successfully.')

    def delete(self, doc_id):
        try:
            if self.reference_field:
                references = self.store.where(PRODUCTS_COLLECTION, self.reference_field, doc_id, limit=1)
                if references:
                    return Failure(error=self.reference_message, code=CODE_CONFLICT)
            self.store.delete(self.collection, doc_id)
        except DataStoreError as exc:
            logger.exception('Failed to delete %s/%s.', self.collection, doc_id)
            return store_failure(f'delete the {self.label}', exc)
        logger.info('Deleted %s %s.', self.label, doc_id)
        return Success(message=f'{self.label.capitalize()} deleted successfully.')


class OrderedCollectionService(CollectionService):
    order_by = 'order'

    def reorder(self, items):
        """Persist new positions for ``[{'id': ..., 'order': ...}, ...]`` in one batch."""
        if not isinstance(items, (list, tuple)) or not items:
            return Failure.invalid(['Provide the items to reorder.'])
        updates = []
        for item in items:
            doc_id = str(item.get('id') or '').strip() if isinstance(item, dict) else ''
            if not doc_id:
                return Failure.invalid(['Every reordered item needs an id.'])
            updates.append((doc_id, {'order': coerce_order(item.get('order')), 'updated_at': SERVER_TIMESTAMP}))
        try:
            self.store.batch_update(self.collection, updates)
        except DataStoreError as exc:
            if exc.code != 'not-found':
                logger.exception('Failed to reorder %s.', self.collection)
            return store_failure(f'reorder the {self.plural_label}', exc)
        return Success(message=f'{self.plural_label.capitalize()} reordered successfully.')
