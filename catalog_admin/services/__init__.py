from flask import current_app

from ..local_storage import ThemePreference
from .auth import AuthService
from .brands import BrandService
from .categories import CategoryService
from .lockout import LoginAttemptTracker
from .menu_links import MenuLinkService
from .product_types import ProductTypeService
from .social_links import SocialLinkService
from .store_settings import StoreSettingsService

EXTENSION_KEY = 'catalog_admin'


class AdminServices:
    """Every service of the admin, wired to one store, auth provider and local storage."""

    def __init__(self, store, auth_provider, local_storage, max_attempts=5, lockout_seconds=900):
        self.store = store
        self.auth_provider = auth_provider
        self.local_storage = local_storage
        self.attempts = LoginAttemptTracker(
            local_storage,
            max_attempts=max_attempts,
            lockout_seconds=lockout_seconds,
        )
        self.auth = AuthService(auth_provider, self.attempts, store=store, local_storage=local_storage)
        self.categories = CategoryService(store)
        self.brands = BrandService(store)
        self.product_types = ProductTypeService(store)
        self.menu_links = MenuLinkService(store)
        self.social_links = SocialLinkService(store)
        self.settings = StoreSettingsService(store)
        self.theme = ThemePreference(local_storage)


def get_services():
    return current_app.extensions[EXTENSION_KEY]
