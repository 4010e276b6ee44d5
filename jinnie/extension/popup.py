# jinnie/extension/popup.py
"""
Browser-extension popup as an explicit object. All per-popup state (signed-in
user, wishlists, detected product) lives on a PopupController created by
`open()` and dropped by `close()`; nothing is kept at module level.
"""
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from jinnie.client.api import ApiError, JinnieClient
from jinnie.client.storage import EXTENSION_EMAIL_KEY, EXTENSION_TOKEN_KEY, LocalStore
from jinnie.core.logger import get_logger
from jinnie.models.product import ScrapedProduct
from jinnie.models.wish import Wish
from jinnie.models.wishlist import Wishlist
from jinnie.services.scraper import Document, scrape_product

logger = get_logger(__name__)

# views, in the order the popup can show them
LOADING = "loading"
LOGIN = "login"
PRODUCT = "product"
NO_PRODUCT = "noProduct"
SETTINGS = "settings"

SAVE_FAILED_MESSAGE = "Failed to save item"
CREATE_WISHLIST_FAILED_MESSAGE = "Failed to create wishlist"


class PopupClosed(RuntimeError):
    pass


class SaveError(Exception):
    pass


@dataclass
class PopupUser:
    token: str
    email: str


@dataclass
class PopupState:
    view: str = LOADING
    user: Optional[PopupUser] = None
    wishlists: List[Wishlist] = field(default_factory=list)
    product: Optional[ScrapedProduct] = None
    saving: bool = False
    message: Optional[str] = None


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """Scraped price text to a number: keep digits and the dot, anything else is noise."""
    if not raw:
        return None
    cleaned = re.sub(r"[^0-9.]", "", raw)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return value if value.is_finite() and value > 0 else None


class PopupController:
    def __init__(self, client: JinnieClient, store: LocalStore):
        self.client = client
        self.store = store
        self.state: Optional[PopupState] = None
        if client.token_provider is None:
            client.token_provider = self._token

    def _token(self, force_refresh: bool = False) -> Optional[str]:
        # extension tokens are handed over by the website; nothing to refresh here
        return self.state.user.token if self.state and self.state.user else None

    @property
    def is_open(self) -> bool:
        return self.state is not None

    def _require_open(self) -> PopupState:
        if self.state is None:
            raise PopupClosed("Popup is not open")
        return self.state

    # --- lifecycle ---

    def open(self, document: Optional[Document] = None, url: Optional[str] = None) -> PopupState:
        self.state = PopupState()
        self.check_auth_state()
        if document is not None and url:
            self.detect_product(document, url)
        else:
            self._show_product_or_empty()
        return self.state

    def close(self) -> None:
        self.state = None

    # --- auth ---

    def check_auth_state(self) -> None:
        state = self._require_open()
        token = self.store.get(EXTENSION_TOKEN_KEY)
        if not token:
            state.user = None
            return
        state.user = PopupUser(token=token, email=self.store.get(EXTENSION_EMAIL_KEY) or "Anonymous User")
        self.load_wishlists()

    def on_auth_success(self, token: str, email: str) -> None:
        """Token handed over by the website after sign-in."""
        state = self._require_open()
        self.store.set(EXTENSION_TOKEN_KEY, token)
        self.store.set(EXTENSION_EMAIL_KEY, email)
        state.user = PopupUser(token=token, email=email)
        self.load_wishlists()
        self._show_product_or_empty()

    def logout(self) -> None:
        state = self._require_open()
        self.store.remove(EXTENSION_TOKEN_KEY, EXTENSION_EMAIL_KEY)
        state.user = None
        state.wishlists = []
        state.view = LOGIN

    def load_wishlists(self) -> None:
        state = self._require_open()
        try:
            state.wishlists = self.client.list_wishlists()
        except ApiError as e:
            logger.warning("Error loading wishlists: %s", e)
            state.wishlists = []

    # --- product ---

    def detect_product(self, document: Document, url: str) -> Optional[ScrapedProduct]:
        state = self._require_open()
        state.product = scrape_product(document, url)
        self._show_product_or_empty()
        return state.product

    def _show_product_or_empty(self) -> None:
        state = self._require_open()
        if state.user is None:
            state.view = LOGIN
        elif state.product is not None and state.product.has_product:
            state.view = PRODUCT
        else:
            state.view = NO_PRODUCT

    def show_settings(self) -> None:
        self._require_open().view = SETTINGS

    def hide_settings(self) -> None:
        self._show_product_or_empty()

    # --- save ---

    def create_wishlist(self, name: str) -> Wishlist:
        state = self._require_open()
        try:
            wishlist = self.client.create_wishlist(name)
        except ApiError as e:
            state.message = CREATE_WISHLIST_FAILED_MESSAGE
            raise SaveError(CREATE_WISHLIST_FAILED_MESSAGE) from e
        state.wishlists.append(wishlist)
        return wishlist

    def save(self, wishlist_id: Optional[str], notes: Optional[str] = None,
             new_wishlist_name: Optional[str] = None) -> Wish:
        """
        Save the detected product. With no wishlist selected a new one named
        `new_wishlist_name` is created first.
        """
        state = self._require_open()
        if state.user is None:
            raise SaveError("Sign in to save items")
        if state.product is None or not state.product.has_product:
            raise SaveError("No product detected on this page")
        if state.saving:
            raise SaveError("Already saving")

        if not wishlist_id or wishlist_id == "new":
            if not new_wishlist_name:
                raise SaveError("Choose a wishlist")
            wishlist_id = self.create_wishlist(new_wishlist_name).id

        product = state.product
        price = parse_price(product.price)
        payload = {
            "wishlistId": wishlist_id,
            "title": product.title,
            "url": product.url,
            "price": str(price) if price is not None else None,
            "images": [product.image] if product.image else [],
            "description": product.description,
            "notes": notes or None,
        }
        state.saving = True
        state.message = None
        try:
            wish = self.client.create_wish(payload)
        except ApiError as e:
            logger.warning("Error saving item: %s", e)
            state.message = SAVE_FAILED_MESSAGE
            raise SaveError(SAVE_FAILED_MESSAGE) from e
        finally:
            state.saving = False
        state.message = "Saved to wishlist"
        return wish
