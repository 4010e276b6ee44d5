# jinnie/client/api.py
"""
REST client for the Jinnie API.

The HTTP session is injectable: anything with a requests-style
`request(method, url, json=, data=, headers=, timeout=)` returning an object
with `status_code`, `json()` and `text` works, which includes FastAPI's
TestClient.

Errors are raised as the ApiError family below so callers can map them to
user messages without looking at status codes.
"""
from typing import Any, Callable, Dict, List, Optional

import requests

from jinnie.core.logger import get_logger
from jinnie.core.reservations import ReservationInputError, validate_reservation_input
from jinnie.models.wish import Wish
from jinnie.models.wishlist import Wishlist

logger = get_logger(__name__)

# called with force_refresh; returns a bearer token or None
TokenProvider = Callable[[bool], Optional[str]]


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(ApiError):
    pass


class ConflictError(ApiError):
    pass


class AuthorizationError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class TransientError(ApiError):
    pass


def _error_for(status_code: int, message: str) -> ApiError:
    if status_code in (400, 422):
        return ValidationError(message, status_code)
    if status_code in (401, 403):
        return AuthorizationError(message, status_code)
    if status_code == 404:
        return NotFoundError(message, status_code)
    if status_code == 409:
        return ConflictError(message, status_code)
    if status_code >= 500:
        return TransientError(message, status_code)
    return ApiError(message, status_code)


def _detail(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if isinstance(detail, list):
            # pydantic validation errors
            return "; ".join(str(d.get("msg", d)) if isinstance(d, dict) else str(d) for d in detail)
        if detail:
            return str(detail)
    return f"HTTP {resp.status_code}"


class JinnieClient:
    def __init__(self, base_url: str, session=None, token_provider: Optional[TokenProvider] = None,
                 timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.token_provider = token_provider
        self.timeout = timeout

    def _token(self, force_refresh: bool) -> Optional[str]:
        if self.token_provider is None:
            return None
        return self.token_provider(force_refresh)

    def _send(self, method: str, path: str, token: Optional[str], json: Any = None, data: Any = None):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return self.session.request(
                method, self.base_url + path, json=json, data=data, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise TransientError(str(e)) from e

    def request(self, method: str, path: str, json: Any = None, data: Any = None, auth: bool = False,
                fresh_token: bool = False, retry_on_401: bool = True) -> Any:
        """
        Send one request. With `auth`, a bearer token comes from the provider;
        `fresh_token` forces the provider to refresh first. A 401 is retried
        exactly once with a refreshed token unless `retry_on_401` is off.
        """
        token = self._token(fresh_token) if auth else None
        resp = self._send(method, path, token, json=json, data=data)

        if resp.status_code == 401 and auth and retry_on_401 and self.token_provider is not None:
            logger.info("%s %s returned 401; refreshing token and retrying once", method, path)
            token = self._token(True)
            if token:
                resp = self._send(method, path, token, json=json, data=data)

        if resp.status_code >= 400:
            raise _error_for(resp.status_code, _detail(resp))
        if not resp.text:
            return None
        return resp.json()

    # --- public wishlists / reservations ---

    def get_public_wishlist(self, share_token: str) -> Wishlist:
        body = self.request("GET", f"/api/public/wishlists/{share_token}", auth=self.token_provider is not None)
        return Wishlist.from_dict(body)

    def reserve_wish(self, wish_id: str, email: str, name: Optional[str] = None,
                     message: Optional[str] = None) -> Wish:
        try:
            req = validate_reservation_input(email, name, message)
        except ReservationInputError as e:
            raise ValidationError(str(e)) from e
        body = self.request(
            "POST",
            f"/api/wishes/{wish_id}/reserve",
            json={"email": req.email, "name": req.name, "message": req.message},
            auth=True,
            fresh_token=True,
            retry_on_401=False,
        )
        return Wish.from_dict(body["wish"])

    def cancel_reservation(self, wish_id: str) -> Wish:
        body = self.request(
            "DELETE", f"/api/wishes/{wish_id}/reserve", auth=True, fresh_token=True, retry_on_401=False
        )
        return Wish.from_dict(body["wish"])

    # --- owner side ---

    def list_wishlists(self) -> List[Wishlist]:
        return [Wishlist.from_dict(w) for w in self.request("GET", "/api/wishlists", auth=True)]

    def create_wishlist(self, name: str, description: Optional[str] = None, visibility: str = "private") -> Wishlist:
        body = self.request(
            "POST", "/api/wishlists", json={"name": name, "description": description, "visibility": visibility},
            auth=True,
        )
        return Wishlist.from_dict(body)

    def create_wish(self, payload: Dict[str, Any]) -> Wish:
        return Wish.from_dict(self.request("POST", "/api/wishes", json=payload, auth=True))

    def scrape_url(self, url: str) -> Dict[str, Any]:
        return self.request("POST", "/api/wishes/scrape-url", json={"url": url}, auth=True)["metadata"]

    # --- identity ---

    def send_sign_in_link(self, email: str, redirect_url: Optional[str] = None) -> None:
        self.request("POST", "/api/auth/email-link", json={"email": email, "redirectUrl": redirect_url})

    def complete_sign_in(self, email: str, code: str) -> Dict[str, Any]:
        return self.request("POST", "/api/auth/email-link/verify", json={"email": email, "code": code})

    def login(self, username: str, password: str) -> Dict[str, Any]:
        return self.request("POST", "/api/auth/token", data={"username": username, "password": password})

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        return self.request("POST", "/api/auth/refresh", json={"refresh_token": refresh_token})

    def me(self) -> Dict[str, Any]:
        return self.request("GET", "/api/auth/me", auth=True)
