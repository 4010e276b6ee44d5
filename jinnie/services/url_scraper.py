# jinnie/services/url_scraper.py
"""
Server-side "scrape this URL" used when a wish is added from a pasted link.

Unlike the in-page scraper this one does its own fetch, so it also looks at
JSON-LD Product data and the twitter:* / description meta tags before giving up
on a field. Price is returned as a Decimal with a best-effort currency.
"""
import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from jinnie.config import settings
from jinnie.core.logger import get_logger
from jinnie.models.product import ProductMetadata
from jinnie.services.scraper import meta_content, as_document, document_title, find_price

logger = get_logger(__name__)

TITLE_MAX = 500
DESCRIPTION_MAX = 1000

CURRENCY_SYMBOLS = {"$": "USD", "£": "GBP", "€": "EUR"}
ISO_CURRENCY = re.compile(r"\b([A-Z]{3})\b")


class ScrapeError(Exception):
    """The page could not be fetched at all."""


class InvalidUrlError(ValueError):
    pass


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code >= 500
    return False


def validate_url(url: Optional[str]) -> str:
    url = (url or "").strip()
    if not url:
        raise InvalidUrlError("URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidUrlError("Invalid URL")
    return url


def merchant_from_url(url: str) -> Optional[str]:
    host = (urlparse(url).hostname or "").replace("www.", "", 1)
    name = host.split(".")[0]
    if not name:
        return None
    return name[0].upper() + name[1:]


def parse_price(raw: Any) -> Optional[Decimal]:
    if raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)):
        text = str(raw)
    else:
        text = re.sub(r"[^0-9.,]", "", str(raw))
    text = text.replace(",", "")
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def detect_currency(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    m = ISO_CURRENCY.search(text)
    return m.group(1) if m else None


def _iter_ld_nodes(node: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(node, list):
        for x in node:
            yield from _iter_ld_nodes(x)
    elif isinstance(node, dict):
        yield node
        if "@graph" in node:
            yield from _iter_ld_nodes(node["@graph"])


def _is_product(node: Dict[str, Any]) -> bool:
    kind = node.get("@type")
    if isinstance(kind, list):
        return "Product" in kind
    return kind == "Product"


def find_json_ld_product(soup: BeautifulSoup) -> Optional[Dict[str, Any]]:
    for script in soup.find_all("script", type="application/ld+json"):
        text = script.string or script.get_text()
        if not text:
            continue
        try:
            data = json.loads(text)
        except ValueError:
            logger.debug("Skipping malformed JSON-LD block")
            continue
        for node in _iter_ld_nodes(data):
            if _is_product(node):
                return node
    return None


def _ld_image(product: Dict[str, Any]) -> Optional[str]:
    image = product.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")
    return str(image) if image else None


def _ld_offer(product: Dict[str, Any]) -> Dict[str, Any]:
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    return offers if isinstance(offers, dict) else {}


def extract_metadata(document, url: str) -> ProductMetadata:
    soup = as_document(document)
    product = find_json_ld_product(soup) or {}
    offer = _ld_offer(product)

    title = (
        product.get("name")
        or meta_content(soup, 'meta[property="og:title"]')
        or meta_content(soup, 'meta[name="twitter:title"]')
        or document_title(soup)
    )
    description = (
        product.get("description")
        or meta_content(soup, 'meta[property="og:description"]')
        or meta_content(soup, 'meta[name="description"]')
        or meta_content(soup, 'meta[name="twitter:description"]')
    )
    image = (
        _ld_image(product)
        or meta_content(soup, 'meta[property="og:image"]')
        or meta_content(soup, 'meta[name="twitter:image"]')
    )

    raw_price = offer.get("price") or offer.get("lowPrice")
    currency = offer.get("priceCurrency")
    if raw_price is None:
        raw_price = find_price(soup)
        currency = currency or meta_content(soup, 'meta[property="product:price:currency"]')
    price = parse_price(raw_price)

    return ProductMetadata(
        url=url,
        title=str(title)[:TITLE_MAX] if title else None,
        description=str(description)[:DESCRIPTION_MAX] if description else None,
        price=price,
        currency=(str(currency).upper() if currency else detect_currency(raw_price)) if price is not None else None,
        image=image,
        source=merchant_from_url(url),
    )


class UrlScraper:
    """Fetch + extract. The requests session is injectable for tests."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": settings.SCRAPER_USER_AGENT})
        self.session = session
        self.timeout = timeout or settings.SCRAPER_TIMEOUT

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential_jitter(initial=1, max=10),
        stop=stop_after_attempt(settings.SCRAPER_MAX_ATTEMPTS),
        reraise=True,
    )
    def _fetch(self, url: str) -> str:
        r = self.session.get(url, timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def scrape(self, url: str) -> ProductMetadata:
        url = validate_url(url)
        try:
            html = self._fetch(url)
        except requests.RequestException as e:
            logger.warning("Failed to fetch %s: %s", url, e)
            raise ScrapeError("Failed to fetch page") from e
        metadata = extract_metadata(html, url)
        logger.info("Scraped %s (title=%r, price=%s)", url, metadata.title, metadata.price)
        return metadata


def scrape_url(url: str, session: Optional[requests.Session] = None) -> ProductMetadata:
    return UrlScraper(session=session).scrape(url)
