# jinnie/services/scraper.py
"""
In-page product scraper used by the extension popup.

`scrape_product` is a plain synchronous function over an already-loaded
document: no network, no awaiting, and the result is a plain record the
caller can serialize directly. Each field is resolved independently and the
first source that yields a value wins:

    title        og:title, else the document title
    image        og:image
    description  og:description
    price        product:price:amount / og:price:amount / itemprop=price meta,
                 else the text of the first element of each price selector
                 matched against the USD patterns below
"""
import re
from typing import Optional, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from jinnie.models.product import ScrapedProduct

Document = Union[BeautifulSoup, str, bytes]

PRICE_META_SELECTORS = (
    'meta[property="product:price:amount"]',
    'meta[property="og:price:amount"]',
    'meta[itemprop="price"]',
)

PRICE_SELECTORS = (
    ".price",
    '[class*="price"]',
    '[id*="price"]',
    'span[itemprop="price"]',
    ".product-price",
    ".sale-price",
)

# USD only; other currencies are left undetermined rather than guessed
PRICE_PATTERNS = (
    re.compile(r"\$[\d,]+\.?\d*"),
    re.compile(r"USD\s*[\d,]+\.?\d*"),
    re.compile(r"[\d,]+\.?\d*\s*USD"),
)


def as_document(document: Document) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document, "html.parser")


def meta_content(soup: BeautifulSoup, selector: str) -> Optional[str]:
    tag = soup.select_one(selector)
    if tag is None:
        return None
    content = tag.get("content")
    return content or None


def document_title(soup: BeautifulSoup) -> Optional[str]:
    """Same value a browser reports as document.title: whitespace collapsed, nothing else."""
    title = soup.find("title")
    if not isinstance(title, Tag):
        return None
    text = " ".join(title.get_text().split())
    return text or None


def match_price(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    for pattern in PRICE_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(0)
    return None


def find_price(soup: BeautifulSoup) -> Optional[str]:
    for selector in PRICE_META_SELECTORS:
        content = meta_content(soup, selector)
        if content:
            return content

    for selector in PRICE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        price = match_price(element.get_text())
        if price:
            return price
    return None


def scrape_product(document: Document, url: str) -> ScrapedProduct:
    soup = as_document(document)
    return ScrapedProduct(
        url=url,
        title=meta_content(soup, 'meta[property="og:title"]') or document_title(soup),
        price=find_price(soup),
        image=meta_content(soup, 'meta[property="og:image"]'),
        description=meta_content(soup, 'meta[property="og:description"]'),
    )
