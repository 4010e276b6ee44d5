from bs4 import BeautifulSoup

from jinnie.services.scraper import match_price, scrape_product

URL = "https://shop.example.com/p/1"


def test_meta_price_beats_selector_price():
    html = """
    <html><head>
      <meta property="og:title" content="Desk Lamp">
      <meta property="product:price:amount" content="19.99">
    </head><body><span class="price">$24.99</span></body></html>
    """
    product = scrape_product(html, URL)
    assert product.price == "19.99"
    assert product.title == "Desk Lamp"


def test_sale_price_selector_matches_usd_pattern():
    html = '<html><head><title>Jacket</title></head><body><div class="sale-price">Sale: USD 49.99 today</div></body></html>'
    assert scrape_product(html, URL).price == "USD 49.99"


def test_document_title_fallback_is_verbatim():
    html = "<html><head><title>Nike Air Max 90 – Nike.com</title></head><body></body></html>"
    product = scrape_product(html, URL)
    assert product.title == "Nike Air Max 90 – Nike.com"


def test_missing_fields_are_none():
    product = scrape_product("<html><body><p>nothing here</p></body></html>", URL)
    assert product.url == URL
    assert product.title is None
    assert product.price is None
    assert product.image is None
    assert product.description is None
    assert not product.has_product
    assert product.to_dict() == {"url": URL, "title": None, "price": None, "image": None, "description": None}


def test_open_graph_fields_and_accepts_soup():
    soup = BeautifulSoup(
        """<html><head>
        <meta property="og:title" content="Tent">
        <meta property="og:image" content="https://img.example.com/tent.jpg">
        <meta property="og:description" content="Two person tent">
        <title>ignored</title></head></html>""",
        "html.parser",
    )
    product = scrape_product(soup, URL)
    assert product.title == "Tent"
    assert product.image == "https://img.example.com/tent.jpg"
    assert product.description == "Two person tent"


def test_empty_meta_content_falls_through():
    html = """<html><head>
      <meta property="og:title" content="">
      <meta property="product:price:amount" content="">
      <meta property="og:price:amount" content="12.00">
      <title>Fallback title</title></head></html>"""
    product = scrape_product(html, URL)
    assert product.title == "Fallback title"
    assert product.price == "12.00"


def test_only_first_element_per_selector_is_tested():
    # first .price has no amount; the next selector ([class*="price"]) still starts at that same element,
    # so the match comes from [id*="price"]
    html = """<html><body>
      <span class="price">Call for price</span>
      <span class="price">$5.00</span>
      <div id="main-price">$7.50</div>
    </body></html>"""
    assert scrape_product(html, URL).price == "$7.50"


def test_title_whitespace_is_collapsed():
    html = "<html><head><title>\n   Blue   Mug\n</title></head></html>"
    assert scrape_product(html, URL).title == "Blue Mug"


def test_match_price_patterns_in_order():
    assert match_price("Now $1,299.00!") == "$1,299.00"
    assert match_price("price 30 USD") == "30 USD"
    assert match_price("EUR 30") is None
    assert match_price(None) is None


def test_malformed_document_does_not_raise():
    product = scrape_product("<html><head><meta property='og:title'<title>x", URL)
    assert product.url == URL
