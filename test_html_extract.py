#!/usr/bin/env python3
"""
Tests for JSON-LD / meta-tag / anchor product extraction.
"""
import json

import pytest

from services.html_extract import (
    extract_json_ld_products,
    extract_meta_product,
    extract_page_product,
    extract_product_anchors,
    flatten_json_ld,
    guess_category,
    make_soup,
    normalize_availability,
    parse_price,
)


def _ld(data) -> str:
    return f'<script type="application/ld+json">{json.dumps(data)}</script>'


@pytest.mark.parametrize("raw, expected", [
    (129, 129.0),
    ("129.99", 129.99),
    ("€ 129,99", 129.99),
    ("$1,299.00", 1299.0),
    ("1.299,00 EUR", 1299.0),
    ("1,299", 1299.0),
    ("€ 1.299", 1299.0),
    ("1.299 EUR", 1299.0),
    ("1.299.000", 1299000.0),
    ("0.125", 0.125),
    ("129.-", 129.0),
    ("Sold out", None),
    (None, None),
    (True, None),
    (-5, None),
])
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("https://schema.org/InStock", "in_stock"),
    ("http://schema.org/OutOfStock", "out_of_stock"),
    ("PreOrder", "preorder"),
    ("sold-out", "out_of_stock"),
    ("in stock", "in_stock"),
    ("LimitedAvailability", "in_stock"),
    ("", "unknown"),
    (None, "unknown"),
    ("ask in store", "unknown"),
])
def test_normalize_availability(raw, expected):
    assert normalize_availability(raw) == expected


def test_guess_category():
    assert guess_category("Black Leather Ankle Boots") == "shoes"
    assert guess_category("Water-Resistant Trench Coat") == "outerwear"
    assert guess_category("Satin Slip Dress") == "dress"
    assert guess_category("Leather Tote Bag") == "bag"
    assert guess_category("Merino Knit Sweater") == "top"
    assert guess_category("Leather Belt") == "accessory"
    assert guess_category("Gift card") is None
    assert guess_category(None) is None


def test_flatten_graph_and_item_list():
    data = {
        "@graph": [
            {"@type": "WebPage", "name": "Search"},
            {"@type": "ItemList", "itemListElement": [
                {"@type": "ListItem", "item": {"@type": "Product", "name": "A"}},
                {"@type": "Product", "name": "B"},
            ]},
        ]
    }
    names = [node.get("name") for node in flatten_json_ld(data)]
    assert names == ["Search", "A", "B"]


def test_extract_json_ld_product_with_offers():
    html = _ld({
        "@context": "https://schema.org",
        "@type": "Product",
        "name": "Relaxed Wool Coat",
        "brand": {"@type": "Brand", "name": "Arket"},
        "url": "/en-nl/product.relaxed-wool-coat.html?utm_source=feed",
        "image": ["//images.arket.com/coat.jpg"],
        "color": "Grey",
        "size": "XS, S, M",
        "offers": [
            {"@type": "Offer", "price": "249.00", "priceCurrency": "EUR",
             "availability": "https://schema.org/OutOfStock"},
            {"@type": "Offer", "price": "259.00", "priceCurrency": "EUR",
             "availability": "https://schema.org/InStock",
             "seller": {"@type": "Organization", "name": "Arket"}},
        ],
    })
    products = extract_json_ld_products(make_soup(html), "https://www.arket.com/en-nl/search.html?q=coat")
    assert len(products) == 1
    product = products[0]
    assert product.title == "Relaxed Wool Coat"
    assert product.brand == "Arket"
    assert product.url == "https://www.arket.com/en-nl/product.relaxed-wool-coat.html"
    assert product.image_url == "https://images.arket.com/coat.jpg"
    assert product.price == 259.0
    assert product.currency == "EUR"
    assert product.availability == "in_stock"
    assert product.retailer == "Arket"
    assert product.sizes == ["XS", "S", "M"]
    assert product.color == "Grey"


def test_extract_json_ld_aggregate_offer_and_price_spec():
    html = _ld([
        {"@type": "Product", "name": "Ankle Boot",
         "offers": {"@type": "AggregateOffer", "lowPrice": "165", "priceCurrency": "€"}},
        {"@type": "Offer", "itemOffered": {"@type": "Product", "name": "Loafer"},
         "priceSpecification": {"price": 150, "priceCurrency": "EUR"}},
    ])
    products = extract_json_ld_products(make_soup(html), "https://www.cos.com/en-nl/shoes.html")
    assert [(p.title, p.price, p.currency) for p in products] == [
        ("Ankle Boot", 165.0, "EUR"),
        ("Loafer", 150.0, "EUR"),
    ]


def test_malformed_json_ld_is_tolerated():
    html = (
        '<script type="application/ld+json">{"@type": "Product", "name": "Good"}</script>'
        '<script type="application/ld+json">{not json at all</script>'
        '<script type="application/ld+json"><!-- cms --> {"@type": "Product", "name": "Wrapped"};</script>'
    )
    titles = [p.title for p in extract_json_ld_products(make_soup(html), "https://shop.example.nl/")]
    assert titles == ["Good", "Wrapped"]


def test_extract_meta_product():
    html = """
    <html><head>
      <title>Fallback title</title>
      <meta property="og:title" content="Pleated Midi Skirt">
      <meta property="og:image" content="/img/skirt.jpg">
      <meta property="product:price:amount" content="49,99">
      <meta property="product:price:currency" content="EUR">
      <meta property="og:site_name" content="Mango">
    </head><body></body></html>
    """
    product = extract_meta_product(make_soup(html), "https://shop.mango.com/nl/skirt_123.html?gclid=x")
    assert product.title == "Pleated Midi Skirt"
    assert product.price == 49.99
    assert product.currency == "EUR"
    assert product.brand == "Mango"
    assert product.retailer == "shop.mango.com"
    assert product.url == "https://shop.mango.com/nl/skirt_123.html"
    assert product.image_url == "https://shop.mango.com/img/skirt.jpg"
    assert product.origin == "meta"


def test_extract_meta_product_without_title():
    assert extract_meta_product(make_soup("<html><body><p>hi</p></body></html>"), "https://a.nl/") is None


def test_extract_product_anchors():
    html = """
    <a href="/en-nl/product.knit.1.html">Merino Knit</a>
    <a href="/en-nl/product.knit.1.html?utm_source=x">Merino Knit again</a>
    <a href="/en-nl/product.shirt.2.html"><img src="/img/shirt.jpg" alt="Oxford Shirt"></a>
    <a href="/en-nl/product.blank.3.html"></a>
    <a href="/en-nl/help.html">Help</a>
    """
    products = extract_product_anchors(
        make_soup(html), "https://www.cos.com/en-nl/search.html", selector="a[href*='/product']"
    )
    assert [p.title for p in products] == ["Merino Knit", "Oxford Shirt"]
    assert products[1].image_url == "https://www.cos.com/img/shirt.jpg"
    assert all(p.origin == "anchor" for p in products)


def test_extract_page_product_prefers_json_ld():
    html = (
        '<meta property="og:title" content="Meta title">'
        + _ld({"@type": "Product", "name": "LD title", "offers": {"price": "10", "priceCurrency": "GBP"}})
    )
    product = extract_page_product(html, "https://www.hm.com/p/1")
    assert product.title == "LD title"
    assert product.url == "https://www.hm.com/p/1"
    assert product.currency == "GBP"
