from __future__ import annotations

import httpx
from conftest import FakeShoppingSearch, make_candidate

from scootpie.core.config import Settings
from scootpie.schemas.profile import Preferences, Sizes
from scootpie.services.product_search import (
    NoopShoppingSearch,
    ProductSearchAdapter,
    SerpApiShoppingSearch,
    build_shopping_search,
    enhance_query,
    parse_price,
    pick_retailer_url,
    random_catalog,
    relaxation_queries,
    search_catalog,
    trending_catalog,
    web_product_id,
)
from scootpie.services.query_extractor import ProductRequest


def test_parse_price_examples():
    assert parse_price("$49.99") == (49.99, "USD")
    assert parse_price("€120") == (120.0, "EUR")
    assert parse_price("£1,250.00") == (1250.0, "GBP")
    assert parse_price("₹999") == (999.0, "INR")
    assert parse_price("price on request") == (0.0, "USD")
    assert parse_price(None) == (0.0, "USD")


def test_enhance_query_adds_gender_and_matching_size():
    prefs = Preferences(gender="women", sizes=Sizes(top="M", bottom="28", shoes="8"))
    assert enhance_query("black jeans", prefs) == "black jeans women size 28"
    assert enhance_query("white sneakers", prefs) == "white sneakers women size 8"
    assert enhance_query("red jacket", prefs) == "red jacket women size M"


def test_enhance_query_without_category_uses_top_then_bottom():
    assert enhance_query("zara", Preferences(sizes=Sizes(top="S"))) == "zara size S"
    assert enhance_query("zara", Preferences(sizes=Sizes(bottom="30"))) == "zara size 30"


def test_enhance_query_leaves_query_alone_without_preferences():
    assert enhance_query("red jacket", None) == "red jacket"
    assert enhance_query("men's shirt", Preferences(gender="men")) == "men's shirt"
    assert enhance_query("black jeans", Preferences(gender="non-binary", sizes=Sizes(top="M"))) == "black jeans unisex"


def test_relaxation_queries_order():
    request = ProductRequest(query="Zara red jacket", brand="Zara", color="red", category="jacket")
    assert relaxation_queries(request) == ["Zara red jacket", "Zara jacket", "red jacket", "jacket"]


def test_relaxation_queries_parse_bare_query():
    assert relaxation_queries(ProductRequest(query="black jeans")) == ["black jeans", "jeans", "black jeans", "jeans"]
    assert relaxation_queries(ProductRequest(query="something vague")) == []


def test_adapter_walks_relaxation_levels_in_order(db_session):
    web = FakeShoppingSearch()
    adapter = ProductSearchAdapter(db=db_session, web=web, limit=5)
    request = ProductRequest(query="Zara red jacket", brand="Zara", color="red", category="jacket")

    assert adapter.search_with_relaxation(request) == []
    assert web.queries == ["Zara red jacket", "Zara red jacket", "Zara jacket", "red jacket", "jacket"]


def test_adapter_stops_at_first_non_empty_level(db_session):
    web = FakeShoppingSearch({"Zara jacket": [make_candidate("Zara Wool Jacket")]})
    adapter = ProductSearchAdapter(db=db_session, web=web, limit=5)
    request = ProductRequest(query="Zara red jacket", brand="Zara", color="red", category="jacket")

    found = adapter.search_with_relaxation(request)
    assert [p.name for p in found] == ["Zara Wool Jacket"]
    assert web.queries[-1] == "Zara jacket"


def test_adapter_falls_back_to_catalog(db_session, catalog_products):
    adapter = ProductSearchAdapter(db=db_session, web=NoopShoppingSearch(), limit=5)
    found = adapter.search("puffer")
    assert [p.product_id for p in found] == ["p_jacket"]
    assert found[0].is_external is False


def test_adapter_survives_web_failure(db_session, catalog_products):
    class _Broken(NoopShoppingSearch):
        def search(self, query: str, limit: int = 10):
            raise httpx.ReadTimeout("slow")

    adapter = ProductSearchAdapter(db=db_session, web=_Broken(), limit=5)
    assert [p.product_id for p in adapter.search("jeans")] == ["p_jeans"]


def test_search_catalog_matches_brand_and_description(db_session, catalog_products):
    assert [p.product_id for p in search_catalog(db_session, "levi")] == ["p_jeans"]
    assert [p.product_id for p in search_catalog(db_session, "warm")] == ["p_jacket"]
    assert search_catalog(db_session, "sequin gown") == []


def test_trending_catalog(db_session, catalog_products):
    assert [p.product_id for p in trending_catalog(db_session, 10)] == ["p_jacket"]


def test_random_catalog_returns_any_rows(db_session, catalog_products):
    assert sorted(p.product_id for p in random_catalog(db_session, 10)) == ["p_jacket", "p_jeans"]
    assert len(random_catalog(db_session, 1)) == 1


class _Resp:
    def __init__(self, payload=None, text: str = "", status: int = 200) -> None:
        self.payload = payload
        self.text = text
        self.status = status

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise httpx.HTTPStatusError("bad status", request=httpx.Request("GET", "https://x"), response=None)

    def json(self):
        return self.payload


class _FakeHttp:
    """Answers SerpAPI calls by engine and page fetches by URL, recording each call."""

    def __init__(self, engines: dict, pages: dict | None = None) -> None:
        self.engines = engines
        self.pages = pages or {}
        self.calls: list[tuple[str, dict | None, float | None]] = []

    def get(self, url, params=None, timeout=None, **kwargs):
        self.calls.append((url, params, timeout))
        if params is not None:
            return _Resp(self.engines.get(params["engine"], {}))
        if url in self.pages:
            return _Resp(text=self.pages[url])
        return _Resp(status=404)


def _serpapi(monkeypatch, http: _FakeHttp) -> SerpApiShoppingSearch:
    monkeypatch.setattr(httpx, "get", http.get)
    return SerpApiShoppingSearch(
        api_key="k",
        base_url="https://serp.example/search.json",
        engine="google_shopping_light",
        timeout_sec=3,
        image_timeout_sec=2,
    )


def test_serpapi_results_are_mapped(monkeypatch):
    http = _FakeHttp(
        {
            "google_shopping_light": {
                "shopping_results": [
                    {
                        "title": "Red Puffer Jacket",
                        "source": "Zara",
                        "price": "$89.90",
                        "thumbnail": "https://img.example/p.jpg",
                        "link": "https://zara.example/p",
                    },
                    {"title": "No Price Tee", "store": "Gap", "product_link": "https://gap.example/t"},
                ]
            }
        }
    )
    found = _serpapi(monkeypatch, http).search("red jacket", limit=10)

    url, params, timeout = http.calls[0]
    assert url == "https://serp.example/search.json"
    assert params == {"engine": "google_shopping_light", "q": "red jacket", "api_key": "k"}
    assert timeout == 3
    assert found[0].name == "Red Puffer Jacket"
    assert (found[0].price, found[0].currency) == (89.9, "USD")
    assert found[0].retailer == "Zara"
    assert found[0].is_external is True
    assert found[0].category == "search"
    assert found[0].product_id == web_product_id("serpapi_google_shopping", "https://zara.example/p")
    assert found[1].retailer == "Gap"
    assert found[1].product_url == "https://gap.example/t"
    assert found[1].image_url == ""
    assert found[1].price == 0.0


def test_pick_retailer_url_skips_google_and_serpapi_links():
    row = {
        "link": "https://www.google.com/shopping/product/1",
        "product_link": "https://serpapi.com/search.json?engine=google_shopping_product",
        "offer": {"link": "https://cos.example/shirt"},
    }
    assert pick_retailer_url(row) == "https://cos.example/shirt"
    assert pick_retailer_url({"link": "https://www.google.com/shopping/product/1"}) == "https://www.google.com/shopping/product/1"
    assert pick_retailer_url({}) == "#"


def test_missing_thumbnail_is_filled_from_product_lookup(monkeypatch):
    http = _FakeHttp(
        {
            "google_shopping_light": {
                "shopping_results": [
                    {"title": "Linen Shirt", "source": "COS", "product_id": "42", "link": "https://cos.example/shirt"},
                ]
            },
            "google_shopping_product": {"images": [{"link": "https://img.example/linen.jpg"}]},
        }
    )
    found = _serpapi(monkeypatch, http).search("linen shirt")

    assert found[0].image_url == "https://img.example/linen.jpg"
    _, params, timeout = http.calls[1]
    assert params == {"engine": "google_shopping_product", "product_id": "42", "api_key": "k"}
    assert timeout == 2


def test_missing_thumbnail_falls_back_to_page_og_image(monkeypatch):
    page = '<html><head><meta property="og:image" content="/media/shirt.jpg"></head></html>'
    http = _FakeHttp(
        {
            "google_shopping_light": {
                "shopping_results": [
                    {"title": "Linen Shirt", "source": "COS", "product_id": "42", "link": "https://cos.example/shirt"},
                    {"title": "Oxford Shirt", "source": "Uniqlo", "link": "https://uniqlo.example/oxford"},
                ]
            },
            "google_shopping_product": {"images": []},
        },
        pages={
            "https://cos.example/shirt": page,
            "https://uniqlo.example/oxford": '<meta name="twitter:image" content="//cdn.uniqlo.example/ox.jpg">',
        },
    )
    found = _serpapi(monkeypatch, http).search("shirt")

    assert found[0].image_url == "https://cos.example/media/shirt.jpg"
    assert found[1].image_url == "https://cdn.uniqlo.example/ox.jpg"


def test_image_backfill_failure_leaves_image_empty(monkeypatch):
    http = _FakeHttp(
        {
            "google_shopping_light": {
                "shopping_results": [{"title": "Mystery Tee", "source": "Shop", "link": "https://shop.example/gone"}]
            }
        }
    )
    found = _serpapi(monkeypatch, http).search("tee")

    assert found[0].image_url == ""
    assert found[0].product_url == "https://shop.example/gone"


def test_build_shopping_search_without_key_is_noop():
    assert isinstance(build_shopping_search(Settings(serpapi_api_key="")), NoopShoppingSearch)
    assert isinstance(build_shopping_search(Settings(serpapi_api_key="abc")), SerpApiShoppingSearch)
