"""
ディール正規化処理のテスト
"""

import json
from datetime import datetime

import pytest

from relay_station.services.deal_normalizer import (
    PLACEHOLDER_IMAGE,
    deduplicate_deals,
    derive_stable_id,
    infer_category,
    normalize_deal,
    normalize_deals,
    parse_posted_at,
    parse_price,
)
from relay_station.schemas.feed import FeedItem

FETCHED_AT = datetime(2026, 10, 1, 12, 0, 0)


class TestParsePrice:
    """価格パースのテスト"""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("$8.99", 8.99),
            ("$1,299.99", 1299.99),
            (19.5, 19.5),
            (None, 0.0),
            ("free", 0.0),
            ("", 0.0),
        ],
    )
    def test_parse_price(self, value, expected):
        assert parse_price(value) == expected


class TestStableId:
    """安定ID生成のテスト"""

    def test_asin_from_dp_url(self):
        """/dp/ のASINが最優先"""
        item = FeedItem(
            title="Anything",
            url="https://www.amazon.com/Some-Product/dp/b07xyz1234/ref=abc",
            slickdeals_url="https://slickdeals.net/f/12345-thing",
        )
        assert derive_stable_id(item, 0) == "amazon-B07XYZ1234"

    def test_asin_from_gp_product_url(self):
        item = FeedItem(url="https://amazon.com/gp/product/B000123ABC")
        assert derive_stable_id(item, 0) == "amazon-B000123ABC"

    def test_slickdeals_thread_id(self):
        item = FeedItem(
            title="Thing", url="https://example.com/x", slickdeals_url="https://slickdeals.net/f/17890123-great-deal"
        )
        assert derive_stable_id(item, 3) == "slickdeals-17890123"

    def test_title_and_price(self):
        """タイトルの英数字（小文字）と価格の数字から生成"""
        item = FeedItem(title="Anker Power Bank, 10000mAh!", price="$19.99")
        assert derive_stable_id(item, 0) == "deal-ankerpowerbank10000mah-1999"

    def test_title_id_is_truncated(self):
        item = FeedItem(title="a" * 80, price="$1,234.56")
        deal_id = derive_stable_id(item, 0)
        assert len(deal_id) <= 50
        assert deal_id.startswith("deal-" + "a" * 40)

    def test_title_without_price_digits(self):
        item = FeedItem(title="Mystery Box")
        assert derive_stable_id(item, 0) == "deal-mysterybox-0"

    def test_fallback_uses_index(self):
        item = FeedItem(title="!!!", price="$5")
        assert derive_stable_id(item, 7) == "deal-fallback-7"

    def test_id_is_stable_across_runs(self):
        raw = {"title": "Echo Dot", "price": "$29.99", "url": "https://example.com/echo"}
        first = normalize_deal(raw, 0, fetched_at=FETCHED_AT)
        second = normalize_deal(raw, 5, fetched_at=FETCHED_AT)
        assert first.id == second.id


class TestCategory:
    """カテゴリ推定のテスト"""

    @pytest.mark.parametrize(
        "title, expected",
        [
            ("USB-C Cable 6ft", "Electronics"),
            ("Ninja Air Fryer 4qt", "Home & Kitchen"),
            ("CeraVe Moisturizer 16oz", "Beauty & Personal Care"),
            ("Men's Running Shoe", "Fashion"),
            ("LEGO Star Wars Set", "Toys & Games"),
            ("Hardcover Cookbook Bundle", "Books & Media"),
            ("Adjustable Dumbbell Pair", "Sports & Outdoors"),
            ("Dog Leash 6ft", "Pet Supplies"),
            ("Stapler and Sticky Notes Kit", "Office Supplies"),
            ("Vitamin D3 Gummies", "Health & Wellness"),
            ("Mystery Gift Card", "Other"),
        ],
    )
    def test_infer_category(self, title, expected):
        assert infer_category(title) == expected

    def test_keyword_matches_at_word_start(self):
        """単語の途中には一致しない"""
        assert infer_category("Ktvx Something") == "Other"

    def test_empty_title(self):
        assert infer_category(None) == "Other"


class TestNormalizeDeal:
    """1件の正規化のテスト"""

    def test_usb_cable_example(self):
        raw = {
            "title": "USB-C Cable",
            "price": "$8.99",
            "original_price": "$19.99",
            "url": "https://amazon.com/dp/B07XYZ1234",
        }
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.id == "amazon-B07XYZ1234"
        assert deal.price == 8.99
        assert deal.original_price == 19.99
        assert deal.discount == 55
        assert deal.category == "Electronics"
        assert deal.fetched_at == FETCHED_AT

    def test_swapped_prices_are_repaired(self):
        """販売価格 > 定価 の場合は入れ替える"""
        raw = {"title": "Desk Lamp", "price": "$40.00", "original_price": "$25.00"}
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.price == 25.0
        assert deal.original_price == 40.0
        assert deal.price <= deal.original_price
        assert deal.discount == 38

    @pytest.mark.parametrize("price", ["$0", "0.00", "free", "$100000.01", "$250,000"])
    def test_invalid_price_is_skipped(self, price):
        assert normalize_deal({"title": "Thing", "price": price}, 0) is None

    def test_max_price_is_allowed(self):
        deal = normalize_deal({"title": "Boat", "price": "$100,000"}, 0)
        assert deal is not None
        assert deal.price == 100000

    def test_original_price_equal_to_price_is_dropped(self):
        deal = normalize_deal({"title": "Thing", "price": "$10", "original_price": "$10"}, 0)
        assert deal.original_price is None
        assert deal.discount is None

    def test_image_selection(self):
        deal = normalize_deal(
            {"title": "Thing", "price": "$10", "image_url": "not-a-url", "image": "https://img.example.com/a.jpg"},
            0,
        )
        assert deal.image_url == "https://img.example.com/a.jpg"

        deal = normalize_deal({"title": "Thing", "price": "$10"}, 0)
        assert deal.image_url == PLACEHOLDER_IMAGE

    def test_optional_fields(self):
        raw = {
            "title": "  Kindle Paperwhite ",
            "price": "$99.99",
            "url": "https://www.amazon.com/dp/B08KTZ8249",
            "store": "Amazon",
            "rating": "4.7",
            "reviewCount": "12,345",
            "inStock": False,
            "couponCode": "SAVE10",
            "timestamp": "2026-09-30T08:15:00Z",
        }
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.title == "Kindle Paperwhite"
        assert deal.brand == "Amazon"
        assert deal.rating == 4.7
        assert deal.review_count == 12345
        assert deal.in_stock is False
        assert deal.coupon_code == "SAVE10"
        assert deal.posted_at == datetime(2026, 9, 30, 8, 15, 0)
        assert deal.product_url == "https://www.amazon.com/dp/B08KTZ8249"

    def test_non_dict_item_is_skipped(self):
        assert normalize_deal("not a deal", 0) is None


class TestParsePostedAt:
    """投稿日時パースのテスト"""

    def test_rfc2822(self):
        assert parse_posted_at("Tue, 30 Sep 2026 08:15:00 GMT") == datetime(2026, 9, 30, 8, 15, 0)

    def test_epoch_milliseconds(self):
        assert parse_posted_at(1790000000000) == parse_posted_at(1790000000)

    def test_unparsable(self):
        assert parse_posted_at("yesterday-ish") is None


class TestNormalizeAndDeduplicate:
    """フィード全体の正規化と重複排除のテスト"""

    def test_invalid_items_are_excluded(self):
        raw_items = [
            {"title": "Good 1", "price": "$5"},
            {"title": "Bad 1", "price": "$0"},
            {"title": "Good 2", "price": "$15"},
            {"title": "Bad 2", "price": "$200,000"},
        ]
        deals = normalize_deals(raw_items, fetched_at=FETCHED_AT)
        assert len(deals) == len(raw_items) - 2

    def test_duplicates_keep_first(self):
        raw_items = [
            {"title": "First", "price": "$5", "url": "https://amazon.com/dp/B0000000A1"},
            {"title": "Second", "price": "$7", "url": "https://amazon.com/dp/B0000000A1"},
            {"title": "Other", "price": "$9", "url": "https://amazon.com/dp/B0000000B2"},
        ]
        deals = deduplicate_deals(normalize_deals(raw_items, fetched_at=FETCHED_AT))

        assert [deal.id for deal in deals] == ["amazon-B0000000A1", "amazon-B0000000B2"]
        assert deals[0].title == "First"


class TestUnusualFeedValues:
    """極端な値を含むフィードのテスト"""

    HUGE_NUMBER = "1" + "0" * 400

    def test_huge_price_literal_skips_only_that_item(self):
        raw_items = json.loads(
            '[{"title": "Big", "price": %s}, {"title": "USB cable", "price": "$5"}]' % self.HUGE_NUMBER
        )
        deals = normalize_deals(raw_items, fetched_at=FETCHED_AT)

        assert [deal.title for deal in deals] == ["USB cable"]

    def test_huge_rating_and_review_count_are_dropped(self):
        raw = json.loads(
            '{"title": "USB cable", "price": "$5", "rating": %s, "reviewCount": "%s"}'
            % (self.HUGE_NUMBER, self.HUGE_NUMBER)
        )
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.rating is None
        assert deal.review_count is None

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_price_is_skipped(self, literal):
        raw = json.loads('{"title": "USB cable", "price": %s}' % literal)
        assert normalize_deal(raw, 0) is None

    def test_non_finite_original_price_is_dropped(self):
        raw = json.loads('{"title": "USB cable", "price": "$5", "original_price": NaN}')
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.price == 5.0
        assert deal.original_price is None
        assert deal.discount is None

    def test_non_finite_rating_is_dropped(self):
        raw = json.loads('{"title": "USB cable", "price": "$5", "rating": NaN}')
        assert normalize_deal(raw, 0).rating is None


class TestColumnLengths:
    """列長を超える値のテスト"""

    def test_long_text_fields_are_truncated(self):
        raw = {
            "title": "T" * 600,
            "price": "$5",
            "brand": "B" * 300,
            "couponCode": "C" * 150,
        }
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert len(deal.title) == 500
        assert len(deal.brand) == 255
        assert len(deal.coupon_code) == 100

    def test_overlong_image_url_falls_back(self):
        raw = {
            "title": "Thing",
            "price": "$5",
            "image_url": "https://img.example.com/" + "a" * 2100,
            "image": "https://img.example.com/b.jpg",
        }
        assert normalize_deal(raw, 0).image_url == "https://img.example.com/b.jpg"

        raw.pop("image")
        assert normalize_deal(raw, 0).image_url == PLACEHOLDER_IMAGE

    def test_overlong_product_url_is_discarded(self):
        raw = {"title": "Thing", "price": "$5", "url": "https://www.example.com/" + "p" * 2100}
        deal = normalize_deal(raw, 0, fetched_at=FETCHED_AT)

        assert deal.product_url == ""

    def test_slickdeals_id_fits_id_column(self):
        item = FeedItem(title="Thing", slickdeals_url="https://slickdeals.net/f/" + "9" * 80)
        deal_id = derive_stable_id(item, 0)

        assert deal_id.startswith("slickdeals-")
        assert len(deal_id) == 50
