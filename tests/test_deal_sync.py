"""
ディール同期処理のテスト（フィード取得・アップサート・価格履歴・保持ポリシー）
"""

from datetime import datetime, timedelta

import pytest
import requests

from relay_station.models.deal import Deal
from relay_station.models.deal_price_history import DealPriceHistory
from relay_station.services.deals_feed import DealFeedClient, FeedError
from relay_station.services.deal_normalizer import normalize_deals
from relay_station.services.deal_sync import DealSyncProcessor, upsert_deals
from relay_station.services.retention import prune_deals, select_prunable_ids

from tests.fakes import FakeResponse, FakeSession

FEED_URL = "https://feed.example.com/api/v1/deals"


def feed_items():
    return [
        {
            "title": "USB-C Cable",
            "price": "$8.99",
            "original_price": "$19.99",
            "url": "https://amazon.com/dp/B07XYZ1234",
        },
        {
            "title": "Ninja Air Fryer",
            "price": "$59.99",
            "original_price": "$99.99",
            "url": "https://amazon.com/dp/B0AIRFRY01",
        },
        # 同一バッチ内の重複
        {
            "title": "USB-C Cable (dup)",
            "price": "$7.99",
            "url": "https://amazon.com/dp/B07XYZ1234",
        },
        # 不正な価格
        {"title": "Broken", "price": "$0"},
    ]


def make_processor(db_session, items, session=None):
    session = session or FakeSession()
    session.get_responses[FEED_URL] = FakeResponse(
        json_data={"count": len(items), "products": items}
    )
    client = DealFeedClient(FEED_URL, session=session)
    return DealSyncProcessor(db_session, client)


class TestDealFeedClient:
    """フィードクライアントのテスト"""

    def test_fetch_feed(self):
        session = FakeSession()
        session.get_responses[FEED_URL] = FakeResponse(json_data={"count": 1, "products": [{"title": "x"}]})

        feed = DealFeedClient(FEED_URL, timeout=3, session=session).fetch_feed()

        assert feed.count == 1
        assert feed.products == [{"title": "x"}]
        assert session.calls[0][2]["timeout"] == 3

    def test_non_2xx_is_fatal(self):
        session = FakeSession()
        session.get_responses[FEED_URL] = FakeResponse(status_code=502)
        with pytest.raises(FeedError):
            DealFeedClient(FEED_URL, session=session).fetch_feed()

    def test_products_must_be_a_list(self):
        session = FakeSession()
        session.get_responses[FEED_URL] = FakeResponse(json_data={"count": 1, "products": {"title": "x"}})
        with pytest.raises(FeedError):
            DealFeedClient(FEED_URL, session=session).fetch_feed()

    def test_body_is_not_json(self):
        session = FakeSession()
        session.get_responses[FEED_URL] = FakeResponse(text="<html>")
        with pytest.raises(FeedError):
            DealFeedClient(FEED_URL, session=session).fetch_feed()

    def test_timeout(self):
        session = FakeSession()
        session.get_responses[FEED_URL] = requests.exceptions.Timeout("slow")
        with pytest.raises(FeedError):
            DealFeedClient(FEED_URL, session=session).fetch_feed()


class TestUpsert:
    """アップサートのテスト"""

    def test_insert_and_update(self, db_session):
        fetched_at = datetime(2026, 10, 1, 12, 0, 0)
        deals = normalize_deals(feed_items()[:2], fetched_at=fetched_at)
        assert upsert_deals(db_session, deals) == 2

        deals[0] = deals[0].model_copy(update={"price": 6.99, "fetched_at": fetched_at + timedelta(hours=1)})
        upsert_deals(db_session, deals)
        db_session.expire_all()

        assert db_session.query(Deal).count() == 2
        cable = db_session.get(Deal, "amazon-B07XYZ1234")
        assert cable.price == 6.99
        assert cable.fetched_at == fetched_at + timedelta(hours=1)

    def test_image_columns_survive_resync(self, db_session):
        """画像検証の列は同期で上書きしない"""
        deals = normalize_deals(feed_items()[:1])
        upsert_deals(db_session, deals)

        cable = db_session.get(Deal, "amazon-B07XYZ1234")
        cable.image_ready = True
        cable.verified_image_url = "https://m.media-amazon.com/images/I/abc.jpg"
        cable.image_retry_count = 2
        db_session.commit()

        upsert_deals(db_session, deals)
        db_session.expire_all()

        cable = db_session.get(Deal, "amazon-B07XYZ1234")
        assert cable.image_ready is True
        assert cable.verified_image_url == "https://m.media-amazon.com/images/I/abc.jpg"
        assert cable.image_retry_count == 2

    def test_empty_batch(self, db_session):
        assert upsert_deals(db_session, []) == 0


class TestDealSyncProcessor:
    """同期処理全体のテスト"""

    def test_run(self, db_session):
        result = make_processor(db_session, feed_items()).run()

        assert result["fetched"] == 4
        assert result["skipped"] == 1
        assert result["duplicates"] == 1
        assert result["count"] == 2
        assert result["price_changes"] == 2

        cable = db_session.get(Deal, "amazon-B07XYZ1234")
        assert cable.title == "USB-C Cable"
        assert cable.discount == 55
        assert cable.image_ready is False
        assert cable.image_retry_count == 0

    def test_price_history_is_idempotent(self, db_session):
        """同じ入力なら履歴は増えず、価格が変わった1件だけ増える"""
        items = feed_items()

        make_processor(db_session, items).run()
        assert db_session.query(DealPriceHistory).count() == 2

        result = make_processor(db_session, items).run()
        assert result["price_changes"] == 0
        assert db_session.query(DealPriceHistory).count() == 2

        items[1] = dict(items[1], price="$54.99")
        result = make_processor(db_session, items).run()
        assert result["price_changes"] == 1

        histories = (
            db_session.query(DealPriceHistory)
            .filter(DealPriceHistory.deal_id == "amazon-B0AIRFRY01")
            .order_by(DealPriceHistory.recorded_at)
            .all()
        )
        assert [h.price for h in histories] == [59.99, 54.99]

    def test_feed_error_aborts_before_write(self, db_session):
        session = FakeSession()
        session.get_responses[FEED_URL] = FakeResponse(status_code=500)
        processor = DealSyncProcessor(db_session, DealFeedClient(FEED_URL, session=session))

        with pytest.raises(FeedError):
            processor.run()
        assert db_session.query(Deal).count() == 0

    def test_history_failure_does_not_fail_sync(self, db_session, monkeypatch):
        processor = make_processor(db_session, feed_items())

        def broken_latest_price(deal_id):
            raise RuntimeError("history table unavailable")

        monkeypatch.setattr(processor, "latest_price", broken_latest_price)
        result = processor.run()

        assert result["count"] == 2
        assert result["history_errors"] == 2
        assert db_session.query(Deal).count() == 2


class TestRetention:
    """保持ポリシーのテスト"""

    def test_keeps_latest_and_deletes_old(self, db_session, make_deal):
        """60件（10日分）のうち最新50件は保持、残りは4日より前のみ削除"""
        now = datetime(2026, 10, 11, 0, 0, 0)
        for i in range(60):
            # 4時間ずつ古くなる（0時間前 〜 236時間前）
            make_deal(f"deal-{i:02d}", fetched_at=now - timedelta(hours=4 * i))
        db_session.add(
            DealPriceHistory(id="h-59", deal_id="deal-59", price=10.0, recorded_at=now)
        )
        db_session.commit()

        result = prune_deals(db_session, min_keep=50, max_age_days=4, now=now)

        cutoff = now - timedelta(days=4)
        expected = {
            f"deal-{i:02d}" for i in range(50, 60) if now - timedelta(hours=4 * i) < cutoff
        }
        assert set(result.deleted_ids) == expected
        assert db_session.query(Deal).count() == 60 - len(expected)
        assert db_session.query(DealPriceHistory).count() == 0

        remaining = {deal.id for deal in db_session.query(Deal).all()}
        assert {f"deal-{i:02d}" for i in range(50)} <= remaining

    def test_recent_deals_beyond_min_keep_are_kept(self, db_session, make_deal):
        now = datetime(2026, 10, 11, 0, 0, 0)
        for i in range(5):
            make_deal(f"deal-{i}", fetched_at=now - timedelta(hours=i))

        result = select_prunable_ids(db_session, min_keep=2, max_age_days=4, now=now)
        assert result.deleted_ids == []

    def test_old_deals_within_min_keep_are_kept(self, db_session, make_deal):
        """フィードが止まっても最新 min_keep 件は残る"""
        now = datetime(2026, 10, 11, 0, 0, 0)
        for i in range(3):
            make_deal(f"deal-{i}", fetched_at=now - timedelta(days=30 + i))

        result = prune_deals(db_session, min_keep=2, max_age_days=4, now=now)

        assert result.deleted_ids == ["deal-2"]
        assert db_session.query(Deal).count() == 2
