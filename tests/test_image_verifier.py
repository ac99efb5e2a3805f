"""
ディール画像検証のテスト
"""

from datetime import timedelta

import requests

from relay_station.models.deal import Deal
from relay_station.services.image_verifier import (
    ImageChecker,
    ImageVerifier,
    get_image_status,
    reset_exhausted_deals,
)

from tests.fakes import FakeResponse, FakeSession, image_head

ASIN = "B07XYZ1234"
PRODUCT_URL = f"https://www.amazon.com/dp/{ASIN}"
CDN_URL = f"https://m.media-amazon.com/images/I/{ASIN}._AC_SL1500_.jpg"


def make_verifier(db_session, session, max_retries=5):
    return ImageVerifier(db_session, ImageChecker(session), max_retries=max_retries)


class TestImageChecker:
    """HEADによる画像判定"""

    def test_valid_image(self):
        session = FakeSession()
        session.head_responses["https://cdn.example.com/a.jpg"] = image_head()
        assert ImageChecker(session).is_valid_image("https://cdn.example.com/a.jpg")

    def test_too_small(self):
        session = FakeSession()
        session.head_responses["https://cdn.example.com/a.jpg"] = image_head(length=1000)
        assert not ImageChecker(session).is_valid_image("https://cdn.example.com/a.jpg")

    def test_not_an_image(self):
        session = FakeSession()
        session.head_responses["https://cdn.example.com/a.jpg"] = image_head(content_type="text/html")
        assert not ImageChecker(session).is_valid_image("https://cdn.example.com/a.jpg")

    def test_timeout_is_negative(self):
        session = FakeSession()
        session.head_responses["https://cdn.example.com/a.jpg"] = requests.exceptions.Timeout()
        assert not ImageChecker(session).is_valid_image("https://cdn.example.com/a.jpg")

    def test_private_host_is_not_checked(self):
        session = FakeSession()
        assert not ImageChecker(session).is_valid_image("http://127.0.0.1/a.jpg")
        assert session.calls == []

    def test_timeouts_are_passed(self):
        session = FakeSession()
        checker = ImageChecker(session, head_timeout=5, page_timeout=8)
        checker.is_valid_image("https://cdn.example.com/a.jpg")
        checker.fetch_page(PRODUCT_URL)
        assert [kwargs["timeout"] for _, _, kwargs in session.calls] == [5, 8]


class TestImageVerifier:
    """検証の状態遷移"""

    def test_existing_image_is_verified(self, db_session, make_deal):
        make_deal("amazon-1", image_url="https://cdn.example.com/real.jpg", product_url=PRODUCT_URL)
        session = FakeSession()
        session.head_responses["https://cdn.example.com/real.jpg"] = image_head()

        result = make_verifier(db_session, session).run(batch_size=10)

        assert result["processed"] == 1
        assert result["verified"] == 1
        assert result["results"] == [
            {"id": "amazon-1", "status": "verified", "imageUrl": "https://cdn.example.com/real.jpg"}
        ]
        deal = db_session.get(Deal, "amazon-1")
        assert deal.image_ready is True
        assert deal.verified_image_url == "https://cdn.example.com/real.jpg"
        assert deal.image_last_checked is not None

    def test_placeholder_is_not_checked(self, db_session, make_deal):
        """プレースホルダーURLはHEADせずASINの候補へ進む"""
        make_deal("amazon-2", image_url="https://via.placeholder.com/300", product_url=PRODUCT_URL)
        session = FakeSession()
        session.head_responses[CDN_URL] = image_head()

        result = make_verifier(db_session, session).run()

        assert "https://via.placeholder.com/300" not in session.urls("HEAD")
        assert session.urls("HEAD")[0] == CDN_URL
        assert result["results"][0]["imageUrl"] == CDN_URL
        assert db_session.get(Deal, "amazon-2").image_url == CDN_URL

    def test_scraped_image(self, db_session, make_deal):
        make_deal("amazon-3", product_url=PRODUCT_URL)
        session = FakeSession()
        session.get_responses[PRODUCT_URL] = FakeResponse(
            text='<meta property="og:image" content="https://m.media-amazon.com/images/I/scraped.jpg">'
        )
        session.head_responses["https://m.media-amazon.com/images/I/scraped.jpg"] = image_head()

        result = make_verifier(db_session, session).run()

        assert result["verified"] == 1
        assert result["results"][0]["imageUrl"] == "https://m.media-amazon.com/images/I/scraped.jpg"

    def test_failure_increments_retry(self, db_session, make_deal):
        make_deal("amazon-4", product_url=PRODUCT_URL)

        result = make_verifier(db_session, FakeSession()).run()

        assert result["needRetry"] == 1
        assert result["results"] == [{"id": "amazon-4", "status": "retry"}]
        deal = db_session.get(Deal, "amazon-4")
        assert deal.image_ready is False
        assert deal.image_retry_count == 1
        assert deal.image_last_checked is not None

    def test_exhausted_after_max_retries(self, db_session, make_deal):
        """上限まで失敗したディールは以降のバッチで選ばれない"""
        make_deal("amazon-5", product_url=PRODUCT_URL)
        verifier_session = FakeSession()

        for _ in range(3):
            make_verifier(db_session, verifier_session, max_retries=3).run()
        assert db_session.get(Deal, "amazon-5").image_retry_count == 3

        result = make_verifier(db_session, verifier_session, max_retries=3).run()
        assert result["processed"] == 0
        assert result["message"] == "No deals need verification"
        assert db_session.get(Deal, "amazon-5").image_retry_count == 3

    def test_retry_count_never_exceeds_ceiling(self, db_session, make_deal):
        deal = make_deal("amazon-6", product_url=PRODUCT_URL, image_retry_count=2)
        verifier = make_verifier(db_session, FakeSession(), max_retries=3)

        verifier.process_deal(deal)
        verifier.process_deal(deal)

        assert db_session.get(Deal, "amazon-6").image_retry_count == 3

    def test_selection_order(self, db_session, make_deal, hours_ago):
        """未確認のディールを優先し、確認が古い順"""
        make_deal("checked-recent", image_last_checked=hours_ago(1))
        make_deal("checked-old", image_last_checked=hours_ago(10))
        make_deal("never-checked")
        make_deal("ready", image_ready=True)
        make_deal("exhausted", image_retry_count=5)

        pending = make_verifier(db_session, FakeSession()).select_pending(batch_size=10)

        assert [deal.id for deal in pending] == ["never-checked", "checked-old", "checked-recent"]

    def test_batch_size_limit(self, db_session, make_deal):
        for i in range(5):
            make_deal(f"deal-{i}")
        result = make_verifier(db_session, FakeSession()).run(batch_size=2)
        assert result["processed"] == 2

    def test_single_deal(self, db_session, make_deal):
        """dealId 指定時は状態に関係なくそのディールのみ処理"""
        make_deal("target", image_retry_count=5)
        make_deal("other")

        result = make_verifier(db_session, FakeSession()).run(deal_id="target")

        assert [item["id"] for item in result["results"]] == ["target"]
        assert db_session.get(Deal, "target").image_retry_count == 5

    def test_update_error_is_per_deal(self, db_session, make_deal, monkeypatch):
        make_deal("deal-a")
        make_deal("deal-b")
        verifier = make_verifier(db_session, FakeSession())
        original = verifier.mark_retry

        def flaky_mark_retry(deal, checked_at):
            if deal.id == "deal-a":
                raise RuntimeError("write failed")
            original(deal, checked_at)

        monkeypatch.setattr(verifier, "mark_retry", flaky_mark_retry)
        result = verifier.run()

        statuses = {item["id"]: item["status"] for item in result["results"]}
        assert statuses == {"deal-a": "error", "deal-b": "retry"}


class TestImageStatus:
    """管理用の集計とリセット"""

    def test_status_and_reset(self, db_session, make_deal):
        make_deal("ready", image_ready=True)
        make_deal("pending")
        make_deal("exhausted-1", image_retry_count=5)
        make_deal("exhausted-2", image_retry_count=7)

        status = get_image_status(db_session, max_retries=5)
        assert (status["total"], status["ready"], status["pending"], status["exhausted"]) == (4, 1, 1, 2)
        assert [deal["id"] for deal in status["next"]] == ["pending"]

        assert reset_exhausted_deals(db_session, max_retries=5) == 2
        db_session.expire_all()
        assert db_session.get(Deal, "exhausted-2").image_retry_count == 0
        assert get_image_status(db_session, max_retries=5)["pending"] == 3
