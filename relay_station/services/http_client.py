"""
HTTPセッション生成ユーティリティ
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# リトライ設定
MAX_RETRIES = 3
BACKOFF_FACTOR = 1  # 1秒, 2秒, 4秒...
RETRY_STATUS_CODES = [429, 500, 502, 503, 504]

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CHECK_USER_AGENT = "Mozilla/5.0 (compatible; ImageBot/1.0)"

HTML_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "en-US,en;q=0.9",
}

IMAGE_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
    "Referer": "https://www.amazon.com/",
}


def create_session_with_retry() -> requests.Session:
    """リトライ機能付きのセッションを作成"""
    session = requests.Session()
    retry_strategy = Retry(
        total=MAX_RETRIES,
        backoff_factor=BACKOFF_FACTOR,
        status_forcelist=RETRY_STATUS_CODES,
        allowed_methods=["GET"],
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def create_session() -> requests.Session:
    """リトライなしのセッションを作成（画像チェック用）"""
    return requests.Session()


def get_http_session():
    """
    FastAPIの依存性注入で使用するHTTPセッション

    テストでは app.dependency_overrides で差し替える
    """
    session = create_session()
    try:
        yield session
    finally:
        session.close()
