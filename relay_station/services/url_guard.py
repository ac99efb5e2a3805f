"""
SSRF対策のURL検証

サーバー側から取得してよいURLかを判定する。
許可ドメイン・拒否パターンはデータとして定義し、判定は check_target に集約する。
"""

import ipaddress
import re
import socket
from typing import Iterable, Optional, Union
from urllib.parse import urlsplit

MAX_URL_LENGTH = 2048

# 商品ページとして取得を許可するAmazonのドメイン（サブドメインも可）
ALLOWED_PRODUCT_DOMAINS = [
    "amazon.com",
    "amazon.co.uk",
    "amazon.ca",
    "amazon.de",
    "amazon.fr",
    "amazon.co.jp",
    "amazon.in",
    "amazon.com.br",
    "amazon.es",
    "amazon.it",
    "amazon.com.mx",
    "amazon.com.au",
]

# 画像として取得を許可するAmazonの画像CDNドメイン
ALLOWED_IMAGE_DOMAINS = [
    "media-amazon.com",
    "images-amazon.com",
    "ssl-images-amazon.com",
]

# 10進整数・16進・8進などの省略表記のIPv4（2130706433, 0x7f000001, 127.1）
SHORTHAND_IPV4_PATTERN = re.compile(r"^(0x[0-9a-f]*|\d+)(\.(0x[0-9a-f]*|\d+)){0,3}$", re.IGNORECASE)


class TargetRejected(Exception):
    """取得先URLが許可されない場合のエラー"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def host_matches(hostname: str, domains: Iterable[str]) -> bool:
    """ホスト名がドメインそのもの、またはそのサブドメインか"""
    return any(hostname == domain or hostname.endswith("." + domain) for domain in domains)


def parse_ip_host(hostname: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    """IPアドレス表記のホスト名なら ip_address を返す（省略表記のIPv4も含む）"""
    hostname = hostname.lower().strip("[]").rstrip(".")
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        pass
    if SHORTHAND_IPV4_PATTERN.match(hostname):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(hostname))
        except OSError:
            return None
    return None


def is_private_host(hostname: str) -> bool:
    """プライベートIPやループバックを指すホスト名か"""
    hostname = hostname.lower().strip("[]").rstrip(".")
    if hostname == "localhost" or hostname.endswith(".localhost"):
        return True

    address = parse_ip_host(hostname)
    if address is None:
        return False
    if address.version == 6 and address.ipv4_mapped:
        address = address.ipv4_mapped
    return not address.is_global


def check_target(url: Optional[str], allowed_domains: Iterable[str] = ALLOWED_PRODUCT_DOMAINS) -> str:
    """
    取得先URLを検証し、正規化したホスト名を返す

    Raises:
        TargetRejected: 400（URL不正）または 403（許可されないホスト）
    """
    if not url:
        raise TargetRejected(400, "Missing url parameter")
    if len(url) > MAX_URL_LENGTH:
        raise TargetRejected(400, "URL too long")

    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower()
        _ = parts.port  # 不正なポート番号は ValueError
    except ValueError:
        raise TargetRejected(400, "Invalid URL format")

    if parts.scheme not in ("http", "https") or not hostname:
        raise TargetRejected(400, "Invalid URL format")

    if not host_matches(hostname, allowed_domains):
        raise TargetRejected(403, "Only Amazon domains are allowed")

    if is_private_host(hostname):
        raise TargetRejected(403, "Private IP addresses are not allowed")

    if parse_ip_host(hostname) is not None:
        raise TargetRejected(403, "Direct IP addresses are not allowed")

    return hostname


def is_allowed_target(url: Optional[str], allowed_domains: Iterable[str] = ALLOWED_PRODUCT_DOMAINS) -> bool:
    """取得してよいURLなら True"""
    try:
        check_target(url, allowed_domains)
    except TargetRejected:
        return False
    return True


def is_public_http_url(url: Optional[str]) -> bool:
    """http(s) でプライベートホストを指さないURLなら True（ドメイン制限なし）"""
    if not url or len(url) > MAX_URL_LENGTH:
        return False
    try:
        parts = urlsplit(url)
        hostname = (parts.hostname or "").lower()
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not hostname:
        return False
    return not is_private_host(hostname)
