"""
レート制限設定（画像プロキシ用）
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def client_address(request: Request) -> str:
    """クライアントのIPアドレス（リバースプロキシ経由なら X-Forwarded-For の先頭）"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


# レート制限インスタンス
limiter = Limiter(key_func=client_address)
