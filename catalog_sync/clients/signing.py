from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time


def new_nonce() -> str:
    return secrets.token_hex(16)


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def sign_request(client_id: str, client_secret: str, uri: str, timestamp: int | str, nonce: str) -> str:
    """Signature for one signed-RPC request.

    key = ``clientId&clientSecret&nonce``, message = ``clientId&uri&timestamp&nonce``,
    HMAC-SHA256, base64 encoded. Pure: identical inputs always give the same value.
    """
    key = f"{client_id}&{client_secret}&{nonce}".encode("utf-8")
    message = f"{client_id}&{uri}&{timestamp}&{nonce}".encode("utf-8")
    digest = hmac.new(key, message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def signed_headers(client_id: str, client_secret: str, uri: str) -> dict[str, str]:
    nonce = new_nonce()
    timestamp = timestamp_ms()
    return {
        "client-id": client_id,
        "timestamp": str(timestamp),
        "nonce": nonce,
        "sign": sign_request(client_id, client_secret, uri, timestamp, nonce),
    }
