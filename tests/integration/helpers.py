"""Shared request builders for the HTTP-level tests."""

import hashlib
import hmac
import json
from typing import Optional

from src.errors import AuthenticationError

TOKENS = {"Bearer token-u1": "u1", "Bearer token-u2": "u2"}
AUTH_U1 = {"Authorization": "Bearer token-u1"}
AUTH_U2 = {"Authorization": "Bearer token-u2"}

POSTS = {
    "178": {
        "id": "178",
        "text": "料金を教えてください",
        "username": "hanako",
        "timestamp": "2025-11-26T14:30:00+0000",
    }
}


class TokenTableAuthenticator:
    """Resolves a fixed set of bearer tokens."""

    async def authenticate(self, authorization: Optional[str]) -> str:
        if authorization not in TOKENS:
            raise AuthenticationError("Unauthorized")
        return TOKENS[authorization]


def sign(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def delivery(media_id: str = "178", field: str = "mentions") -> bytes:
    return json.dumps({
        "object": "threads",
        "entry": [{"changes": [{
            "field": field,
            "value": {"media_id": media_id, "text": "料金を教えてください", "username": "hanako"},
        }]}],
    }).encode()
