import base64
import hashlib
import hmac
import secrets


def generate_token(prefix: str) -> str:
    return f"{prefix}{secrets.token_urlsafe(12)}"


def shopify_digest(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_shopify_hmac(raw_body: bytes, header_value: str | None, secret: str | None) -> bool:
    """Check ``X-Shopify-Hmac-Sha256`` against the exact raw request body."""
    if not header_value or not secret:
        return False
    expected = shopify_digest(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), header_value.strip().encode("utf-8"))
