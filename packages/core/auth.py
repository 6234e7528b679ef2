import hashlib
import hmac
import os
from typing import Optional


def hash_token(token: str) -> str:
    """Derive a deterministic hash for token comparison."""
    pepper = os.getenv("PAGESMITH_TOKEN_PEPPER", "")
    return hashlib.sha256((token + pepper).encode()).hexdigest()


def verify_admin_token(token: str, expected: Optional[str] = None) -> bool:
    """Return True if `token` matches the configured admin token."""
    expected = expected if expected is not None else os.getenv("PAGESMITH_ADMIN_TOKEN")
    if not expected or not token:
        return False
    return hmac.compare_digest(hash_token(token), hash_token(expected))


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check a GitHub-style `X-Hub-Signature-256` header."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature.strip())
