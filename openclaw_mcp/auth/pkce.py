"""PKCE (RFC 7636) helpers. Only the S256 method is supported."""

import base64
import hashlib
import hmac

S256 = "S256"


def compute_s256_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_s256(code_verifier: str, code_challenge: str) -> bool:
    try:
        expected = compute_s256_challenge(code_verifier)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode(), code_challenge.encode())
