"""
Security Primitives

Salted scrypt hashing for passwords and SSNs, plus HTML escaping for text
that is echoed back to clients.
"""

import hashlib
import hmac
import secrets
from typing import Tuple


SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1


def generate_salt() -> str:
    """Generate random salt for hashing"""
    return secrets.token_hex(16)


def _scrypt(secret: str, salt: str) -> str:
    return hashlib.scrypt(
        secret.encode(),
        salt=salt.encode(),
        n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P
    ).hex()


def hash_password(password: str, salt: str = None) -> Tuple[str, str]:
    """
    Hash a password with scrypt.

    Returns:
        (hash, salt) both as hex strings
    """
    salt = salt or generate_salt()
    return _scrypt(password, salt), salt


def verify_password(password: str, password_hash: str, salt: str) -> bool:
    """Constant-time comparison of a candidate password against a stored hash"""
    if not password_hash or not salt:
        return False
    return hmac.compare_digest(_scrypt(password, salt), password_hash)


def hash_ssn(ssn: str, salt: str = None) -> Tuple[str, str]:
    """SSNs are never stored in plaintext"""
    return hash_password(ssn, salt)


def verify_ssn(ssn: str, ssn_hash: str, salt: str) -> bool:
    return verify_password(ssn, ssn_hash, salt)


_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
}


def escape_html(text: str) -> str:
    """Escape HTML special characters"""
    if text is None:
        return text
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)
