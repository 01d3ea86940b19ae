"""
API keys look like ``mm_<prefix>_<secret>``. Only an HMAC of the whole
key (keyed with the server pepper) is stored; the prefix stays readable
so keys can be told apart in admin views and logs without the secret.
"""
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from marketmate.core.config import settings

KEY_SCHEME = "mm"
PREFIX_LEN = 8


@dataclass(frozen=True)
class IssuedKey:
    prefix: str
    plain: str
    hashed: str


def generate_api_key() -> IssuedKey:
    prefix = secrets.token_hex(PREFIX_LEN // 2)
    plain = f"{KEY_SCHEME}_{prefix}_{secrets.token_urlsafe(32)}"
    return IssuedKey(prefix=prefix, plain=plain, hashed=hash_api_key(plain))


def key_prefix(plain: str) -> str | None:
    """The readable prefix of a well-formed key, or None."""
    scheme, _, rest = plain.partition("_")
    prefix, _, secret = rest.partition("_")
    if scheme != KEY_SCHEME or len(prefix) != PREFIX_LEN or not secret:
        return None
    return prefix


def hash_api_key(plain: str) -> str:
    pepper = settings.api_key_pepper.get_secret_value().encode("utf-8")
    return hmac.new(pepper, plain.encode("utf-8"), hashlib.sha256).hexdigest()
