
import hashlib
import logging
import secrets
from passlib.context import CryptContext
from jose import jws, JWSError
from docgate.config import settings

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["scrypt"], deprecated="auto")

SESSION_TOKEN_BYTES = 32


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def _is_canonical(hashed: str) -> bool:
    handler = pwd_context.identify(hashed, resolve=True)
    if handler is None:
        return False
    # base64 padding bits are ignored on decode, so an altered string can carry the same digest
    return secrets.compare_digest(handler.from_string(hashed).to_string(), hashed)


def verify_password(password: str, hashed: str) -> bool:
    # passlib compares digests in constant time; anything it cannot parse is a mismatch
    if not password or not hashed:
        return False
    try:
        matched = pwd_context.verify(password, hashed)
        canonical = _is_canonical(hashed)
    except Exception as e:
        # the scrypt parser asserts on a damaged ln=/r=/p= section
        logger.warning("stored password hash rejected: %s", type(e).__name__)
        return False
    return matched and canonical


def new_session_token() -> str:
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def sign_session_cookie(token: str) -> str:
    return jws.sign(token.encode("utf-8"), settings.secret_key, algorithm="HS256")


def unsign_session_cookie(value: str | None) -> str | None:
    if not value:
        return None
    try:
        payload = jws.verify(value, settings.secret_key, algorithms=["HS256"])
    except JWSError:
        return None
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return None
