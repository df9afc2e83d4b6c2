
import logging
from fastapi import Request, Depends
from sqlalchemy.orm import Session
from docgate.config import settings
from docgate.db.session import SessionLocal
from docgate.auth.gate import Capability, Deny, DenyKind, SessionContext, authorize
from docgate.auth.service import resolve_session
from docgate.errors import Forbidden, Unauthenticated
from docgate.models.user import User
from docgate.utils.security import unsign_session_cookie

logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return unsign_session_cookie(auth.split(" ", 1)[1].strip())
    return unsign_session_cookie(request.cookies.get(settings.session_cookie_name))


def optional_session(request: Request, db: Session = Depends(get_db)) -> SessionContext | None:
    return resolve_session(db, get_session_token(request))


def current_session(session: SessionContext | None = Depends(optional_session)) -> SessionContext:
    if session is None:
        raise Unauthenticated()
    return session


def current_user(session: SessionContext = Depends(current_session), db: Session = Depends(get_db)) -> User:
    user = db.get(User, session.user_id)
    if user is None:
        raise Unauthenticated()
    return user


def enforce(session: SessionContext | None, capability: Capability, path: str = "") -> SessionContext:
    decision = authorize(session, capability)
    if isinstance(decision, Deny):
        logger.info(
            "denied %s on %s: %s",
            capability,
            path,
            decision.kind,
            extra={"user_id": session.user_id if session else None},
        )
        if decision.kind is DenyKind.UNAUTHENTICATED:
            raise Unauthenticated(decision.reason)
        raise Forbidden(decision.reason)
    return session


def require(capability: Capability):
    """Dependency admitting the request only if the session holds `capability`."""

    def _guard(request: Request, session: SessionContext | None = Depends(optional_session)) -> SessionContext:
        return enforce(session, capability, request.url.path)

    return _guard
