import logging
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session
from docgate.config import settings
from docgate.auth.deps import current_user, get_db, get_session_token, require
from docgate.auth.gate import Module, SessionContext, write
from docgate.auth.service import authenticate, change_password, create_user, issue_session, revoke_session
from docgate.models.user import User
from docgate.schemas.auth import LoginIn, PasswordChangeIn, UserCreateIn, UserOut
from docgate.utils.security import sign_session_cookie

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=settings.session_cookie_name,
        value=sign_session_cookie(token),
        httponly=True,
        samesite="Lax",
        secure=settings.is_prod,
        path="/",
        max_age=60 * 60 * 24 * settings.session_expire_days,
    )


@router.post("/login", response_model=UserOut)
def login(body: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = authenticate(db, body.username, body.password)
    set_session_cookie(response, issue_session(db, user))
    logger.info("user %s logged in", user.id, extra={"user_id": user.id})
    return user


@router.post("/logout")
def logout(request: Request, response: Response, db: Session = Depends(get_db)):
    revoke_session(db, get_session_token(request))
    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"ok": True}


@router.get("/user", response_model=UserOut)
def me(user: User = Depends(current_user)):
    return user


@router.post("/password", status_code=204)
def password(
    body: PasswordChangeIn,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(current_user),
):
    change_password(db, user, body.current_password, body.new_password)
    set_session_cookie(response, issue_session(db, user))
    return None


@router.post("/users", response_model=UserOut, status_code=201)
def add_user(
    body: UserCreateIn,
    db: Session = Depends(get_db),
    session: SessionContext = Depends(require(write(Module.USERS))),
):
    user = create_user(db, body.username, body.email, body.full_name, body.password, body.role)
    logger.info("user %s created by %s", user.id, session.user_id, extra={"user_id": session.user_id})
    return user
