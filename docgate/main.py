import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from docgate.middleware.ratelimit import RateLimitMiddleware, make_key_func
from docgate.config import settings
from docgate.core.logging import setup_logging
from docgate.db.session import SessionLocal, init_db
from docgate.errors import install_error_handlers
from docgate.auth.routes import router as auth_router
from docgate.auth.service import ensure_seed_admin, purge_expired_sessions
from docgate.documents.routes import router as documents_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        RateLimitMiddleware,
        window_seconds=settings.rate_limit_window_seconds,
        max_calls=settings.rate_limit_max_calls,
        key_func=make_key_func(settings.session_cookie_name),
        include_path_prefixes=("/documents/upload", "/billings", "/auth/login"),
    )
    install_error_handlers(app)

    app.include_router(auth_router)
    app.include_router(documents_router)

    @app.on_event("startup")
    def on_startup():
        init_db()
        db = SessionLocal()
        try:
            purged = purge_expired_sessions(db)
            if purged:
                logger.info("purged %d expired sessions", purged)
            if ensure_seed_admin(db) is not None:
                logger.info("seeded superadmin %s", settings.seed_admin_username)
        finally:
            db.close()
        logger.info("storage backend: %s", settings.storage_type)

    @app.get("/health", tags=["root"])
    def health():
        return {"status": "ok", "name": settings.app_name, "env": settings.app_env}

    return app

app = create_app()
