# jinnie/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from jinnie.config import settings
from jinnie.core.logger import setup_logging
from jinnie.database import db
from jinnie.api.routes import auth as auth_routes
from jinnie.api.routes import public as public_routes
from jinnie.api.routes import wishes as wish_routes
from jinnie.api.routes import wishlists as wishlist_routes
from jinnie.middleware.cors_config import configure_cors
from jinnie.middleware.security_headers import add_security_headers


logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context: run startup checks before the app starts serving.
    """
    setup_logging(settings.LOG_LEVEL)

    for table in ("users", "wishlists", "wishes"):
        path = db.path_for(table)
        if not path.exists():
            logger.warning(
                "Table file not found at %s; it will be created on first write (or run scripts/init_db.py).",
                path,
            )
        else:
            logger.info("Found %s table: %s", table, path)

    if not (settings.EMAIL_USER and settings.EMAIL_PASSWORD):
        logger.warning("SMTP credentials not set; sign-in links will only be logged")
    if settings.ENV != "development" and settings.JWT_SECRET == "dev-secret-change-me":
        logger.warning("JWT_SECRET is the development default in %s", settings.ENV)

    yield
    logger.info("Shutting down Jinnie API")


app = FastAPI(title="Jinnie API", version="0.1.0", lifespan=lifespan)
configure_cors(app)
add_security_headers(app)

app.include_router(auth_routes.router)
app.include_router(public_routes.router)
app.include_router(wishlist_routes.router)
app.include_router(wish_routes.router)


@app.get("/", tags=["root"])
async def root():
    return {"status": "ok", "service": "Jinnie API"}
