from fastapi.middleware.cors import CORSMiddleware

from jinnie.config import settings

# the browser extension calls the API from its own origin
EXTENSION_ORIGIN_REGEX = r"^chrome-extension://[a-p]{32}$"


def configure_cors(app):
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    if not origins:
        origins = [settings.PUBLIC_BASE_URL]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_origin_regex=EXTENSION_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=86400,
    )
