# tests/conftest.py
import os
import sys
import tempfile
import shutil
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

# ensure project root is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# create a dedicated temp data dir at import time so all imports (config/database/main)
# pick up the test DATA_DIR before they are imported by tests
_tmp_data_dir = tempfile.mkdtemp(prefix="test_data_")
from jinnie import config as app_config  # keep after tmpdir creation
app_config.settings.DATA_DIR = Path(_tmp_data_dir)
# never talk to a real SMTP server from tests
app_config.settings.EMAIL_USER = ""
app_config.settings.EMAIL_PASSWORD = ""

# import database module after overriding settings so it initializes against tmp dir
from jinnie import database as app_database
app_database.DATA_DIR = Path(_tmp_data_dir)
app_database.db.data_dir = Path(_tmp_data_dir)

# now import the FastAPI app
from jinnie.main import app  # noqa: E402

from jinnie.core.security import create_id_token  # noqa: E402
from jinnie.services import mailer  # noqa: E402


@pytest.fixture(autouse=True)
def temp_data_dir():
    """
    Every test starts from empty tables and an empty mail outbox.
    """
    data_dir = Path(_tmp_data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    mailer.outbox.clear()
    try:
        yield data_dir
    finally:
        shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def file_db():
    return app_database.db


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_header():
    """
    Helper that returns a callable to build Authorization header from a token.
    Usage: hdr = auth_header(token)
    """
    def _h(tok: str):
        return {"Authorization": f"Bearer {tok}"}
    return _h


@pytest.fixture
def register_and_token(client):
    """
    Register a user via the API and return (user_id, id_token).
    Usage: uid, token = register_and_token(username="u", email=None, password="pw")
    """
    def _fn(username="owner", email=None, password="secret123"):
        if email is None:
            email = f"{username}@example.com"
        r = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
        assert r.status_code == 200, r.text
        r2 = client.post("/api/auth/token", data={"username": username, "password": password})
        assert r2.status_code == 200, r2.text
        return r.json()["id"], r2.json()["id_token"]
    return _fn


@pytest.fixture
def owner(register_and_token, auth_header):
    uid, token = register_and_token(username="owner")
    return {"id": uid, "token": token, "headers": auth_header(token)}


@pytest.fixture
def make_wishlist(client, owner):
    def _fn(name="Birthday", visibility="public"):
        r = client.post("/api/wishlists", json={"name": name, "visibility": visibility}, headers=owner["headers"])
        assert r.status_code == 201, r.text
        return r.json()
    return _fn


@pytest.fixture
def make_wish(client, owner):
    def _fn(wishlist, title="Record player", **extra):
        body = {"wishlistId": wishlist["id"], "title": title, **extra}
        r = client.post("/api/wishes", json=body, headers=owner["headers"])
        assert r.status_code == 201, r.text
        return r.json()
    return _fn


def code_from_outbox(email: str) -> str:
    """Pull the oobCode out of the last sign-in mail sent to `email`."""
    for msg in reversed(mailer.outbox):
        if msg.to == email:
            link = next(line for line in msg.body.splitlines() if line.startswith("http"))
            return parse_qs(urlparse(link).query)["oobCode"][0]
    raise AssertionError(f"No sign-in mail for {email}")


@pytest.fixture
def email_link_sign_in(client):
    """
    Run the passwordless flow for `email` and return the token bundle.
    Usage: bundle = email_link_sign_in("guest@example.com")
    """
    def _fn(email: str):
        r = client.post("/api/auth/email-link", json={"email": email, "redirectUrl": "http://localhost:3000/w/x"})
        assert r.status_code == 200, r.text
        r2 = client.post("/api/auth/email-link/verify", json={"email": email, "code": code_from_outbox(email)})
        assert r2.status_code == 200, r2.text
        return r2.json()
    return _fn


@pytest.fixture
def guest_headers(email_link_sign_in, auth_header):
    def _fn(email="guest@example.com"):
        return auth_header(email_link_sign_in(email)["id_token"])
    return _fn


@pytest.fixture
def provider_token():
    """
    Mint an id token as if an external provider (Google/Apple) had signed the user in.
    """
    def _fn(uid="g-user", email="g@example.com", provider="google.com", session_type="reservation", auth_time=None):
        return create_id_token(uid, email, True, provider, session_type, auth_time=auth_time)
    return _fn
