import threading
from datetime import timedelta

from fastapi.testclient import TestClient

from jinnie.core.timeutils import utcnow
from jinnie.main import app

MANAGE_MESSAGE = "Open the confirmation link from your email to manage your reservations."


def _public(client, wl):
    r = client.get(f"/api/public/wishlists/{wl['shareToken']}")
    assert r.status_code == 200, r.text
    return r.json()


def test_reserve_requires_token(client, make_wishlist, make_wish):
    wl = make_wishlist()
    wish = make_wish(wl)
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "ann@example.com"})
    assert r.status_code == 401
    assert r.json()["detail"] == MANAGE_MESSAGE


def test_reserve_and_public_view(client, make_wishlist, make_wish, email_link_sign_in, auth_header):
    wl = make_wishlist()
    wish = make_wish(wl)
    bundle = email_link_sign_in("ann@example.com")
    headers = auth_header(bundle["id_token"])

    r = client.post(
        f"/api/wishes/{wish['id']}/reserve",
        json={"email": " ann@example.com ", "name": "Ann", "message": "Enjoy!"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    reserved = r.json()["wish"]
    assert reserved["status"] == "reserved"
    assert reserved["reservedBy"] == "ann@example.com"
    assert reserved["reservedByUid"] == bundle["user"]["uid"]
    assert reserved["reserverName"] == "Ann"
    assert reserved["reservedAt"]

    anon = _public(client, wl)
    assert anon["reservedCount"] == 1
    assert anon["wishes"][0]["reservedByMe"] is False

    mine = client.get(f"/api/public/wishlists/{wl['shareToken']}", headers=headers).json()
    assert mine["wishes"][0]["reservedByMe"] is True


def test_second_reserve_conflicts(client, file_db, make_wishlist, make_wish, guest_headers):
    wl = make_wishlist()
    wish = make_wish(wl)
    r1 = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "a@example.com"}, headers=guest_headers("a@example.com"))
    assert r1.status_code == 200, r1.text
    r2 = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "b@example.com"}, headers=guest_headers("b@example.com"))
    assert r2.status_code == 409
    assert file_db.get_record("wishes", "id", wish["id"])["reserved_by"] == "a@example.com"


def test_stale_read_loses_compare_and_set(client, file_db, make_wishlist, make_wish, guest_headers, monkeypatch):
    wl = make_wishlist()
    wish = make_wish(wl)
    stale = file_db.get_record("wishes", "id", wish["id"])

    r1 = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "a@example.com"}, headers=guest_headers("a@example.com"))
    assert r1.status_code == 200, r1.text

    headers_b = guest_headers("b@example.com")
    orig_get = file_db.get_record

    def stale_get(table, key, value):
        # second request still sees the wish as available
        if table == "wishes":
            return dict(stale)
        return orig_get(table, key, value)

    monkeypatch.setattr(file_db, "get_record", stale_get)
    r2 = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "b@example.com"}, headers=headers_b)
    monkeypatch.undo()

    assert r2.status_code == 409
    row = file_db.get_record("wishes", "id", wish["id"])
    assert row["reserved_by"] == "a@example.com"


def test_concurrent_reserves_exactly_one_wins(make_wishlist, make_wish, guest_headers, file_db):
    wl = make_wishlist()
    wish = make_wish(wl)
    headers = [guest_headers(f"racer{i}@example.com") for i in range(2)]
    barrier = threading.Barrier(2)
    results = {}

    def reserve(i):
        c = TestClient(app)
        barrier.wait()
        r = c.post(f"/api/wishes/{wish['id']}/reserve", json={"email": f"racer{i}@example.com"}, headers=headers[i])
        results[i] = r.status_code

    threads = [threading.Thread(target=reserve, args=(i,)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results.values()) == [200, 409]
    winner = [i for i, code in results.items() if code == 200][0]
    row = file_db.get_record("wishes", "id", wish["id"])
    assert row["reserved_by"] == f"racer{winner}@example.com"
    assert file_db.get_record("wishlists", "id", wl["id"])["reserved_count"] == "1"


def test_reserve_validates_email(client, make_wishlist, make_wish, guest_headers):
    wl = make_wishlist()
    wish = make_wish(wl)
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "not-an-email"}, headers=guest_headers())
    assert r.status_code == 400
    assert r.json()["detail"] == "That email looks incorrect. Double-check and try again."


def test_reserve_on_private_wishlist_forbidden(client, make_wishlist, make_wish, guest_headers):
    wl = make_wishlist(visibility="private")
    wish = make_wish(wl)
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "a@example.com"}, headers=guest_headers())
    assert r.status_code == 403


def test_owner_cannot_reserve_own_wish(client, owner, make_wishlist, make_wish, provider_token, auth_header):
    wl = make_wishlist()
    wish = make_wish(wl)
    own = auth_header(provider_token(uid=owner["id"], email="owner@example.com", provider="google.com"))
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "owner@example.com"}, headers=own)
    assert r.status_code == 400
    assert r.json()["detail"] == "You can't reserve your own wish"
    assert _public(client, wl)["wishes"][0]["status"] == "available"


def test_reserve_unknown_wish_404(client, guest_headers):
    r = client.post("/api/wishes/nope/reserve", json={"email": "a@example.com"}, headers=guest_headers())
    assert r.status_code == 404


def test_cancel_rules(client, make_wishlist, make_wish, guest_headers):
    wl = make_wishlist()
    wish = make_wish(wl)
    ann = guest_headers("ann@example.com")
    bob = guest_headers("bob@example.com")
    url = f"/api/wishes/{wish['id']}/reserve"

    r = client.delete(url, headers=ann)
    assert r.status_code == 409  # nothing to cancel yet

    assert client.post(url, json={"email": "ann@example.com"}, headers=ann).status_code == 200

    r = client.delete(url)
    assert r.status_code == 401
    assert r.json()["detail"] == MANAGE_MESSAGE

    assert client.delete(url, headers=bob).status_code == 403

    r = client.delete(url, headers=ann)
    assert r.status_code == 200, r.text
    cancelled = r.json()["wish"]
    assert cancelled["status"] == "available"
    assert cancelled["reservedBy"] is None and cancelled["reservedByUid"] is None

    body = _public(client, wl)
    assert body["reservedCount"] == 0
    assert body["wishes"][0]["status"] == "available"


def test_legacy_reservation_cancel_by_verified_email(client, file_db, make_wishlist, make_wish, guest_headers):
    wl = make_wishlist()
    wish = make_wish(wl)
    # reservation recorded before uids were stored
    file_db.update_record("wishes", "id", wish["id"], {
        "status": "reserved", "reserved_by": "Legacy@Example.com", "reserved_by_uid": "",
        "reserved_at": "2023-01-01T00:00:00Z",
    })
    assert client.delete(f"/api/wishes/{wish['id']}/reserve", headers=guest_headers("other@example.com")).status_code == 403
    r = client.delete(f"/api/wishes/{wish['id']}/reserve", headers=guest_headers("legacy@example.com"))
    assert r.status_code == 200, r.text


def test_owner_marks_purchased(client, owner, make_wishlist, make_wish, guest_headers, register_and_token, auth_header):
    wl = make_wishlist()
    wish = make_wish(wl)
    url = f"/api/wishes/{wish['id']}/purchase"

    r = client.post(url, headers=owner["headers"])
    assert r.status_code == 400  # available -> purchased is not a move

    ann = guest_headers("ann@example.com")
    assert client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "ann@example.com"}, headers=ann).status_code == 200

    _, stranger = register_and_token(username="stranger")
    assert client.post(url, headers=auth_header(stranger)).status_code == 403

    r = client.post(url, headers=owner["headers"])
    assert r.status_code == 200, r.text
    bought = r.json()["wish"]
    assert bought["status"] == "purchased"
    assert bought["purchasedBy"] == "ann@example.com"
    assert bought["purchasedAt"]
    assert bought["reservedBy"] is None

    assert _public(client, wl)["reservedCount"] == 0
    # nothing leaves purchased
    assert client.delete(f"/api/wishes/{wish['id']}/reserve", headers=ann).status_code == 409
    assert client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "ann@example.com"}, headers=ann).status_code == 409


def test_expired_reservation_session_rejected(client, make_wishlist, make_wish, provider_token, auth_header):
    wl = make_wishlist()
    wish = make_wish(wl)
    old = utcnow() - timedelta(hours=49)

    stale = provider_token(uid="v1", email="v@example.com", provider="emailLink", auth_time=old)
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "v@example.com"}, headers=auth_header(stale))
    assert r.status_code == 401

    google = provider_token(uid="g1", email="g@example.com", provider="google.com", auth_time=old)
    r = client.post(f"/api/wishes/{wish['id']}/reserve", json={"email": "g@example.com"}, headers=auth_header(google))
    assert r.status_code == 200, r.text
