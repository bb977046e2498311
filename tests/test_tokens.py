import re

from submission_api import repository, tokens
from submission_api.settings import settings

TOKEN_RE = re.compile(r"^ICT-[0-9A-Z]{8}$")


def test_validate_unused_token(client, seed_token):
    seed_token("ICT-AB12CD34")
    r = client.post("/api/tokens/validate", json={"token": "ICT-AB12CD34"})
    assert r.status_code == 200
    assert r.json() == {"message": "Token valid"}


def test_validate_missing_token(client):
    r = client.post("/api/tokens/validate", json={})
    assert r.status_code == 400
    assert r.json() == {"message": "Token is required"}


def test_validate_unknown_token(client):
    r = client.post("/api/tokens/validate", json={"token": "ICT-NOPE0000"})
    assert r.status_code == 400
    assert r.json() == {"message": "Invalid token"}


def test_validate_used_token(client, db, seed_token):
    value = seed_token()
    assert tokens.mark_used(db, value)
    db.commit()
    r = client.post("/api/tokens/validate", json={"token": value})
    assert r.status_code == 400
    assert r.json() == {"message": "Token already used"}


def test_mark_used_only_once(db, seed_token):
    value = seed_token()
    assert tokens.mark_used(db, value) is True
    assert tokens.mark_used(db, value) is False
    db.commit()
    assert repository.get_token(db, value).used is True


def test_mark_used_unknown_token(db):
    assert tokens.mark_used(db, "ICT-MISSING0") is False


def test_generate_three_tokens(client, admin):
    r = client.post("/api/tokens/generate", json={"amount": 3}, headers=admin)
    assert r.status_code == 200
    body = r.json()
    assert len(body) == 3
    assert len({t["token"] for t in body}) == 3
    for t in body:
        assert t["used"] is False
        assert TOKEN_RE.match(t["token"])
        assert "createdAt" in t


def test_generate_rejects_bad_amounts(client, admin):
    for payload in ({}, {"amount": 0}, {"amount": -2}, {"amount": settings.max_token_batch + 1}):
        r = client.post("/api/tokens/generate", json=payload, headers=admin)
        assert r.status_code == 400, payload
        assert r.json() == {"message": "Invalid amount"}


def test_generate_rejects_non_integer_amount(client, admin):
    for amount in ("lots", 2.5, "3", True, None):
        r = client.post("/api/tokens/generate", json={"amount": amount}, headers=admin)
        assert r.status_code == 400, amount
        assert r.json() == {"message": "Invalid amount"}


def test_generate_skips_existing_identifiers(db, monkeypatch, seed_token):
    seed_token("ICT-00000000")
    drawn = iter(["ICT-00000000", "ICT-11111111"])
    monkeypatch.setattr(tokens, "random_token", lambda prefix=None: next(drawn))
    created = tokens.generate_batch(db, 1)
    assert [t.token for t in created] == ["ICT-11111111"]


def test_list_tokens_newest_first(client, admin):
    first = client.post("/api/tokens/generate", json={"amount": 2}, headers=admin).json()
    second = client.post("/api/tokens/generate", json={"amount": 1}, headers=admin).json()
    listed = client.get("/api/tokens", headers=admin).json()
    assert [t["token"] for t in listed] == [second[0]["token"], first[1]["token"], first[0]["token"]]


def test_admin_routes_require_key(client):
    assert client.get("/api/tokens").status_code == 401
    r = client.get("/api/tokens", headers={"X-Admin-Key": "wrong"})
    assert r.status_code == 401
    assert r.json() == {"message": "Unauthorized"}
    assert client.post("/api/tokens/generate", json={"amount": 1}).status_code == 401


def test_admin_routes_disabled_without_key(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", None)
    r = client.get("/api/submissions", headers={"X-Admin-Key": "anything"})
    assert r.status_code == 403
    assert r.json() == {"message": "Admin access is not configured"}


def test_random_token_format():
    for _ in range(50):
        assert TOKEN_RE.match(tokens.random_token("ICT-"))
