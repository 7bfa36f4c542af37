from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from buildflow_inbox.core.db import SessionLocal
from buildflow_inbox.core.security import create_access_token, decode_access_token
from buildflow_inbox.main import app
from buildflow_inbox.modules.reviewers.models import Reviewer, ReviewerRole
from buildflow_inbox.modules.reviewers.service import ensure_admins, register_reviewer


def _login(client: TestClient, email: str, password: str):
    return client.post("/api/auth/token", data={"username": email, "password": password})


def test_login_issues_token_for_normalized_email():
    with SessionLocal() as session:
        register_reviewer(session, email="Site.Manager@Builder.example.com", password="s3cret")

    client = TestClient(app)
    resp = _login(client, "  site.manager@builder.example.com ", "s3cret")
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "site.manager@builder.example.com"
    assert me.json()["role"] == "REVIEWER"
    assert me.json()["last_login_at"] is not None

    assert _login(client, "site.manager@builder.example.com", "wrong").status_code == 401


def test_bad_and_stale_tokens_are_rejected():
    client = TestClient(app)
    with SessionLocal() as session:
        reviewer = register_reviewer(session, email="r@builder.example.com", password="pw")
        expired = create_access_token(
            reviewer_id=reviewer.id, role=reviewer.role, expires_minutes=-1
        )
        reviewer.is_active = False
        session.commit()
        inactive = create_access_token(reviewer_id=reviewer.id, role=reviewer.role)

    assert decode_access_token("not-a-token") is None
    assert decode_access_token(expired) is None
    ghost = create_access_token(reviewer_id=uuid.uuid4(), role=ReviewerRole.ADMIN)
    for token in ("not-a-token", expired, inactive, ghost):
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


def test_only_admins_manage_reviewers():
    with SessionLocal() as session:
        admin = register_reviewer(
            session, email="admin@builder.example.com", password="pw", role=ReviewerRole.ADMIN
        )
        plain = register_reviewer(session, email="plain@builder.example.com", password="pw")
        admin_headers = {
            "Authorization": f"Bearer {create_access_token(reviewer_id=admin.id, role=admin.role)}"
        }
        plain_headers = {
            "Authorization": f"Bearer {create_access_token(reviewer_id=plain.id, role=plain.role)}"
        }

    client = TestClient(app)
    payload = {"email": "new@builder.example.com", "password": "pw", "display_name": "New"}

    assert client.post("/api/reviewers", headers=plain_headers, json=payload).status_code == 403

    created = client.post("/api/reviewers", headers=admin_headers, json=payload)
    assert created.status_code == 201, created.text
    assert created.json()["role"] == "REVIEWER"

    duplicate = client.post("/api/reviewers", headers=admin_headers, json=payload)
    assert duplicate.status_code == 409

    listed = client.get("/api/reviewers", headers=admin_headers).json()
    assert [r["email"] for r in listed] == [
        "admin@builder.example.com",
        "new@builder.example.com",
        "plain@builder.example.com",
    ]


def test_ensure_admins_creates_and_promotes():
    with SessionLocal() as session:
        register_reviewer(session, email="boss@builder.example.com", password="pw")
        ensure_admins(
            session,
            emails=["boss@builder.example.com", " Owner@builder.example.com "],
            password="init",
        )
        ensure_admins(session, emails=["owner@builder.example.com"], password="init")

        reviewers = {r.email: r for r in session.query(Reviewer).all()}
        assert set(reviewers) == {"boss@builder.example.com", "owner@builder.example.com"}
        assert all(r.role == ReviewerRole.ADMIN for r in reviewers.values())
