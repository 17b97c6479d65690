# -*- coding: utf-8 -*-
"""
Cookie-session auth: password signup/login, payout details and magic links.
"""
from datetime import timedelta
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from secret_message.models.magic_link import MagicLink
from secret_message.models.user import User
from secret_message.utils.clock import utcnow


def _cookie_names(resp):
    return {h.split("=", 1)[0] for h in resp.headers.getlist("Set-Cookie")}


class TestPasswordAuth:

    def test_signup_sets_session_cookies(self, client, db):
        resp = client.post("/api/auth/signup", json={"email": "New@Example.com", "password": "long-enough"})

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["ok"] is True
        assert data["user"]["email"] == "new@example.com"
        assert "password_hash" not in data["user"]
        assert {"access_token_cookie", "refresh_token_cookie"} <= _cookie_names(resp)

        assert client.get("/api/auth/user").get_json()["email"] == "new@example.com"

    def test_duplicate_signup(self, client, owner):
        resp = client.post("/api/auth/signup", json={"email": "owner@example.com", "password": "long-enough"})
        assert resp.status_code == 409

    def test_short_password(self, client):
        resp = client.post("/api/auth/signup", json={"email": "a@example.com", "password": "short"})
        assert resp.status_code == 400
        assert resp.get_json()["details"]["password"] == ["Password must be at least 8 characters"]

    def test_invalid_email(self, client):
        resp = client.post("/api/auth/signup", json={"email": "nope", "password": "long-enough"})
        assert resp.status_code == 400

    def test_login(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": "OWNER@example.com", "password": "correct-horse"})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["id"] == owner.id

    def test_login_wrong_password(self, client, owner):
        resp = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "wrong-horse"})
        assert resp.status_code == 401

    def test_login_magic_link_only_account(self, client, make_user):
        make_user(email="nopass@example.com", password=None)
        resp = client.post("/api/auth/login", json={"email": "nopass@example.com", "password": "anything"})
        assert resp.status_code == 401

    def test_logout_clears_session(self, owner_client):
        assert owner_client.get("/api/auth/user").status_code == 200

        resp = owner_client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert owner_client.get("/api/auth/user").status_code == 401

    def test_user_requires_session(self, client):
        assert client.get("/api/auth/user").status_code == 401


class TestPayoutDetails:

    def test_update_payout(self, owner_client, db, owner):
        resp = owner_client.patch("/api/auth/payout", json={
            "payout_method": "crypto", "payout_address": "0xabc"})

        assert resp.status_code == 200
        assert resp.get_json()["user"]["payout_method"] == "crypto"
        db.session.expire_all()
        assert db.session.get(User, owner.id).payout_address == "0xabc"

    def test_unknown_payout_method(self, owner_client):
        resp = owner_client.patch("/api/auth/payout", json={
            "payout_method": "gold-bars", "payout_address": "vault"})
        assert resp.status_code == 400


class TestMagicLink:

    def _request_link(self, client, email="magic@example.com"):
        with patch("secret_message.services.email_service.EmailService.send_magic_link",
                   return_value=True) as send:
            resp = client.post("/api/auth/request-magic-link", json={"email": email})
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True
        link = send.call_args.args[1]
        return parse_qs(urlparse(link).query)["token"][0]

    def test_request_issues_token_without_account(self, client, db):
        token = self._request_link(client)

        assert User.query.filter_by(email="magic@example.com").count() == 0
        stored = MagicLink.query.filter_by(token=token).one()
        assert stored.used is False
        assert stored.expires_at > utcnow() + timedelta(minutes=14)

    def test_request_answers_success_even_if_email_fails(self, client):
        resp = client.post("/api/auth/request-magic-link", json={"email": "magic@example.com"})
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True

    def test_verify_signs_in(self, client):
        token = self._request_link(client)

        resp = client.get(f"/api/auth/verify-magic-link?token={token}")

        assert resp.status_code == 200
        assert resp.get_json()["user"]["email"] == "magic@example.com"
        assert client.get("/api/auth/user").status_code == 200
        assert User.query.filter_by(email="magic@example.com").count() == 1

    def test_token_is_single_use(self, client):
        token = self._request_link(client)
        assert client.get(f"/api/auth/verify-magic-link?token={token}").status_code == 200

        again = client.get(f"/api/auth/verify-magic-link?token={token}")
        assert again.status_code == 400

    def test_expired_token(self, client, db):
        token = self._request_link(client)
        link = MagicLink.query.filter_by(token=token).one()
        link.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        resp = client.get(f"/api/auth/verify-magic-link?token={token}")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Token has expired"

    def test_missing_token(self, client):
        assert client.get("/api/auth/verify-magic-link").status_code == 400
