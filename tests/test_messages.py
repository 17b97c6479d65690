# -*- coding: utf-8 -*-
"""
Message lifecycle tests: owner endpoints, the public view, the unlock gate
and the disappearance budget.
"""
import os
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from secret_message.config import Config
from secret_message.errors import Forbidden, Gone
from secret_message.models.message import Message
from secret_message.models.payment import PROVIDER_STRIPE
from secret_message.services import disappearance
from secret_message.services import messages as message_service
from secret_message.services.image_renderer import image_file_path
from secret_message.services.payments import record_payment
from secret_message.utils.clock import utcnow


def _unlock(message, txn="cs_test"):
    record_payment(message.id, PROVIDER_STRIPE, txn, message.price)


class TestCreateMessage:

    def test_requires_login(self, client):
        resp = client.post("/api/messages", json={"title": "x", "recipient_identifier": "y",
                                                  "message_body": "z", "price": "1.00"})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "unauthorized"

    def test_create_text_message(self, owner_client):
        resp = owner_client.post("/api/messages", json={
            "title": "Birthday",
            "recipient_identifier": "friend",
            "message_body": "happy birthday",
            "price": "5.00",
            "max_views": 1,
        })

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["unlocked"] is False
        assert data["active"] is True
        assert data["view_count"] == 0
        assert data["price"] == "5.00"
        assert data["max_views"] == 1
        assert "message_body" not in data
        assert data["image_url"] == f"/api/messages/{data['slug']}/image"

    def test_body_and_file_together_rejected(self, owner_client):
        resp = owner_client.post("/api/messages", json={
            "title": "Both",
            "recipient_identifier": "friend",
            "message_body": "text",
            "file_url": "/objects/uploads/x.png",
            "price": "5.00",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "validation_error"

    def test_no_content_rejected(self, owner_client):
        resp = owner_client.post("/api/messages", json={
            "title": "Empty", "recipient_identifier": "friend", "price": "5.00"})
        assert resp.status_code == 400

    def test_non_positive_price_rejected(self, owner_client):
        resp = owner_client.post("/api/messages", json={
            "title": "Free", "recipient_identifier": "friend", "message_body": "x", "price": "0"})
        assert resp.status_code == 400

    def test_email_recipient_is_notified(self, owner_client):
        with patch("secret_message.services.email_service.EmailService.send_message_notification",
                   return_value=True) as send:
            resp = owner_client.post("/api/messages", json={
                "title": "Hello",
                "recipient_identifier": "friend@example.com",
                "message_body": "hi",
                "price": "3.00",
            })

        assert resp.status_code == 201
        send.assert_called_once()
        kwargs = send.call_args.kwargs
        assert kwargs["recipient_email"] == "friend@example.com"
        assert kwargs["unlock_url"] == f"https://sm.test/m/{resp.get_json()['slug']}"

    def test_email_failure_does_not_fail_create(self, owner_client):
        with patch("secret_message.services.email_service.EmailService.send_message_notification",
                   side_effect=RuntimeError("smtp down")):
            resp = owner_client.post("/api/messages", json={
                "title": "Hello",
                "recipient_identifier": "friend@example.com",
                "message_body": "hi",
                "price": "3.00",
            })
        assert resp.status_code == 201

    def test_preview_failure_does_not_fail_create(self, owner_client):
        with patch("secret_message.services.messages.render_message_image",
                   side_effect=OSError("disk full")):
            resp = owner_client.post("/api/messages", json={
                "title": "Hello", "recipient_identifier": "friend", "message_body": "hi", "price": "3.00"})
        assert resp.status_code == 201
        assert resp.get_json()["image_url"] is None

    def test_list_only_own_messages(self, owner_client, make_user, make_message, owner):
        other = make_user(email="other@example.com")
        make_message(owner, title="mine")
        make_message(other, title="theirs")

        resp = owner_client.get("/api/messages")
        assert resp.status_code == 200
        assert [m["title"] for m in resp.get_json()] == ["mine"]


class TestPublicView:

    def test_locked_view_hides_content(self, client, owner, make_message):
        message = make_message(owner, max_views=3)

        resp = client.get(f"/api/messages/{message.slug}")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["unlocked"] is False
        assert data["views_remaining"] == 3
        assert "message_body" not in data
        assert "image_url" not in data

    def test_unknown_slug(self, client):
        assert client.get("/api/messages/nope").status_code == 404

    def test_inactive_message_is_hidden(self, client, owner, make_message):
        message = make_message(owner, active=False)
        assert client.get(f"/api/messages/{message.slug}").status_code == 404
        assert client.post(f"/api/messages/{message.slug}/view").status_code == 404

    def test_locked_message_cannot_be_viewed(self, client, owner, make_message):
        message = make_message(owner)
        resp = client.post(f"/api/messages/{message.slug}/view")
        assert resp.status_code == 403

    def test_public_get_reports_fired_bomb(self, client, db, owner, make_message):
        message = make_message(owner, delete_at=utcnow() - timedelta(minutes=1))

        resp = client.get(f"/api/messages/{message.slug}")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["disappeared"] is True
        assert data["disappeared_reason"] == "self-destruct timer expired"

        db.session.expire_all()
        assert db.session.get(Message, message.id).disappeared is True

    def test_public_get_does_not_spend_views(self, client, db, owner, make_message):
        message = make_message(owner, max_views=1)
        _unlock(message)
        client.get(f"/api/messages/{message.slug}")
        client.get(f"/api/messages/{message.slug}")

        db.session.expire_all()
        assert db.session.get(Message, message.id).view_count == 0


class TestViewBudget:

    def test_pay_view_then_view_limit(self, client, db, owner, make_message):
        message = make_message(owner, price=Decimal("5.00"), max_views=1)
        _unlock(message)

        first = client.post(f"/api/messages/{message.slug}/view")
        assert first.status_code == 200
        data = first.get_json()
        assert data["message_body"] == "meet me at noon"
        assert data["view_count"] == 1
        assert data["views_remaining"] == 0

        second = client.post(f"/api/messages/{message.slug}/view")
        assert second.status_code == 410
        body = second.get_json()
        assert body["error"] == "disappeared"
        assert body["message"] == "view limit reached"
        assert body["details"] == {"reason": "view limit reached"}

        db.session.expire_all()
        stored = db.session.get(Message, message.id)
        assert stored.view_count == 1
        assert stored.disappeared is True

    def test_unlimited_views(self, client, owner, make_message):
        message = make_message(owner)
        _unlock(message)
        for expected in (1, 2, 3):
            resp = client.post(f"/api/messages/{message.slug}/view")
            assert resp.get_json()["view_count"] == expected
            assert resp.get_json()["views_remaining"] is None

    def test_bomb_fires_before_payment(self, owner, make_message):
        t0 = utcnow()
        message = make_message(owner, delete_at=t0 + timedelta(minutes=5))
        _unlock(message)

        with pytest.raises(Gone) as exc:
            message_service.consume_view(message.slug, now=t0 + timedelta(minutes=5))
        assert exc.value.message == "self-destruct timer expired"

    def test_timer_starts_at_first_view(self, db, owner, make_message):
        t0 = utcnow()
        message = make_message(owner, delete_after_minutes=10)
        _unlock(message)

        viewed, budget = message_service.consume_view(message.slug, now=t0)
        assert budget.first_viewed_at == t0
        assert budget.view_count == 1

        message_service.consume_view(message.slug, now=t0 + timedelta(minutes=9))

        with pytest.raises(Gone) as exc:
            message_service.consume_view(message.slug, now=t0 + timedelta(minutes=10))
        assert exc.value.message == "timed deletion"

        db.session.expire_all()
        stored = db.session.get(Message, message.id)
        assert stored.first_viewed_at == t0
        assert stored.view_count == 2

    def test_disappeared_stays_gone(self, owner, make_message):
        message = make_message(owner, max_views=1, disappeared=True, view_count=1)
        _unlock(message)
        with pytest.raises(Gone):
            message_service.consume_view(message.slug)

    def test_expired_but_paid_message_can_still_be_viewed(self, client, owner, make_message):
        message = make_message(owner, expires_at=utcnow() - timedelta(days=1))
        _unlock(message)
        assert client.post(f"/api/messages/{message.slug}/view").status_code == 200

    def test_locked_message_raises_forbidden(self, owner, make_message):
        message = make_message(owner)
        with pytest.raises(Forbidden):
            message_service.consume_view(message.slug)

    def test_bombed_unpaid_message_is_gone_not_locked(self, owner, make_message):
        message = make_message(owner, delete_at=utcnow() - timedelta(minutes=1))
        with pytest.raises(Gone) as exc:
            message_service.consume_view(message.slug)
        assert exc.value.message == "self-destruct timer expired"

    def test_concurrent_view_cannot_overshoot_cap(self, db, owner, make_message):
        message = make_message(owner, max_views=1)
        _unlock(message)
        slug = message.slug
        real_evaluate = disappearance.evaluate
        rival = []

        def evaluate(budget, now, count_views=True):
            # another viewer spends the only view between our read and our update
            if not rival:
                rival.append("started")
                viewed, _ = message_service.consume_view(slug)
                rival.append(viewed.view_count)
            return real_evaluate(budget, now, count_views=count_views)

        with patch.object(disappearance, "evaluate", side_effect=evaluate):
            with pytest.raises(Gone) as exc:
                message_service.consume_view(slug)

        assert rival == ["started", 1]
        assert exc.value.message == "view limit reached"

        db.session.expire_all()
        stored = db.session.get(Message, message.id)
        assert stored.view_count == 1
        assert stored.disappeared is True

    def test_lost_races_give_up(self, owner, make_message):
        message = make_message(owner)
        _unlock(message)

        fake_result = type("Result", (), {"rowcount": 0})()
        real_execute = message_service.db.session.execute

        def execute(statement, *args, **kwargs):
            if getattr(statement, "is_update", False):
                return fake_result
            return real_execute(statement, *args, **kwargs)

        with patch.object(message_service.db.session, "execute", side_effect=execute):
            with pytest.raises(message_service.Conflict):
                message_service.consume_view(message.slug)


class TestPreviewImage:

    def _create(self, owner_client, **extra):
        payload = {"title": "Card", "recipient_identifier": "friend",
                   "message_body": "TOPSECRET", "price": "5.00"}
        payload.update(extra)
        resp = owner_client.post("/api/messages", json=payload)
        assert resp.status_code == 201
        return resp.get_json()

    def test_preview_file_name_is_not_the_message_id(self, owner_client, db):
        created = self._create(owner_client)
        stored = db.session.get(Message, created["id"])
        assert stored.image_path.endswith(".png")
        assert created["id"] not in stored.image_path
        assert os.path.isfile(image_file_path(stored.image_path))

    def test_owner_sees_own_preview(self, owner_client):
        created = self._create(owner_client)
        resp = owner_client.get(created["image_url"])
        assert resp.status_code == 200
        assert resp.mimetype == "image/png"
        assert resp.headers["Cache-Control"] == "private, no-store"

    def test_locked_preview_is_not_served(self, owner_client, db):
        created = self._create(owner_client)
        stored = db.session.get(Message, created["id"])
        owner_client.post("/api/auth/logout")

        public = owner_client.get(f"/api/messages/{created['slug']}").get_json()
        assert "image_url" not in public
        assert owner_client.get(created["image_url"]).status_code == 403
        assert owner_client.get(f"/generated/{stored.image_path}").status_code == 404

    def test_preview_needs_the_grant_of_a_view(self, owner_client):
        created = self._create(owner_client)
        owner_client.post("/api/auth/logout")
        record_payment(created["id"], PROVIDER_STRIPE, "cs_card", Decimal("5.00"))

        assert owner_client.get(created["image_url"]).status_code == 403

        view = owner_client.post(f"/api/messages/{created['slug']}/view").get_json()
        assert view["image_url"].startswith(created["image_url"] + "?grant=")
        assert owner_client.get(view["image_url"]).status_code == 200
        assert owner_client.get(created["image_url"] + "?grant=guess").status_code == 403

    def test_grant_lapses(self, owner_client):
        created = self._create(owner_client)
        owner_client.post("/api/auth/logout")
        record_payment(created["id"], PROVIDER_STRIPE, "cs_card", Decimal("5.00"))
        view = owner_client.post(f"/api/messages/{created['slug']}/view").get_json()
        grant = view["image_url"].split("grant=", 1)[1]

        later = utcnow() + timedelta(seconds=Config.VIEW_GRANT_SECONDS + 1)
        with pytest.raises(Forbidden):
            message_service.check_image_access(created["slug"], grant, now=later)

    def test_disappeared_preview_is_deleted(self, owner_client, db):
        created = self._create(owner_client, max_views=1)
        path = image_file_path(db.session.get(Message, created["id"]).image_path)
        owner_client.post("/api/auth/logout")
        record_payment(created["id"], PROVIDER_STRIPE, "cs_card", Decimal("5.00"))

        view = owner_client.post(f"/api/messages/{created['slug']}/view").get_json()
        assert owner_client.get(view["image_url"]).status_code == 200

        assert owner_client.post(f"/api/messages/{created['slug']}/view").status_code == 410
        assert owner_client.get(view["image_url"]).status_code == 410
        assert not os.path.exists(path)

        db.session.expire_all()
        stored = db.session.get(Message, created["id"])
        assert stored.image_path is None
        assert stored.access_token is None


class TestOwnerActions:

    def test_toggle_active(self, owner_client, owner, make_message):
        message = make_message(owner)

        resp = owner_client.patch(f"/api/messages/{message.id}/toggle-active", json={})
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "active": False}

        resp = owner_client.patch(f"/api/messages/{message.slug}/toggle-active", json={"active": True})
        assert resp.get_json()["active"] is True

    def test_toggle_someone_elses_message(self, owner_client, make_user, make_message):
        other = make_user(email="other@example.com")
        message = make_message(other)
        resp = owner_client.patch(f"/api/messages/{message.id}/toggle-active", json={})
        assert resp.status_code == 404

    def test_resend_notification(self, owner_client, owner, make_message):
        message = make_message(owner, recipient_identifier="friend@example.com")
        with patch("secret_message.services.email_service.EmailService.send_message_notification",
                   return_value=True) as send:
            resp = owner_client.post(f"/api/messages/{message.id}/resend-notification")
        assert resp.status_code == 200
        assert resp.get_json()["sent"] is True
        send.assert_called_once()

    def test_resend_reports_delivery_failure(self, owner_client, owner, make_message):
        message = make_message(owner, recipient_identifier="friend@example.com")
        resp = owner_client.post(f"/api/messages/{message.id}/resend-notification")
        assert resp.status_code == 502
        assert resp.get_json()["sent"] is False

    def test_resend_refused_for_non_email_recipient(self, owner_client, owner, make_message):
        message = make_message(owner, recipient_identifier="@handle")
        resp = owner_client.post(f"/api/messages/{message.id}/resend-notification")
        assert resp.status_code == 400

    def test_resend_refused_after_bomb(self, owner, make_message):
        t0 = utcnow()
        message = make_message(owner, recipient_identifier="friend@example.com",
                               delete_at=t0 + timedelta(minutes=1))
        with pytest.raises(Gone):
            message_service.resend_notification(owner, message.id, now=t0 + timedelta(minutes=2))

    def test_resend_refused_once_disappeared(self, owner_client, owner, make_message):
        message = make_message(owner, recipient_identifier="friend@example.com", disappeared=True)
        resp = owner_client.post(f"/api/messages/{message.id}/resend-notification")
        assert resp.status_code == 410

    def test_owner_payments(self, owner_client, owner, make_message):
        message = make_message(owner)
        _unlock(message, txn="cs_listed")

        resp = owner_client.get("/api/payments")
        assert resp.status_code == 200
        payments = resp.get_json()
        assert len(payments) == 1
        assert payments[0]["provider_txn_id"] == "cs_listed"
        assert payments[0]["sender_earnings"] == "2.96"
