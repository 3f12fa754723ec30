import logging
import smtplib
from datetime import timedelta

import pytest

import database
from database import utc_now
from main import app, get_mailer
from models import PasswordResetToken


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, recipient, subject, body):
        if self.fail:
            raise smtplib.SMTPException("relay refused")
        self.sent.append((recipient, subject, body))


@pytest.fixture
def mailer():
    fake = FakeMailer()
    app.dependency_overrides[get_mailer] = lambda: fake
    return fake


def stored_tokens():
    with database.SessionLocal() as db:
        return [t.token for t in db.query(PasswordResetToken).order_by(PasswordResetToken.created_at)]


def login(client, password):
    return client.post("/auth/login", json={"email": "ana@example.com", "password": password})


def test_token_resets_password_exactly_once(client, make_user, mailer):
    make_user()

    resp = client.post("/auth/password-recovery", json={"email": "ana@example.com"})
    assert resp.status_code == 200

    [token] = stored_tokens()
    recipient, _, body = mailer.sent[0]
    assert recipient == "ana@example.com"
    assert token in body

    first = client.post("/auth/reset-password", json={"token": token, "new_password": "newpass1"})
    again = client.post("/auth/reset-password", json={"token": token, "new_password": "other12"})

    assert first.status_code == 200
    assert again.status_code == 400
    assert stored_tokens() == []
    assert login(client, "newpass1").status_code == 200


def test_expired_token_is_rejected_and_removed(client, make_user, mailer):
    make_user()
    client.post("/auth/password-recovery", json={"email": "ana@example.com"})
    [token] = stored_tokens()
    with database.SessionLocal() as db:
        reset = db.query(PasswordResetToken).filter_by(token=token).one()
        # minted an hour and a minute ago
        reset.expires_at = utc_now() - timedelta(minutes=1)
        db.commit()

    resp = client.post("/auth/reset-password", json={"token": token, "new_password": "newpass1"})

    assert resp.status_code == 400
    assert stored_tokens() == []
    assert login(client, "secret1").status_code == 200


def test_unknown_token_is_rejected(client):
    resp = client.post("/auth/reset-password", json={"token": "nope", "new_password": "newpass1"})
    assert resp.status_code == 400


def test_recovery_for_unknown_email(client, mailer):
    assert client.post("/auth/password-recovery", json={"email": "nadie@example.com"}).status_code == 404
    assert mailer.sent == []


def test_earlier_tokens_stay_valid(client, make_user, mailer):
    make_user()
    client.post("/auth/password-recovery", json={"email": "ana@example.com"})
    client.post("/auth/password-recovery", json={"email": "ana@example.com"})

    first, second = stored_tokens()

    assert client.post("/auth/reset-password", json={"token": first, "new_password": "newpass1"}).status_code == 200
    assert client.post("/auth/reset-password", json={"token": second, "new_password": "newpass2"}).status_code == 200


def test_token_is_logged_without_mail_relay(client, make_user, caplog):
    make_user()

    with caplog.at_level(logging.WARNING, logger="accounts"):
        resp = client.post("/auth/password-recovery", json={"email": "ana@example.com"})

    assert resp.status_code == 200
    [token] = stored_tokens()
    assert token in caplog.text


def test_token_is_logged_when_delivery_fails(client, make_user, caplog):
    make_user()
    app.dependency_overrides[get_mailer] = lambda: FakeMailer(fail=True)

    with caplog.at_level(logging.WARNING, logger="accounts"):
        resp = client.post("/auth/password-recovery", json={"email": "ana@example.com"})

    assert resp.status_code == 200
    [token] = stored_tokens()
    assert token in caplog.text
