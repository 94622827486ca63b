from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

from stockledger import security
from stockledger.scripts.issue_dev_token import build_token


def test_email_claim_is_the_actor_identity():
    token = security.create_access_token(data={"sub": "42", "email": "alice@example.com"})

    actor = security.get_current_actor(token)
    assert actor.identity == "alice@example.com"
    assert security.get_actor_identity(actor) == "alice@example.com"
    assert not actor.is_admin


def test_sub_is_used_when_email_is_missing():
    token = security.create_access_token(data={"sub": "bob@example.com"})
    assert security.decode_actor(token).identity == "bob@example.com"


@pytest.mark.parametrize(
    "token",
    [
        "garbage",
        security.create_access_token(data={"role": "admin"}),
        security.create_access_token(data={"sub": "x@example.com"}, expires_delta=timedelta(minutes=-5)),
    ],
)
def test_unusable_tokens_are_rejected(token):
    assert security.decode_actor(token) is None
    with pytest.raises(HTTPException) as excinfo:
        security.get_current_actor(token)
    assert excinfo.value.status_code == 401


def test_require_admin_accepts_admin_role_or_flag():
    by_role = security.decode_actor(security.create_access_token(data={"sub": "a@x.io", "role": "ADMIN"}))
    by_flag = security.decode_actor(security.create_access_token(data={"sub": "b@x.io", "is_admin": True}))
    clerk = security.decode_actor(security.create_access_token(data={"sub": "c@x.io", "role": "clerk"}))

    assert security.require_admin(by_role) is by_role
    assert security.require_admin(by_flag) is by_flag
    with pytest.raises(HTTPException) as excinfo:
        security.require_admin(clerk)
    assert excinfo.value.status_code == 403


def test_admin_roles_come_from_configuration(monkeypatch):
    monkeypatch.setattr(security, "ADMIN_ROLES", {"stores_manager"})
    actor = security.decode_actor(security.create_access_token(data={"sub": "m@x.io", "role": "stores_manager"}))
    assert actor.is_admin


def test_dev_token_round_trips():
    actor = security.decode_actor(build_token("dev@example.com", role="admin", minutes=5))
    assert actor.identity == "dev@example.com"
    assert actor.is_admin
