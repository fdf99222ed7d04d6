from __future__ import annotations

import hmac
from datetime import timedelta
from hashlib import sha256

import pytest

from gatepass.core import config as app_config
from gatepass.core.errors import InvalidRefreshToken
from gatepass.core.security import hash_refresh_token, hash_reset_token, utcnow
from gatepass.models.refresh_token import RefreshToken
from gatepass.services import sessions
from gatepass.services.sessions import ClientMeta


def _active_count(db_session, user_id: int) -> int:
    return (
        db_session.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .count()
    )


def test_issue_stores_only_the_hash(db_session, generator):
    issued = sessions.issue(db_session, generator.id, ClientMeta(ip="10.0.0.1", user_agent="ua"))

    rt = db_session.query(RefreshToken).one()
    assert rt.token_hash == hash_refresh_token(issued.raw_token)
    assert rt.token_hash != issued.raw_token
    assert rt.ip == "10.0.0.1"
    assert rt.revoked_at is None
    assert len(issued.raw_token) >= 43  # >= 32 bytes of entropy, url-safe


def test_hash_is_keyed_by_refresh_secret(monkeypatch):
    before = hash_refresh_token("same-raw-value")
    monkeypatch.setattr(app_config.settings, "REFRESH_TOKEN_SECRET", "a-different-secret")
    assert hash_refresh_token("same-raw-value") != before


def test_hashes_are_sha256_hex(monkeypatch):
    monkeypatch.setattr(app_config.settings, "REFRESH_TOKEN_SECRET", "k")
    expected = hmac.new(b"k", b"raw", sha256).hexdigest()
    assert hash_refresh_token("raw") == expected
    assert hash_reset_token("raw") == sha256(b"raw").hexdigest()


def test_redeem_rotates_and_links_chain(db_session, generator):
    first = sessions.issue(db_session, generator.id)
    redemption = sessions.redeem(db_session, first.raw_token)

    assert redemption.raw_token != first.raw_token
    assert redemption.user.id == generator.id
    assert redemption.claims.user_id == generator.id
    assert redemption.claims.roles == ["GENERATOR"]

    old = db_session.query(RefreshToken).filter(RefreshToken.id == first.record.id).one()
    db_session.refresh(old)
    assert old.revoked_at is not None
    assert old.replaced_by_id == redemption.record.id
    assert _active_count(db_session, generator.id) == 1


def test_redeem_unknown_token_fails(db_session):
    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, "not-a-token")
    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, None)


def test_redeem_expired_token_fails(db_session, generator):
    issued = sessions.issue(db_session, generator.id)
    issued.record.expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()

    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, issued.raw_token)


def test_redeem_inactive_user_fails(db_session, generator):
    issued = sessions.issue(db_session, generator.id)
    generator.is_active = False
    db_session.commit()

    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, issued.raw_token)


def test_reuse_detection_revokes_all_sessions(db_session, generator):
    other_device = sessions.issue(db_session, generator.id)
    first = sessions.issue(db_session, generator.id)
    sessions.redeem(db_session, first.raw_token)
    assert _active_count(db_session, generator.id) == 2

    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, first.raw_token)

    assert _active_count(db_session, generator.id) == 0
    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, other_device.raw_token)


def test_reuse_detection_can_be_limited_to_the_token(db_session, generator, monkeypatch):
    monkeypatch.setattr(app_config.settings, "REFRESH_REUSE_REVOKES_ALL", False)
    other_device = sessions.issue(db_session, generator.id)
    first = sessions.issue(db_session, generator.id)
    sessions.redeem(db_session, first.raw_token)

    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, first.raw_token)

    assert sessions.redeem(db_session, other_device.raw_token).raw_token


def test_logged_out_token_is_not_treated_as_reuse(db_session, generator):
    other_device = sessions.issue(db_session, generator.id)
    first = sessions.issue(db_session, generator.id)
    assert sessions.revoke(db_session, first.raw_token) is True
    assert sessions.revoke(db_session, first.raw_token) is False

    with pytest.raises(InvalidRefreshToken):
        sessions.redeem(db_session, first.raw_token)

    # A plain logout has no replacement, so other sessions survive.
    assert _active_count(db_session, generator.id) == 1
    assert sessions.redeem(db_session, other_device.raw_token).raw_token


def test_revoke_all_for_user_only_touches_that_user(db_session, generator, scanner):
    sessions.issue(db_session, generator.id)
    sessions.issue(db_session, generator.id)
    sessions.issue(db_session, scanner.id)

    assert sessions.revoke_all_for_user(db_session, generator.id) == 2
    db_session.commit()
    assert _active_count(db_session, generator.id) == 0
    assert _active_count(db_session, scanner.id) == 1


def test_purge_expired_keeps_recent_rows(db_session, generator):
    old = sessions.issue(db_session, generator.id)
    recent = sessions.issue(db_session, generator.id)
    old.record.expires_at = utcnow() - timedelta(days=45)
    recent.record.expires_at = utcnow() - timedelta(days=2)
    db_session.commit()

    assert sessions.purge_expired(db_session, older_than=timedelta(days=30)) == 1
    remaining = [rt.id for rt in db_session.query(RefreshToken).all()]
    assert remaining == [recent.record.id]


def test_claims_come_from_live_user_row(db_session, generator):
    from gatepass.services import credentials
    from gatepass.core.roles import Role

    issued = sessions.issue(db_session, generator.id)
    credentials.add_role(db_session, generator, Role.SCANNER)
    db_session.commit()

    redemption = sessions.redeem(db_session, issued.raw_token)
    assert redemption.claims.roles == ["GENERATOR", "SCANNER"]
    assert redemption.claims.token_version == 1
