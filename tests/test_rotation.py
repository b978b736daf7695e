"""Login / refresh / logout protocol and the session façade."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import jwt
import pytest

from conftest import PASSWORD, TEST_SECRET, cheap_verifier
from models.refresh_token import LOGOUT, REPLACED_BY_LOGIN, REPLACED_BY_TOKEN, REUSED
from models.stores import RefreshTokenStore, UserDirectory
from services.session import SessionService
from utils.exceptions import InvalidAccessToken, InvalidCredentials, InvalidRefreshToken


def _record(storage, token):
    with storage.transaction() as session:
        return RefreshTokenStore(session).find_by_token(token)


def _is_active(storage, token):
    return _record(storage, token).is_active()


# --- authenticate -------------------------------------------------------------

def test_authenticate_returns_tokens_and_user(service, user, codec):
    tokens = service.authenticate("a@b.com", PASSWORD)
    assert tokens.user.id == user.id
    assert tokens.token_type == "bearer"
    assert codec.validate(tokens.access_token)
    assert codec.extract_user_id(tokens.access_token) == user.id
    assert tokens.expires_at == codec.decode(tokens.access_token).expires_at


def test_authenticate_updates_last_login(storage, service, user, clock):
    assert user.last_login_at is None
    service.authenticate("a@b.com", PASSWORD)
    with storage.transaction() as session:
        assert UserDirectory(session).find_by_id(user.id).last_login_at == clock.now


def test_wrong_password_and_unknown_email_fail_identically(service, user):
    with pytest.raises(InvalidCredentials) as wrong_password:
        service.authenticate("a@b.com", "wrong-password")
    with pytest.raises(InvalidCredentials) as unknown_email:
        service.authenticate("nobody@b.com", PASSWORD)
    assert type(wrong_password.value) is type(unknown_email.value)
    assert str(wrong_password.value) == str(unknown_email.value)


def test_inactive_user_cannot_log_in(storage, service, user):
    with storage.transaction() as session:
        UserDirectory(session).find_by_id(user.id).is_active = False
    with pytest.raises(InvalidCredentials):
        service.authenticate("a@b.com", PASSWORD)


def test_stale_hash_is_upgraded_on_login(storage, user, codec, coordinator):
    stronger = cheap_verifier(time_cost=2)
    upgraded = SessionService(storage, stronger, codec, coordinator)
    old_hash = user.password_hash

    upgraded.authenticate("a@b.com", PASSWORD)

    with storage.transaction() as session:
        new_hash = UserDirectory(session).find_by_id(user.id).password_hash
    assert new_hash != old_hash
    assert not stronger.needs_rehash(new_hash)
    assert stronger.verify(PASSWORD, new_hash)


def test_register_uses_premium_default(service, user):
    assert user.is_premium is True
    assert user.password_hash != PASSWORD


# --- login revokes the previous chain -------------------------------------------

def test_second_login_revokes_first_refresh_token(storage, service, user):
    first = service.authenticate("a@b.com", PASSWORD)
    second = service.authenticate("a@b.com", PASSWORD)

    old = _record(storage, first.refresh_token)
    assert old.revoked_at is not None
    assert old.reason_revoked == REPLACED_BY_LOGIN
    assert old.replaced_by_token is None
    assert _is_active(storage, second.refresh_token)

    with storage.transaction() as session:
        active = RefreshTokenStore(session).find_active_by_user(user.id)
    assert [r.token for r in active] == [second.refresh_token]


def test_old_access_token_survives_new_login(service, user, codec):
    first = service.authenticate("a@b.com", PASSWORD)
    service.authenticate("a@b.com", PASSWORD)
    assert codec.validate(first.access_token)


# --- refresh ----------------------------------------------------------------------

def test_refresh_rotates_token(storage, service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    rotated = service.refresh(login.refresh_token)

    assert rotated.refresh_token != login.refresh_token
    assert rotated.user.id == user.id
    old = _record(storage, login.refresh_token)
    assert old.reason_revoked == REPLACED_BY_TOKEN
    assert old.replaced_by_token == rotated.refresh_token
    assert _is_active(storage, rotated.refresh_token)


def test_refresh_token_is_single_use(service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    service.refresh(login.refresh_token)
    with pytest.raises(InvalidRefreshToken):
        service.refresh(login.refresh_token)


def test_unknown_refresh_token_is_rejected(service, user):
    with pytest.raises(InvalidRefreshToken):
        service.refresh("does-not-exist")


def test_expired_refresh_token_is_rejected(storage, service, user, clock, settings):
    login = service.authenticate("a@b.com", PASSWORD)
    clock.advance(seconds=settings.refresh_ttl.total_seconds())
    with pytest.raises(InvalidRefreshToken):
        service.refresh(login.refresh_token)
    assert _record(storage, login.refresh_token).revoked_at is None


def test_refresh_rejected_for_deactivated_user(storage, service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    with storage.transaction() as session:
        UserDirectory(session).find_by_id(user.id).is_active = False
    with pytest.raises(InvalidRefreshToken):
        service.refresh(login.refresh_token)


@pytest.mark.parametrize("revoked_by", ["rotation", "logout", "login"])
def test_revoked_refresh_token_is_rejected(service, user, revoked_by):
    login = service.authenticate("a@b.com", PASSWORD)
    if revoked_by == "rotation":
        service.refresh(login.refresh_token)
    elif revoked_by == "logout":
        service.revoke(login.access_token, login.refresh_token)
    else:
        service.authenticate("a@b.com", PASSWORD)
    with pytest.raises(InvalidRefreshToken):
        service.refresh(login.refresh_token)


def test_reuse_revokes_downstream_chain(storage, service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    second = service.refresh(login.refresh_token)
    third = service.refresh(second.refresh_token)

    with pytest.raises(InvalidRefreshToken):
        service.refresh(login.refresh_token)

    latest = _record(storage, third.refresh_token)
    assert latest.revoked_at is not None
    assert latest.reason_revoked == REUSED
    # rotated links keep their original reason
    assert _record(storage, second.refresh_token).reason_revoked == REPLACED_BY_TOKEN
    with pytest.raises(InvalidRefreshToken):
        service.refresh(third.refresh_token)


def test_reuse_does_not_touch_other_chains(storage, service, user):
    first = service.authenticate("a@b.com", PASSWORD)
    second = service.authenticate("a@b.com", PASSWORD)
    with pytest.raises(InvalidRefreshToken):
        service.refresh(first.refresh_token)
    assert _is_active(storage, second.refresh_token)


def test_concurrent_refresh_has_exactly_one_winner(storage, service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    storage.close()

    def attempt(_):
        try:
            return service.refresh(login.refresh_token)
        except InvalidRefreshToken as exc:
            return exc
        finally:
            storage.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(attempt, range(2)))

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidRefreshToken)]
    assert len(winners) == 1
    assert len(losers) == 1
    # the loser presented a revoked token, so the winner's chain is burned too
    assert _record(storage, winners[0].refresh_token).reason_revoked == REUSED


def test_concurrent_logins_leave_one_active_token(storage, service, user):
    storage.close()
    start = threading.Barrier(2)

    def attempt(_):
        start.wait()
        try:
            return service.authenticate("a@b.com", PASSWORD)
        finally:
            storage.close()

    for _ in range(3):
        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(attempt, range(2)))
        assert all(r.refresh_token for r in results)

        with storage.transaction() as session:
            active = RefreshTokenStore(session).find_active_by_user(user.id)
        storage.close()
        assert len(active) == 1
        assert active[0].token in {r.refresh_token for r in results}


# --- logout -----------------------------------------------------------------------

def test_logout_revokes_refresh_token(storage, service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    service.revoke(login.access_token, login.refresh_token)
    record = _record(storage, login.refresh_token)
    assert record.reason_revoked == LOGOUT
    assert record.replaced_by_token is None


def test_logout_accepts_expired_access_token(storage, service, user, settings):
    login = service.authenticate("a@b.com", PASSWORD)
    now = int(time.time())
    expired = jwt.encode(
        {
            "sub": str(user.id),
            "email": "a@b.com",
            "name": "Ada",
            "is_premium": True,
            "jti": "expired",
            "iat": now - 7200,
            "exp": now - 3600,
            "iss": settings.issuer,
            "aud": settings.audience,
        },
        TEST_SECRET,
        algorithm="HS256",
    )
    service.revoke(expired, login.refresh_token)
    assert _record(storage, login.refresh_token).reason_revoked == LOGOUT


@pytest.mark.parametrize("access_token", [None, "", "garbage", "a.b.c"])
def test_logout_with_bad_access_token_is_a_no_op(storage, service, user, access_token):
    login = service.authenticate("a@b.com", PASSWORD)
    service.revoke(access_token, login.refresh_token)
    assert _is_active(storage, login.refresh_token)


def test_logout_cannot_revoke_someone_elses_token(storage, service, user):
    service.register("Bob", "bob@b.com", "secret1")
    mine = service.authenticate("a@b.com", PASSWORD)
    theirs = service.authenticate("bob@b.com", "secret1")
    service.revoke(mine.access_token, theirs.refresh_token)
    assert _is_active(storage, theirs.refresh_token)


def test_logout_is_idempotent(service, user, coordinator):
    login = service.authenticate("a@b.com", PASSWORD)
    assert coordinator.logout(login.access_token, login.refresh_token) is True
    assert coordinator.logout(login.access_token, login.refresh_token) is False
    assert coordinator.logout(login.access_token, None) is False


# --- validate ---------------------------------------------------------------------

def test_validate_returns_user_id(service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    assert service.validate(login.access_token) == user.id
    assert service.validate(login.access_token, login.refresh_token) == user.id


def test_validate_rejects_revoked_refresh_token(service, user):
    login = service.authenticate("a@b.com", PASSWORD)
    service.revoke(login.access_token, login.refresh_token)
    with pytest.raises(InvalidAccessToken):
        service.validate(login.access_token, login.refresh_token)


def test_validate_rejects_bad_access_token(service):
    with pytest.raises(InvalidAccessToken):
        service.validate("garbage")


# --- end to end -------------------------------------------------------------------

def test_register_login_rotate_scenario(storage, service):
    service.register("Ada", "a@b.com", "secret1")

    r1 = service.authenticate("a@b.com", "secret1").refresh_token
    r2 = service.authenticate("a@b.com", "secret1").refresh_token
    assert not _is_active(storage, r1)

    with pytest.raises(InvalidRefreshToken):
        service.refresh(r1)

    r3 = service.refresh(r2).refresh_token
    assert r3 not in (r1, r2)
    assert not _is_active(storage, r2)
    assert _is_active(storage, r3)
