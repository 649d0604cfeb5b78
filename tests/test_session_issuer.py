"""Session issuer tests — rotation, expiry, revocation and sweeping.

Learn: These run against the service directly (no HTTP) with an
injectable clock, so expiry can be tested without sleeping.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from rescuetrack.auth.credential_store import hash_secret
from rescuetrack.auth.jwt import verify_access_token
from rescuetrack.auth.session_issuer import SessionIssuer
from rescuetrack.db.models import RefreshToken, User
from rescuetrack.errors import TokenExpired, TokenInvalid, Unauthenticated


async def _make_user(db, email="issuer@example.com", active=True) -> User:
    user = User(
        email=email,
        password_hash="x",
        name="Issuer Test",
        role="rescuer",
        is_active=active,
    )
    db.add(user)
    await db.commit()
    return user


async def _token_count(db) -> int:
    return await db.scalar(select(func.count()).select_from(RefreshToken))


def _days_ago(days: int):
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return lambda: moment


@pytest.mark.asyncio
async def test_issue_stores_only_the_hash(db_session):
    user = await _make_user(db_session)
    pair = await SessionIssuer(db_session).issue(user)

    row = (await db_session.execute(select(RefreshToken))).scalars().one()
    assert row.token_hash == hash_secret(pair.refresh_token)
    assert row.token_hash != pair.refresh_token

    claims = verify_access_token(pair.access_token)
    assert claims.user_id == str(user.id)
    assert claims.email == user.email
    assert claims.role == "rescuer"


@pytest.mark.asyncio
async def test_rotate_twice_second_fails(db_session):
    user = await _make_user(db_session)
    issuer = SessionIssuer(db_session)
    pair = await issuer.issue(user)

    rotated = await issuer.rotate(pair.refresh_token)
    assert rotated.refresh_token != pair.refresh_token

    with pytest.raises(TokenInvalid):
        await issuer.rotate(pair.refresh_token)
    assert await _token_count(db_session) == 1


@pytest.mark.asyncio
async def test_concurrent_rotation_has_one_winner(db_session, session_factory):
    user = await _make_user(db_session)
    pair = await SessionIssuer(db_session).issue(user)
    winner = SessionIssuer(db_session)
    results = {}

    async with session_factory() as other_db:
        loser = SessionIssuer(other_db)
        find_by_hash = loser.tokens.find_by_hash

        async def find_then_get_overtaken(token_hash):
            # Both requests have read the row; the other one consumes it first.
            row = await find_by_hash(token_hash)
            results["winner"] = await winner.rotate(pair.refresh_token)
            return row

        loser.tokens.find_by_hash = find_then_get_overtaken
        with pytest.raises(TokenInvalid):
            await loser.rotate(pair.refresh_token)

    rotated = results["winner"]
    assert rotated.refresh_token != pair.refresh_token
    assert await _token_count(db_session) == 1

    # The winner's new secret is the live one
    again = await SessionIssuer(db_session).rotate(rotated.refresh_token)
    assert again.refresh_token != rotated.refresh_token


@pytest.mark.asyncio
async def test_rotate_expired_removes_row(db_session):
    user = await _make_user(db_session)
    stale = await SessionIssuer(db_session, clock=_days_ago(8)).issue(user)
    issuer = SessionIssuer(db_session)

    with pytest.raises(TokenExpired):
        await issuer.rotate(stale.refresh_token)
    assert await _token_count(db_session) == 0

    # Retry finds nothing at all
    with pytest.raises(TokenInvalid):
        await issuer.rotate(stale.refresh_token)


@pytest.mark.asyncio
async def test_token_errors_are_unauthenticated(db_session):
    with pytest.raises(Unauthenticated) as exc_info:
        await SessionIssuer(db_session).rotate("unknown")
    assert exc_info.value.code == "AUTH_TOKEN_INVALID"
    assert exc_info.value.http_status == 401


@pytest.mark.asyncio
async def test_rotate_for_deactivated_user_fails_and_consumes(db_session):
    user = await _make_user(db_session)
    issuer = SessionIssuer(db_session)
    pair = await issuer.issue(user)

    user.is_active = False
    await db_session.commit()

    with pytest.raises(TokenInvalid):
        await issuer.rotate(pair.refresh_token)
    assert await _token_count(db_session) == 0


@pytest.mark.asyncio
async def test_revoke_is_idempotent(db_session):
    user = await _make_user(db_session)
    issuer = SessionIssuer(db_session)
    pair = await issuer.issue(user)

    await issuer.revoke(pair.refresh_token)
    await issuer.revoke(pair.refresh_token)
    assert await _token_count(db_session) == 0


@pytest.mark.asyncio
async def test_sweep_removes_only_expired(db_session):
    user = await _make_user(db_session)
    await SessionIssuer(db_session, clock=_days_ago(10)).issue(user)
    await SessionIssuer(db_session, clock=_days_ago(9)).issue(user)
    fresh = await SessionIssuer(db_session).issue(user)

    removed = await SessionIssuer(db_session).sweep_expired()
    assert removed == 2

    remaining = (await db_session.execute(select(RefreshToken))).scalars().all()
    assert [r.token_hash for r in remaining] == [hash_secret(fresh.refresh_token)]


@pytest.mark.asyncio
async def test_sweep_once_uses_its_own_session(session_factory, db_session, monkeypatch):
    from rescuetrack.services import token_sweeper

    monkeypatch.setattr(token_sweeper, "async_session_factory", session_factory)
    user = await _make_user(db_session)
    await SessionIssuer(db_session, clock=_days_ago(30)).issue(user)

    assert await token_sweeper.sweep_once() == 1
    assert await token_sweeper.sweep_once() == 0
