"""
Tests for the OAuth state tracker.
"""

import pytest

from lms.errors import ExpiredStateError, InvalidStateError
from lms.services.oauth_state import OAuthStateTracker


@pytest.fixture
def tracker(fake_redis, identity, clock) -> OAuthStateTracker:
    return OAuthStateTracker(fake_redis, identity, clock=clock)


@pytest.mark.asyncio
async def test_start_returns_state_and_provider_url(tracker):
    start = await tracker.start()

    assert len(start.state) >= 32
    assert start.scope == "openid email"
    assert start.auth_url.endswith(f"state={start.state}")


@pytest.mark.asyncio
async def test_states_are_unique(tracker):
    states = {(await tracker.start()).state for _ in range(20)}
    assert len(states) == 20


@pytest.mark.asyncio
async def test_state_is_single_use(tracker):
    start = await tracker.start()

    await tracker.consume(start.state)

    with pytest.raises(InvalidStateError) as exc:
        await tracker.consume(start.state)
    assert exc.value.code == "invalid_state"


@pytest.mark.asyncio
async def test_unknown_state(tracker):
    with pytest.raises(InvalidStateError):
        await tracker.consume("never-issued")


@pytest.mark.asyncio
async def test_state_valid_for_exactly_ten_minutes(tracker, clock):
    """Test that a state is accepted at 10 minutes and rejected just after."""
    on_time = await tracker.start()
    late = await tracker.start()

    clock.advance(600)
    issued_at = await tracker.consume(on_time.state)
    assert (clock.now - issued_at).total_seconds() == 600

    clock.advance(1)
    with pytest.raises(ExpiredStateError) as exc:
        await tracker.consume(late.state)
    assert exc.value.code == "expired_state"


@pytest.mark.asyncio
async def test_expired_state_is_still_consumed(tracker, clock):
    start = await tracker.start()
    clock.advance(601)

    with pytest.raises(ExpiredStateError):
        await tracker.consume(start.state)
    with pytest.raises(InvalidStateError):
        await tracker.consume(start.state)


@pytest.mark.asyncio
async def test_redis_ttl_outlives_window(tracker, fake_redis):
    start = await tracker.start()

    ttl = await fake_redis.ttl(f"oauth_state:{start.state}")
    assert ttl > 600 + 50 * 60


@pytest.mark.asyncio
async def test_state_redeemed_well_after_window_is_expired(tracker, clock):
    """Test that a login finished 45 minutes late reports expired_state, not invalid_state."""
    start = await tracker.start()
    clock.advance(45 * 60)

    with pytest.raises(ExpiredStateError) as exc:
        await tracker.consume(start.state)
    assert exc.value.code == "expired_state"
