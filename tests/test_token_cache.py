import pytest

from possync.integrations.token_cache import TokenCache, ToastCredentials

CREDS = ToastCredentials(client_id="client-1", client_secret="secret", restaurant_guid="rest-1")


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingLogin:
    def __init__(self, expires_in: float = 3600):
        self.calls = 0
        self.expires_in = expires_in

    async def __call__(self):
        self.calls += 1
        return f"token-{self.calls}", self.expires_in


@pytest.mark.asyncio
async def test_token_reused_until_refresh_buffer():
    clock = FakeClock()
    cache = TokenCache(clock=clock, refresh_buffer_seconds=300)
    login = CountingLogin(expires_in=3600)

    assert await cache.get_token(CREDS, login) == "token-1"
    clock.now += 3299
    assert await cache.get_token(CREDS, login) == "token-1"
    assert login.calls == 1


@pytest.mark.asyncio
async def test_token_refreshed_inside_buffer():
    clock = FakeClock()
    cache = TokenCache(clock=clock, refresh_buffer_seconds=300)
    login = CountingLogin(expires_in=3600)

    await cache.get_token(CREDS, login)
    clock.now += 3300  # exactly 300s left is no longer enough
    assert await cache.get_token(CREDS, login) == "token-2"
    assert login.calls == 2
    assert cache.peek(CREDS).expires_at == clock.now + 3600


@pytest.mark.asyncio
async def test_tokens_keyed_by_client_and_restaurant():
    cache = TokenCache(clock=FakeClock())
    login = CountingLogin()
    other_restaurant = ToastCredentials(client_id="client-1", client_secret="secret", restaurant_guid="rest-2")
    other_secret = ToastCredentials(client_id="client-1", client_secret="rotated", restaurant_guid="rest-1")

    await cache.get_token(CREDS, login)
    await cache.get_token(other_restaurant, login)
    assert await cache.get_token(other_secret, login) == "token-1"
    assert login.calls == 2
    assert len(cache) == 2


@pytest.mark.asyncio
async def test_invalidate_and_clear():
    cache = TokenCache(clock=FakeClock())
    login = CountingLogin()

    await cache.get_token(CREDS, login)
    cache.invalidate(CREDS)
    assert cache.peek(CREDS) is None
    assert await cache.get_token(CREDS, login) == "token-2"

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_failed_login_stores_nothing():
    cache = TokenCache(clock=FakeClock())

    async def failing_login():
        raise RuntimeError("denied")

    with pytest.raises(RuntimeError):
        await cache.get_token(CREDS, failing_login)
    assert len(cache) == 0
