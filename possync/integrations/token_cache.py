"""
Token Cache - access tokens shared by every client built for the same credentials
"""
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Login callable: returns (access_token, expires_in_seconds)
LoginFn = Callable[[], Awaitable[Tuple[str, float]]]


@dataclass(frozen=True)
class ToastCredentials:
    client_id: str
    client_secret: str
    restaurant_guid: str
    api_hostname: str = "https://ws-api.toasttab.com"

    @property
    def cache_key(self) -> Tuple[str, str]:
        return (self.client_id, self.restaurant_guid)


@dataclass
class CachedToken:
    access_token: str
    expires_at: float  # epoch seconds


class TokenCache:
    """
    Tokens keyed by (client id, restaurant guid).
    A token is reused while it has more than `refresh_buffer_seconds` left.
    """

    def __init__(self, clock: Callable[[], float] = time.time, refresh_buffer_seconds: float = 300):
        self._clock = clock
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self._entries: Dict[Tuple[str, str], CachedToken] = {}

    def peek(self, credentials: ToastCredentials) -> Optional[CachedToken]:
        """Return the cached entry if it is still usable"""
        entry = self._entries.get(credentials.cache_key)
        if entry and entry.expires_at > self._clock() + self.refresh_buffer_seconds:
            return entry
        return None

    async def get_token(self, credentials: ToastCredentials, login: LoginFn) -> str:
        entry = self.peek(credentials)
        if entry:
            return entry.access_token

        access_token, expires_in = await login()
        self._entries[credentials.cache_key] = CachedToken(
            access_token=access_token,
            expires_at=self._clock() + float(expires_in),
        )
        logger.info(
            f"Cached Toast token for restaurant {credentials.restaurant_guid} "
            f"(expires in {float(expires_in) / 3600:.1f}h)"
        )
        return access_token

    def invalidate(self, credentials: ToastCredentials) -> None:
        self._entries.pop(credentials.cache_key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
