"""
Toast POS API Client
API Documentation: https://doc.toasttab.com/
Authentication uses the OAuth2 client-credentials flow.
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Tuple
import httpx
import logging

from .base import BasePOSClient
from .errors import AuthenticationError, UpstreamFetchError, RateLimited
from .token_cache import TokenCache, ToastCredentials

logger = logging.getLogger(__name__)


def format_toast_date(value: datetime) -> str:
    """ISO-8601 in UTC with milliseconds, e.g. 2024-01-15T18:30:00.000+0000 (naive values are taken as UTC)"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}+0000"


class ToastClient(BasePOSClient):
    """
    Toast orders API client
    """
    PLATFORM_NAME = "toast"

    # API Endpoints
    LOGIN_PATH = "/authentication/v1/authentication/login"
    ORDERS_BULK_PATH = "/orders/v2/ordersBulk"
    ORDER_PATH = "/orders/v2/orders/{guid}"

    RESTAURANT_HEADER = "Toast-Restaurant-External-ID"
    USER_ACCESS_TYPE = "TOAST_MACHINE_CLIENT"
    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        credentials: ToastCredentials,
        token_cache: Optional[TokenCache] = None,
        page_size: int = MAX_PAGE_SIZE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.token_cache = token_cache if token_cache is not None else TokenCache()
        self.page_size = min(page_size, self.MAX_PAGE_SIZE)
        self.timeout = timeout
        self.base_url = credentials.api_hostname.rstrip("/")
        self._transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    def _build_headers(self, access_token: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
            self.RESTAURANT_HEADER: self.credentials.restaurant_guid,
        }

    # ========== Authentication ==========

    async def _login(self) -> Tuple[str, float]:
        """POST client credentials; returns (access_token, expires_in seconds)"""
        body = {
            "clientId": self.credentials.client_id,
            "clientSecret": self.credentials.client_secret,
            "userAccessType": self.USER_ACCESS_TYPE,
        }

        try:
            async with self._http() as client:
                response = await client.post(self.LOGIN_PATH, json=body)
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Toast authentication request failed: {e}") from e

        self._log_api_call("POST", self.LOGIN_PATH, response.status_code)

        if response.status_code == 429:
            raise RateLimited(retry_after=response.headers.get("Retry-After"))
        if not response.is_success:
            raise AuthenticationError(
                f"Toast authentication failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise AuthenticationError(
                "Toast authentication failed: unexpected response body",
                status_code=response.status_code,
                body=response.text,
            )

        token = data.get("token") or {}
        if data.get("status") != "SUCCESS" or not token.get("accessToken"):
            raise AuthenticationError(
                f"Toast authentication failed: {data.get('status')}",
                status_code=response.status_code,
                body=response.text,
            )

        expires_in = token.get("expiresIn")
        if expires_in is None:
            expires_in = 3600
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError):
            raise AuthenticationError(
                f"Toast authentication failed: invalid expiresIn {expires_in!r}",
                status_code=response.status_code,
                body=response.text,
            )

        return token["accessToken"], expires_in

    async def authenticate(self) -> str:
        """Access token from the shared cache, logging in on miss or near expiry"""
        return await self.token_cache.get_token(self.credentials, self._login)

    # ========== Orders ==========

    async def _get(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Authenticated GET; raises on anything but 2xx"""
        access_token = await self.authenticate()

        try:
            response = await client.get(path, params=params, headers=self._build_headers(access_token))
        except httpx.HTTPError as e:
            raise UpstreamFetchError(f"Toast request {path} failed: {e}") from e

        self._log_api_call("GET", path, response.status_code)

        if response.status_code == 429:
            raise RateLimited(retry_after=response.headers.get("Retry-After"))
        if response.status_code == 401:
            # Revoked or rotated credentials; force a fresh login next time
            self.token_cache.invalidate(self.credentials)
        if not response.is_success:
            raise UpstreamFetchError(
                f"Toast orders fetch failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamFetchError(
                f"Toast returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def get_orders(self, start_date: datetime, end_date: datetime) -> List[Dict[str, Any]]:
        """
        Get all orders between start_date and end_date
        API: /orders/v2/ordersBulk (1-based pages, pageSize <= 100)

        Stops at the first page that has no rel="next" link or holds fewer
        than page_size orders. Any failed page aborts the whole fetch.
        """
        orders: List[Dict[str, Any]] = []
        page = 1
        start_str = format_toast_date(start_date)
        end_str = format_toast_date(end_date)

        async with self._http() as client:
            while True:
                params = {
                    "startDate": start_str,
                    "endDate": end_str,
                    "pageSize": self.page_size,
                    "page": page,
                }
                response = await self._get(client, self.ORDERS_BULK_PATH, params=params)
                batch = self._json(response)

                if not isinstance(batch, list):
                    raise UpstreamFetchError(
                        f"Toast ordersBulk page {page} is not a JSON array",
                        status_code=response.status_code,
                        body=response.text,
                    )

                orders.extend(batch)

                has_next = "next" in response.links
                if not has_next or len(batch) != self.page_size:
                    break
                page += 1

        logger.info(
            f"[toast] Fetched {len(orders)} orders in {page} page(s) "
            f"for restaurant {self.credentials.restaurant_guid} ({start_str} -> {end_str})"
        )
        return orders

    async def get_order(self, order_guid: str) -> Dict[str, Any]:
        """
        Get a single order
        API: /orders/v2/orders/{guid}
        """
        async with self._http() as client:
            response = await self._get(client, self.ORDER_PATH.format(guid=order_guid))
        data = self._json(response)
        if not isinstance(data, dict):
            raise UpstreamFetchError(f"Toast order {order_guid} is not a JSON object", status_code=response.status_code)
        return data
