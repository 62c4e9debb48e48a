"""Authenticated calls to the managed remote execution endpoint.

Each attempt is bounded by ``RetryPolicy.timeout_s``. Timeouts and gateway
statuses 502/503/504 are retried with linear backoff; every other failure is
raised straight away.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Union

from .errors import AuthError, ConfigurationError, GatewayError, ProviderAPIError, RemixError, TransportError
from .logging_config import get_logger
from .transport import HttpResponse, HttpTransport, UrllibTransport, describe_body, json_body
from .utils import new_request_id

logger = get_logger("gateway")

CredentialSource = Union[str, Callable[[], Union[str, None, Awaitable[Union[str, None]]]], None]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behaviour for one logical gateway call."""

    max_retries: int = 2
    base_delay_s: float = 1.0
    timeout_s: float = 60.0
    retryable_statuses: frozenset[int] = frozenset({502, 503, 504})

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1

    def delay_for(self, attempt: int) -> float:
        # linear: 1x, 2x, ... the base delay after attempt 1, 2, ...
        return self.base_delay_s * attempt


class RemoteGateway:
    def __init__(
        self,
        base_url: str | None,
        credentials: CredentialSource = None,
        *,
        anon_key: str | None = None,
        transport: HttpTransport | None = None,
        policy: RetryPolicy | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self.base_url = (base_url or "").strip().rstrip("/") or None
        self.credentials = credentials
        self.anon_key = anon_key or None
        self.transport = transport or UrllibTransport()
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    def is_configured(self) -> bool:
        return self.base_url is not None

    def url_for(self, endpoint_name: str) -> str:
        return f"{self.base_url}/{endpoint_name.strip('/')}"

    async def call(self, endpoint_name: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        if not self.is_configured():
            raise ConfigurationError("Remote gateway URL is not configured.", {"endpoint": endpoint_name})
        token = await self._bearer_token()
        url = self.url_for(endpoint_name)
        request_id = new_request_id()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-Request-ID": request_id,
        }
        body = json_body(payload)
        policy = self.policy
        last_error = TransportError(f"Gateway call '{endpoint_name}' was not attempted", retryable=False)

        for attempt in range(1, policy.max_attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self.transport.post(url, body, headers, policy.timeout_s),
                    timeout=policy.timeout_s,
                )
            except asyncio.TimeoutError:
                last_error = TransportError(
                    f"Gateway call '{endpoint_name}' timed out after {policy.timeout_s:g}s",
                    timed_out=True,
                    details={"attempt": attempt},
                )
            except TransportError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
            else:
                if response.ok:
                    return _parse_success(endpoint_name, response)
                detail = describe_body(response)
                if response.status not in policy.retryable_statuses:
                    raise ProviderAPIError(
                        f"Gateway call '{endpoint_name}' failed ({response.status}): {detail}",
                        status=response.status,
                        provider=endpoint_name,
                        details={"request_id": request_id},
                    )
                last_error = TransportError(
                    f"Gateway call '{endpoint_name}' returned {response.status}: {detail}",
                    status=response.status,
                    details={"attempt": attempt},
                )

            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Gateway %s attempt %d/%d failed (%s); retrying in %.1fs",
                    endpoint_name,
                    attempt,
                    policy.max_attempts,
                    last_error.message,
                    delay,
                )
                await self._sleep(delay)

        logger.error("Gateway %s gave up after %d attempts", endpoint_name, policy.max_attempts)
        raise GatewayError(
            f"Gateway call '{endpoint_name}' failed after {policy.max_attempts} attempts: {last_error.message}",
            attempts=policy.max_attempts,
            last_error=last_error,
        ) from last_error

    async def _bearer_token(self) -> str:
        token: str | None = None
        source = self.credentials
        if isinstance(source, str):
            token = source
        elif source is not None:
            try:
                value = source()
                if inspect.isawaitable(value):
                    value = await value
            except RemixError:
                raise
            except Exception as exc:
                raise AuthError("Failed to obtain a session credential.", {"error": str(exc)}) from exc
            if value is not None and not isinstance(value, str):
                raise AuthError(
                    "Session credential must be a string token.",
                    {"type": type(value).__name__},
                )
            token = value
        token = (token or "").strip() or self.anon_key
        if not token:
            raise AuthError("No session credential or anonymous key available for the gateway.")
        return token


def _parse_success(endpoint_name: str, response: HttpResponse) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderAPIError(
            f"Gateway call '{endpoint_name}' returned a non-JSON body.",
            status=response.status,
            provider=endpoint_name,
            details={"body": response.text()[:200]},
        ) from exc
    if not isinstance(data, dict):
        raise ProviderAPIError(
            f"Gateway call '{endpoint_name}' returned {type(data).__name__}, expected an object.",
            status=response.status,
            provider=endpoint_name,
        )
    return data
