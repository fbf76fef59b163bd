"""
Credential adapters for token-authenticated storage resources.

The caller supplies an async callable that returns a bearer token. TokenProvider
bounds each request with a timeout and turns every failure into an
AuthenticationError; ProviderTokenCredential exposes it to the Azure SDK as an
AsyncTokenCredential for resources discovered without a SAS token.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable

from azure.core.credentials import AccessToken
from loguru import logger

from common.exceptions import AuthenticationError

# Tokens carry no expiry we can read; the SDK policy refreshes 5 minutes
# before the reported expiry, so this yields a refresh roughly every 5 minutes.
ASSUMED_TOKEN_LIFETIME_SECONDS = 600


class TokenProvider:
    """
    Requests bearer tokens from a caller-supplied coroutine function.

    Args:
        fetch_token: Coroutine function returning a token string
        timeout_seconds: Upper bound on a single request

    Example:
        ```python
        provider = TokenProvider(my_auth.get_storage_token, timeout_seconds=30)
        token = await provider.get_token()
        ```
    """

    def __init__(
        self,
        fetch_token: Callable[[], Awaitable[str]],
        timeout_seconds: float = 30.0,
    ) -> None:
        self._fetch_token = fetch_token
        self.timeout_seconds = timeout_seconds

    async def get_token(self) -> str:
        """
        Request a token and await it.

        Raises:
            AuthenticationError: If the request fails, times out, is cancelled
                by the provider or returns an empty token.
            asyncio.CancelledError: If the awaiting task itself is cancelled.
        """
        try:
            token = await asyncio.wait_for(self._fetch_token(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Token request timed out after {self.timeout_seconds}s")
            raise AuthenticationError("Token request timed out", internal_error=e) from e
        except asyncio.CancelledError as e:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.warning("Token request was cancelled by the credential provider")
            raise AuthenticationError("Token request was cancelled", internal_error=e) from e
        except AuthenticationError:
            raise
        except Exception as e:
            logger.warning(f"Token request failed: {e}")
            raise AuthenticationError(f"Token request failed: {e}", internal_error=e) from e

        if not token:
            raise AuthenticationError("Credential provider returned an empty token")
        return token


class ProviderTokenCredential:
    """AsyncTokenCredential backed by a TokenProvider."""

    def __init__(self, provider: TokenProvider) -> None:
        self._provider = provider

    async def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        token = await self._provider.get_token()
        return AccessToken(token, int(time.time()) + ASSUMED_TOKEN_LIFETIME_SECONDS)

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "ProviderTokenCredential":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
