"""Shared aiohttp plumbing for the service clients."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Mapping, Optional

import aiohttp

from ..errors import RequestError, UnsuccessfulResponseError


@dataclass
class ParsedResponse:
    """Status, headers and body of a fully read response."""
    status: int
    headers: Mapping[str, str]
    body: bytes
    cookies: Mapping[str, str]
    charset: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        """Decode the body with the charset of the response, UTF-8 if unknown."""
        try:
            return self.body.decode(self.charset or "utf-8", errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")

    def raise_for_status(self, message: str) -> "ParsedResponse":
        """Raise UnsuccessfulResponseError unless the status is 2xx."""
        if not self.ok:
            raise UnsuccessfulResponseError(message, self.status, self.text())
        return self


def create_session(timeout: float) -> aiohttp.ClientSession:
    """Create a client session that never stores cookies.

    Every challenge owns its own portal session, so cookies are sent
    explicitly per request and must not leak between challenges through a
    shared jar.
    """
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout),
        cookie_jar=aiohttp.DummyCookieJar(),
    )


@asynccontextmanager
async def translate_errors(action: str) -> AsyncIterator[None]:
    """Turn aiohttp transport failures into RequestError."""
    try:
        yield
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise RequestError(f"{action} failed: {e!r}") from e


async def fetch(session: aiohttp.ClientSession, method: str, url: str, action: str, **kwargs) -> ParsedResponse:
    """Send a request and read the whole response body.

    Args:
        session: Session to send the request with.
        method: HTTP method.
        url: Absolute URL.
        action: Short description used in error messages.
        **kwargs: Passed through to ``session.request``.

    Raises:
        RequestError: On connection errors and timeouts.
    """
    async with translate_errors(action):
        async with session.request(method, url, **kwargs) as response:
            body = await response.read()
            return ParsedResponse(
                status=response.status,
                headers=dict(response.headers),
                body=body,
                cookies={name: morsel.value for name, morsel in response.cookies.items()},
                charset=response.charset,
            )
