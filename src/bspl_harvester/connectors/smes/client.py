"""HTTP client for the SMES venture company portal.

The portal serves a balance sheet / income statement page per company, but
only to a session that first fetched a captcha image and then presents its
answer. Each captcha response opens a new server session through Set-Cookie.
"""

from typing import Optional

import aiohttp

from ...captcha.challenge import EntityIdentifier, SolvedChallenge, UnsubmittedChallenge
from ...config.logger import logger
from ...config.settings import DEFAULT_PAGE_PATH, DEFAULT_SITE_BASE_URL
from ...errors import MalformedResponseError
from ..http import create_session, fetch
from .headers import captcha_headers, page_headers
from .interfaces import IChallengeSite


class SmesClient(IChallengeSite):
    """Captcha and page client for the SMES portal."""

    CAPTCHA_PATH = "/venturein/pbntc/captchaImg.do"

    # Form fields of the page request
    IDENTIFIER_FIELD = "vniaSn"
    ANSWER_FIELD = "captcha"

    def __init__(
        self,
        base_url: str = DEFAULT_SITE_BASE_URL,
        page_path: str = DEFAULT_PAGE_PATH,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the portal client.

        Args:
            base_url: Portal root, overridable for tests.
            page_path: Path of the endpoint serving entity pages.
            timeout: Total timeout per request in seconds.
            session: Optional session. It must not keep a cookie jar, since
                cookies are sent per challenge. When omitted the client
                creates one lazily and closes it in ``close``.
        """
        self.base_url = base_url.rstrip("/")
        self.page_path = page_path
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(client="smes")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = create_session(self.timeout)
        return self._session

    async def get_challenge(self, identifier: EntityIdentifier) -> UnsubmittedChallenge:
        """Fetch a captcha image together with the session it opens."""
        response = await fetch(
            self._get_session(),
            "GET",
            f"{self.base_url}{self.CAPTCHA_PATH}",
            "SMES captcha request",
            headers=captcha_headers(self.base_url),
        )
        response.raise_for_status("SMES captcha request returned an unsuccessful status code")

        if not response.body:
            raise MalformedResponseError("SMES captcha response has an empty body")
        # The cookies are what binds the future answer to this image
        if not response.cookies:
            raise MalformedResponseError("SMES captcha response carried no session cookies")

        self.logger.debug(
            "challenge_received",
            identifier=identifier,
            image_size=len(response.body),
            cookies=sorted(response.cookies),
        )
        return UnsubmittedChallenge(
            identifier=identifier, image=response.body, cookies=response.cookies
        )

    async def get_page(self, challenge: SolvedChallenge) -> str:
        """Fetch the entity page with the challenge's session and answer."""
        form = {
            self.IDENTIFIER_FIELD: str(challenge.identifier),
            self.ANSWER_FIELD: challenge.answer,
        }
        response = await fetch(
            self._get_session(),
            "POST",
            f"{self.base_url}{self.page_path}",
            "SMES page request",
            data=form,
            headers=page_headers(self.base_url, challenge.cookie_header()),
        )
        response.raise_for_status("SMES page request returned an unsuccessful status code")

        content = response.text()
        if not content.strip():
            raise MalformedResponseError(
                f"SMES returned an empty page for {challenge.identifier}"
            )
        return content

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
