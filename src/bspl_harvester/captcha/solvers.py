"""Recognition service implementations.

NopechaRecognizer talks to the NopeCHA text-captcha recognition API:
    - submit: POST / with the base64 image, returns a job token
    - answer: GET /?key=...&id=<token>, returns the answer or an error code
      (14 while the job is still running, 16 when the account is out of credit)

ref: https://developers.nopecha.com/recognition/textcaptcha/
"""

import base64
import json
from typing import Any, Optional

import aiohttp

from ..config.logger import logger
from ..connectors.http import ParsedResponse, create_session, fetch
from ..errors import (
    EmptyAnswerError,
    MalformedResponseError,
    RecognitionError,
)
from .challenge import SolvedChallenge, SubmittedChallenge, UnsubmittedChallenge
from .interfaces import IRecognitionService


class NopechaRecognizer(IRecognitionService):
    """Recognition service backed by the NopeCHA API."""

    CAPTCHA_TYPE = "textcaptcha"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.nopecha.com",
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the NopeCHA client.

        Args:
            api_key: NopeCHA API key.
            base_url: API root, overridable for tests.
            timeout: Total timeout per request in seconds.
            session: Optional shared session. When omitted the client creates
                one lazily and closes it in ``close``.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.logger = logger.bind(client="nopecha")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = create_session(self.timeout)
        return self._session

    def _decode(self, response: ParsedResponse, action: str) -> Any:
        """Decode a JSON body, raising the error it describes if any.

        NopeCHA reports structured errors with non-2xx statuses, so the body
        is inspected before the status code.
        """
        try:
            payload = json.loads(response.body)
        except ValueError:
            response.raise_for_status(f"NopeCHA {action} returned an unsuccessful status code")
            raise MalformedResponseError(f"NopeCHA {action} returned a non-JSON body")

        if isinstance(payload, dict) and "error" in payload:
            raise RecognitionError.from_body(payload)

        response.raise_for_status(f"NopeCHA {action} returned an unsuccessful status code")
        return payload

    async def submit(self, challenge: UnsubmittedChallenge) -> SubmittedChallenge:
        """Submit a captcha image and get back a challenge with its token."""
        payload = {
            "key": self.api_key,
            "type": self.CAPTCHA_TYPE,
            "image_data": [base64.b64encode(challenge.image).decode("ascii")],
        }
        response = await fetch(
            self._get_session(), "POST", f"{self.base_url}/", "NopeCHA submit", json=payload
        )
        body = self._decode(response, "submit")

        token = body.get("data") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise MalformedResponseError(f"NopeCHA submit returned no token: {body!r}")

        self.logger.debug("challenge_submitted", identifier=challenge.identifier, token=token)
        return challenge.submit(token)

    async def get_answer(self, challenge: SubmittedChallenge) -> SolvedChallenge:
        """Poll once for the answer of a submitted challenge."""
        params = {"key": self.api_key, "id": challenge.token}
        response = await fetch(
            self._get_session(), "GET", f"{self.base_url}/", "NopeCHA answer", params=params
        )
        body = self._decode(response, "answer")

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list) or not data:
            raise MalformedResponseError(f"NopeCHA answer has unexpected shape: {body!r}")

        answer = data[0]
        if not isinstance(answer, str) or not answer.strip():
            raise EmptyAnswerError("NopeCHA returned an empty answer")

        return challenge.solve(answer.strip())

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
