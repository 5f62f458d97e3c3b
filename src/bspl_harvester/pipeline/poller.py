"""Third stage: poll the recognition service for answers.

Recognition takes a moment on the service side, so the first polls for a
challenge usually come back as "incomplete job". Those are retried with a
constant delay up to a maximum number of attempts. Every other failure drops
the challenge, except quota exhaustion: once the account is out of credit no
request for any challenge can succeed, so the poller trips the shared breaker
and stops.
"""

import asyncio
from typing import Awaitable, Callable

from anyio import BrokenResourceError, ClosedResourceError
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..captcha.challenge import SolvedChallenge, SubmittedChallenge
from ..captcha.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from ..captcha.interfaces import IRecognitionService
from ..config.logger import logger
from ..errors import HarvesterError, IncompleteJobError, OutOfCreditError
from .models import StageStats

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_DELAY = 1.0


class AnswerPoller:
    """Turns submitted challenges into solved ones."""

    def __init__(
        self,
        recognizer: IRecognitionService,
        breaker: CircuitBreaker,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay: float = DEFAULT_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the poller.

        Args:
            recognizer: Recognition service to poll.
            breaker: Breaker shared with the submitter. Every poll goes
                through it, and quota exhaustion opens it.
            max_attempts: Maximum number of polls per challenge.
            delay: Seconds between two polls of the same challenge.
            sleep: Coroutine function used to wait between polls.
        """
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if delay < 0:
            raise ValueError("delay must not be negative")

        self.recognizer = recognizer
        self.breaker = breaker
        self.max_attempts = max_attempts
        self.delay = delay
        self._sleep = sleep
        self.stats = StageStats()
        self.polls = 0
        self.logger = logger.bind(stage="answer_poller")

    def _log_retry(self, retry_state: RetryCallState) -> None:
        self.logger.debug(
            "answer_not_ready_retrying",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            delay=self.delay,
        )

    async def _poll_once(self, challenge: SubmittedChallenge) -> SolvedChallenge:
        self.polls += 1
        return await self.breaker.call(self.recognizer.get_answer, challenge)

    async def poll(self, challenge: SubmittedChallenge) -> SolvedChallenge:
        """Poll until the answer is ready or the attempts run out.

        Raises:
            IncompleteJobError: If the answer was still not ready after the
                last attempt.
            OutOfCreditError: On quota exhaustion (never retried).
            CircuitBreakerOpen: If the breaker is already open.
            HarvesterError: For any other failure (never retried).
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(IncompleteJobError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        solved = None
        async for attempt in retrying:
            with attempt:
                solved = await self._poll_once(challenge)
        return solved

    async def run(
        self,
        receive: MemoryObjectReceiveStream[SubmittedChallenge],
        send: MemoryObjectSendStream[SolvedChallenge],
    ) -> None:
        """Consume ``receive`` until it is exhausted, the quota runs out, or
        ``send`` loses its receiver. Both streams are closed on exit."""
        async with receive, send:
            async for challenge in receive:
                self.stats.received += 1
                log = self.logger.bind(identifier=challenge.identifier, token=challenge.token)

                try:
                    solved = await self.poll(challenge)
                except OutOfCreditError as e:
                    self.stats.dropped += 1
                    log.error("quota_exhausted_stopping", error=str(e))
                    break
                except CircuitBreakerOpen:
                    self.stats.dropped += 1
                    log.warning("recognition_circuit_open_stopping")
                    break
                except IncompleteJobError as e:
                    self.stats.dropped += 1
                    log.warning(
                        "answer_retries_exhausted",
                        attempts=self.max_attempts,
                        error=str(e),
                    )
                    continue
                except HarvesterError as e:
                    self.stats.dropped += 1
                    log.warning("answer_poll_failed", error=str(e))
                    continue

                try:
                    await send.send(solved)
                except (BrokenResourceError, ClosedResourceError):
                    log.warning("solved_stream_closed_stopping")
                    break
                self.stats.emitted += 1

        self.logger.info("answer_poller_finished", polls=self.polls, **self.stats.as_dict())
