"""Second stage: upload challenges to the recognition service."""

from anyio import BrokenResourceError, ClosedResourceError
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..captcha.challenge import SubmittedChallenge, UnsubmittedChallenge
from ..captcha.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from ..captcha.interfaces import IRecognitionService
from ..config.logger import logger
from ..errors import HarvesterError, OutOfCreditError
from .models import StageStats


class ChallengeSubmitter:
    """Submits every unsubmitted challenge and forwards it with its token.

    Any submit failure, quota exhaustion included, only drops the current
    challenge. The shared breaker is checked before each request, so once
    the answer poller has seen the quota run out no more images are sent.
    """

    def __init__(self, recognizer: IRecognitionService, breaker: CircuitBreaker):
        self.recognizer = recognizer
        self.breaker = breaker
        self.stats = StageStats()
        self.logger = logger.bind(stage="challenge_submitter")

    async def run(
        self,
        receive: MemoryObjectReceiveStream[UnsubmittedChallenge],
        send: MemoryObjectSendStream[SubmittedChallenge],
    ) -> None:
        """Consume ``receive`` until it is exhausted, the breaker opens, or
        ``send`` loses its receiver. Both streams are closed on exit."""
        async with receive, send:
            async for challenge in receive:
                self.stats.received += 1

                try:
                    await self.breaker.guard()
                except CircuitBreakerOpen:
                    self.stats.dropped += 1
                    self.logger.warning(
                        "recognition_circuit_open_stopping",
                        identifier=challenge.identifier,
                        breaker=self.breaker.get_status(),
                    )
                    break

                try:
                    submitted = await self.recognizer.submit(challenge)
                except OutOfCreditError as e:
                    self.stats.dropped += 1
                    self.logger.warning(
                        "challenge_submit_out_of_credit",
                        identifier=challenge.identifier,
                        error=str(e),
                    )
                    continue
                except HarvesterError as e:
                    self.stats.dropped += 1
                    self.logger.warning(
                        "challenge_submit_failed",
                        identifier=challenge.identifier,
                        error=str(e),
                    )
                    continue

                try:
                    await send.send(submitted)
                except (BrokenResourceError, ClosedResourceError):
                    self.logger.warning(
                        "submitted_stream_closed_stopping", identifier=challenge.identifier
                    )
                    break
                self.stats.emitted += 1

        self.logger.info("challenge_submitter_finished", **self.stats.as_dict())
