"""Harvest pipeline orchestration.

Wires the four stages into a linear pipeline:

    ChallengeSource -> ChallengeSubmitter -> AnswerPoller -> PageFetcher

Each stage runs as its own asyncio task and talks to its neighbours only
through anyio memory object streams (one producer, one consumer, FIFO). The
stream behind the challenge source is bounded; its capacity caps how many
unsolved captchas are requested ahead of the OCR service. The other streams
are unbounded unless ``downstream_buffer`` is set.

Errors never reach the caller: failed items are logged and dropped, and the
result stream simply yields fewer results. Use ``missing_identifiers`` to
reconcile.
"""

import asyncio
import math
from typing import Any, Awaitable, Callable, Coroutine, Dict, Iterable, List, Optional, Set

from anyio import create_memory_object_stream
from anyio.streams.memory import MemoryObjectReceiveStream

from ..captcha.challenge import EntityIdentifier
from ..captcha.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from ..captcha.interfaces import IRecognitionService
from ..captcha.solvers import NopechaRecognizer
from ..config.logger import logger
from ..config.settings import HarvestSettings, load_settings
from ..connectors.smes.client import SmesClient
from ..connectors.smes.interfaces import IChallengeSite
from .fetcher import PageFetcher
from .models import FetchResult
from .poller import DEFAULT_DELAY, DEFAULT_MAX_ATTEMPTS, AnswerPoller
from .source import ChallengeSource
from .submitter import ChallengeSubmitter

DEFAULT_CHALLENGE_BUFFER = 8

# Strong references to running stage tasks; the event loop only keeps weak ones
_running_tasks: Set[asyncio.Task] = set()


def _spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    task = asyncio.create_task(coro, name=name)
    _running_tasks.add(task)
    task.add_done_callback(_running_tasks.discard)
    return task


class HarvestPipeline:
    """Captcha-solving page harvest pipeline.

    One instance runs once: call ``start`` to get the live result stream,
    optionally ``wait`` for every stage to finish.
    """

    def __init__(
        self,
        site: IChallengeSite,
        recognizer: IRecognitionService,
        challenge_buffer: int = DEFAULT_CHALLENGE_BUFFER,
        downstream_buffer: Optional[int] = None,
        poll_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        poll_delay: float = DEFAULT_DELAY,
        emit_failures: bool = False,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        owns_clients: bool = False,
    ):
        """Initialize the pipeline.

        Args:
            site: Portal client providing challenges and pages.
            recognizer: OCR recognition service client.
            challenge_buffer: Capacity of the stream between the challenge
                source and the submitter. Must be positive.
            downstream_buffer: Capacity of the later streams, None for
                unbounded.
            poll_max_attempts: Maximum answer polls per challenge.
            poll_delay: Seconds between answer polls.
            emit_failures: Emit failed results for page fetch errors.
            breaker: Breaker shared by the submitter and the poller.
                Defaults to a quota latch.
            sleep: Coroutine function the poller waits with.
            owns_clients: Close ``site`` and ``recognizer`` once the run ends.
        """
        if challenge_buffer <= 0:
            raise ValueError("challenge_buffer must be positive")
        if downstream_buffer is not None and downstream_buffer <= 0:
            raise ValueError("downstream_buffer must be positive or None")

        self.site = site
        self.recognizer = recognizer
        self.challenge_buffer = challenge_buffer
        self.downstream_buffer = downstream_buffer
        self.owns_clients = owns_clients
        self.breaker = breaker or CircuitBreaker(
            name="recognition_quota", config=CircuitBreakerConfig.quota_latch()
        )

        self.source = ChallengeSource(site)
        self.submitter = ChallengeSubmitter(recognizer, self.breaker)
        self.poller = AnswerPoller(
            recognizer, self.breaker, max_attempts=poll_max_attempts, delay=poll_delay, sleep=sleep
        )
        self.fetcher = PageFetcher(site, emit_failures=emit_failures)

        self._tasks: List[asyncio.Task] = []
        self._supervisor: Optional[asyncio.Task] = None
        self.logger = logger.bind(component="harvest_pipeline")

    @classmethod
    def from_settings(cls, settings: HarvestSettings) -> "HarvestPipeline":
        """Build a pipeline with real clients configured from settings.

        The clients are closed when the run ends.
        """
        settings.validate()
        site = SmesClient(
            base_url=settings.site_base_url,
            page_path=settings.page_path,
            timeout=settings.request_timeout,
        )
        recognizer = NopechaRecognizer(
            api_key=settings.ocr_api_key,
            base_url=settings.ocr_base_url,
            timeout=settings.request_timeout,
        )
        return cls(
            site,
            recognizer,
            challenge_buffer=settings.challenge_buffer,
            downstream_buffer=settings.downstream_buffer,
            poll_max_attempts=settings.poll_max_attempts,
            poll_delay=settings.poll_delay,
            emit_failures=settings.emit_failures,
            owns_clients=True,
        )

    @property
    def started(self) -> bool:
        return self._supervisor is not None

    async def start(
        self,
        identifiers: Iterable[EntityIdentifier],
        count: Optional[int] = None,
    ) -> MemoryObjectReceiveStream[FetchResult]:
        """Start the stages and return the result stream right away.

        Args:
            identifiers: Entities to fetch, in order.
            count: Number of challenges to request. Defaults to the number of
                identifiers; identifiers past ``count`` are left unused.

        Returns:
            Receive stream yielding FetchResult objects as pages arrive. It
            ends when the last stage finishes. Closing it early stops the
            pipeline from the back.
        """
        if self.started:
            raise RuntimeError("HarvestPipeline can only be started once")

        identifiers = list(identifiers)
        if count is None:
            count = len(identifiers)
        if count < 0:
            raise ValueError("count must not be negative")

        downstream = math.inf if self.downstream_buffer is None else self.downstream_buffer
        unsubmitted_send, unsubmitted_receive = create_memory_object_stream(self.challenge_buffer)
        submitted_send, submitted_receive = create_memory_object_stream(downstream)
        solved_send, solved_receive = create_memory_object_stream(downstream)
        result_send, result_receive = create_memory_object_stream(downstream)

        self.logger.info(
            "harvest_started",
            identifiers=len(identifiers),
            count=count,
            challenge_buffer=self.challenge_buffer,
            downstream_buffer=self.downstream_buffer,
        )

        self._tasks = [
            _spawn(self.source.run(identifiers, count, unsubmitted_send), "challenge_source"),
            _spawn(self.submitter.run(unsubmitted_receive, submitted_send), "challenge_submitter"),
            _spawn(self.poller.run(submitted_receive, solved_send), "answer_poller"),
            _spawn(self.fetcher.run(solved_receive, result_send), "page_fetcher"),
        ]
        self._supervisor = _spawn(self._supervise(), "harvest_supervisor")
        return result_receive

    async def _supervise(self) -> None:
        outcomes = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, outcome in zip(self._tasks, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                self.logger.warning("stage_cancelled", stage=task.get_name())
            elif isinstance(outcome, BaseException):
                self.logger.error("stage_crashed", stage=task.get_name(), exc_info=outcome)

        if self.owns_clients:
            await self.site.close()
            await self.recognizer.close()

        self.logger.info("harvest_finished", **self.get_status())

    async def wait(self) -> None:
        """Wait until every stage has finished and clients are closed."""
        if self._supervisor is None:
            raise RuntimeError("HarvestPipeline has not been started")
        await self._supervisor

    def get_status(self) -> Dict[str, Any]:
        """Per-stage counters and the state of the quota breaker."""
        return {
            "challenge_source": self.source.stats.as_dict(),
            "challenge_submitter": self.submitter.stats.as_dict(),
            "answer_poller": dict(self.poller.stats.as_dict(), polls=self.poller.polls),
            "page_fetcher": self.fetcher.stats.as_dict(),
            "breaker": self.breaker.get_status(),
        }


async def harvest_pages(
    identifiers: Iterable[EntityIdentifier],
    settings: Optional[HarvestSettings] = None,
    count: Optional[int] = None,
) -> MemoryObjectReceiveStream[FetchResult]:
    """Start a harvest with clients configured from settings.

    The pipeline runs on its own and closes its clients once every stage has
    finished. Callers that need to ``wait()`` for that or read ``get_status()``
    build the pipeline with ``HarvestPipeline.from_settings`` and call
    ``start`` themselves.

    Args:
        identifiers: Entities to fetch, in order.
        settings: Settings to use. Loaded from the environment when omitted.
        count: Number of challenges to request, defaults to all identifiers.

    Returns:
        The live result stream.
    """
    settings = settings or load_settings()
    pipeline = HarvestPipeline.from_settings(settings)
    return await pipeline.start(identifiers, count)
