"""Last stage: fetch entity pages with solved challenges."""

from anyio import BrokenResourceError, ClosedResourceError
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from ..captcha.challenge import SolvedChallenge
from ..config.logger import logger
from ..connectors.smes.interfaces import IChallengeSite
from ..errors import HarvesterError
from .models import FetchResult, StageStats


class PageFetcher:
    """Fetches the page of each solved challenge's entity.

    The entity travels with its challenge, so a challenge dropped upstream
    takes its own identifier with it and the remaining pairs stay correct.
    """

    def __init__(self, site: IChallengeSite, emit_failures: bool = False):
        """Initialize the fetcher.

        Args:
            site: Portal client used for the page requests.
            emit_failures: Emit a failed FetchResult for page fetch errors
                instead of only logging them.
        """
        self.site = site
        self.emit_failures = emit_failures
        self.stats = StageStats()
        self.logger = logger.bind(stage="page_fetcher")

    async def run(
        self,
        receive: MemoryObjectReceiveStream[SolvedChallenge],
        send: MemoryObjectSendStream[FetchResult],
    ) -> None:
        """Consume ``receive`` until it is exhausted or ``send`` loses its
        receiver. Both streams are closed on exit."""
        async with receive, send:
            async for challenge in receive:
                self.stats.received += 1
                identifier = challenge.identifier

                try:
                    content = await self.site.get_page(challenge)
                except HarvesterError as e:
                    self.stats.dropped += 1
                    self.logger.warning(
                        "page_fetch_failed",
                        identifier=identifier,
                        answer=challenge.answer,
                        error=str(e),
                    )
                    if not self.emit_failures:
                        continue
                    result = FetchResult.failure(identifier, str(e))
                else:
                    result = FetchResult.success(identifier, content)
                    self.logger.info(
                        "page_fetched", identifier=identifier, size=len(content)
                    )

                try:
                    await send.send(result)
                except (BrokenResourceError, ClosedResourceError):
                    self.logger.warning("result_stream_closed_stopping", identifier=identifier)
                    break
                self.stats.emitted += 1

        self.logger.info("page_fetcher_finished", **self.stats.as_dict())
