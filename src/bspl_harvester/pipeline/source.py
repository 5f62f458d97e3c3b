"""First stage: fetch captcha challenges from the portal."""

from itertools import islice
from typing import Sequence

from anyio import BrokenResourceError, ClosedResourceError
from anyio.streams.memory import MemoryObjectSendStream

from ..captcha.challenge import EntityIdentifier, UnsubmittedChallenge
from ..config.logger import logger
from ..connectors.smes.interfaces import IChallengeSite
from ..errors import HarvesterError
from .models import StageStats


class ChallengeSource:
    """Requests one captcha challenge per identifier.

    Requests are issued back to back without delay. The output stream is
    expected to be bounded: when the submitter falls behind, ``send`` blocks
    and so does the next portal request.
    """

    def __init__(self, site: IChallengeSite):
        self.site = site
        self.stats = StageStats()
        self.logger = logger.bind(stage="challenge_source")

    async def run(
        self,
        identifiers: Sequence[EntityIdentifier],
        count: int,
        send: MemoryObjectSendStream[UnsubmittedChallenge],
    ) -> None:
        """Fetch up to ``count`` challenges, one for each leading identifier.

        A failed fetch drops its identifier and does not count as delivered.
        The loop ends after ``count`` attempts or once the receiving side of
        ``send`` is closed.

        Args:
            identifiers: Entities to fetch challenges for, in order.
            count: Maximum number of challenge requests.
            send: Output stream, closed when the loop ends.
        """
        if count < 0:
            raise ValueError("count must not be negative")

        async with send:
            total = min(count, len(identifiers))
            for position, identifier in enumerate(islice(identifiers, count), start=1):
                self.stats.received += 1
                try:
                    challenge = await self.site.get_challenge(identifier)
                except HarvesterError as e:
                    self.stats.dropped += 1
                    self.logger.warning(
                        "challenge_fetch_failed",
                        identifier=identifier,
                        position=position,
                        total=total,
                        error=str(e),
                    )
                    continue

                try:
                    await send.send(challenge)
                except (BrokenResourceError, ClosedResourceError):
                    self.logger.warning("challenge_stream_closed_stopping", identifier=identifier)
                    break
                self.stats.emitted += 1

        self.logger.info("challenge_source_finished", **self.stats.as_dict())
