"""Interfaces for the captcha-gated portal.

The portal serves two things the pipeline needs: fresh captcha challenges,
each bound to a new server session, and entity pages, which are only served
to a session that presents the right captcha answer.
"""

from abc import ABC, abstractmethod

from ...captcha.challenge import EntityIdentifier, SolvedChallenge, UnsubmittedChallenge


class IChallengeSite(ABC):
    """Interface for portals that gate entity pages behind an image captcha."""

    @abstractmethod
    async def get_challenge(self, identifier: EntityIdentifier) -> UnsubmittedChallenge:
        """Request a fresh captcha for the given entity.

        Args:
            identifier: Entity the challenge will be used for.

        Returns:
            An unsubmitted challenge holding the image and session cookies.

        Raises:
            HarvesterError: If the captcha could not be fetched.
        """
        pass

    @abstractmethod
    async def get_page(self, challenge: SolvedChallenge) -> str:
        """Fetch the entity page unlocked by a solved challenge.

        Args:
            challenge: Solved challenge; its cookies identify the session and
                its answer unlocks the page of ``challenge.identifier``.

        Returns:
            The page content.

        Raises:
            HarvesterError: If the page could not be fetched.
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the site client."""
        pass
