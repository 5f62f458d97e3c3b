"""Interfaces for the captcha recognition system.

This module defines the contract every OCR recognition backend follows. The
pipeline only talks to the recognition service through this interface, which
keeps the stages testable with in-memory fakes.
"""

from abc import ABC, abstractmethod

from .challenge import SolvedChallenge, SubmittedChallenge, UnsubmittedChallenge


class IRecognitionService(ABC):
    """Interface for OCR recognition services.

    Recognition is asynchronous on the service side: an image is submitted,
    the service hands back a tracking token, and the answer is fetched later
    with that token.
    """

    @abstractmethod
    async def submit(self, challenge: UnsubmittedChallenge) -> SubmittedChallenge:
        """Upload the challenge image for recognition.

        Args:
            challenge: A challenge that has not been submitted yet.

        Returns:
            The challenge in the submitted state, carrying the tracking token.

        Raises:
            RecognitionError: If the service reports a structured error.
            UnsuccessfulResponseError: On a non-2xx answer without error body.
            MalformedResponseError: If the token is missing from the response.
            RequestError: On transport failures.
        """
        pass

    @abstractmethod
    async def get_answer(self, challenge: SubmittedChallenge) -> SolvedChallenge:
        """Fetch the answer for a submitted challenge, once.

        Args:
            challenge: A challenge carrying a tracking token.

        Returns:
            The challenge in the solved state.

        Raises:
            IncompleteJobError: If the answer is not ready yet.
            OutOfCreditError: If the account has no credit left.
            EmptyAnswerError: If the service returned a blank answer.
            RecognitionError, UnsuccessfulResponseError, RequestError:
                For any other failure.
        """
        pass

    async def close(self) -> None:
        """Release network resources held by the service client."""
        pass
