"""Captcha challenge lifecycle.

A challenge is one captcha image plus the session cookies the portal issued
with it. It moves through three states, each represented by its own type:

    UnsubmittedChallenge --submit(token)--> SubmittedChallenge --solve(answer)--> SolvedChallenge

Only the transition methods may build the later states. Building a
SubmittedChallenge or SolvedChallenge directly raises InvalidTransitionError,
so a solved challenge always went through submission first.

Each challenge also carries the identifier of the entity it was requested
for. Dropping a challenge at any stage therefore drops exactly that entity.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, NewType

from ..errors import InvalidTransitionError

EntityIdentifier = NewType("EntityIdentifier", str)

# Only the transition methods hold this token
_TRANSITION = object()


class ChallengeState(Enum):
    """Lifecycle state of a challenge."""
    UNSUBMITTED = "unsubmitted"  # Fetched from the portal
    SUBMITTED = "submitted"      # Uploaded to the OCR service
    SOLVED = "solved"            # Answer known, usable for a page fetch


def _freeze_cookies(cookies: Mapping[str, str]) -> Mapping[str, str]:
    if isinstance(cookies, MappingProxyType):
        return cookies
    return MappingProxyType(dict(cookies))


@dataclass(frozen=True, eq=False)
class _Challenge:
    identifier: EntityIdentifier
    image: bytes = field(repr=False)
    cookies: Mapping[str, str]

    state = None

    def _carry(self) -> dict:
        """Fields kept unchanged across a transition."""
        return {
            "identifier": self.identifier,
            "image": self.image,
            "cookies": self.cookies,
        }

    def cookie_header(self) -> str:
        """Render the session cookies as a Cookie request header value."""
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


@dataclass(frozen=True, eq=False)
class UnsubmittedChallenge(_Challenge):
    """A challenge fetched from the portal, not yet sent for recognition."""

    state = ChallengeState.UNSUBMITTED

    def __post_init__(self):
        if not self.image:
            raise ValueError("challenge image is empty")
        object.__setattr__(self, "cookies", _freeze_cookies(self.cookies))

    def submit(self, token: str) -> "SubmittedChallenge":
        """Record the OCR tracking token.

        Args:
            token: Tracking token returned by the recognition service.

        Returns:
            The same challenge in the submitted state.
        """
        if not token or not token.strip():
            raise ValueError("tracking token is blank")
        return SubmittedChallenge(**self._carry(), token=token, _via=_TRANSITION)


@dataclass(frozen=True, eq=False)
class SubmittedChallenge(_Challenge):
    """A challenge waiting for its answer from the OCR service."""

    token: str = ""
    _via: Any = field(default=None, repr=False)

    state = ChallengeState.SUBMITTED

    def __post_init__(self):
        if self._via is not _TRANSITION:
            raise InvalidTransitionError(
                "SubmittedChallenge can only be built by UnsubmittedChallenge.submit()"
            )

    def solve(self, answer: str) -> "SolvedChallenge":
        """Record the captcha answer.

        Raises:
            ValueError: If the answer is blank.
        """
        if not answer or not answer.strip():
            raise ValueError("captcha answer is blank")
        return SolvedChallenge(
            **self._carry(), token=self.token, answer=answer, _via=_TRANSITION
        )


@dataclass(frozen=True, eq=False)
class SolvedChallenge(_Challenge):
    """A challenge with a known answer. The only state usable for page fetches."""

    token: str = ""
    answer: str = ""
    _via: Any = field(default=None, repr=False)

    state = ChallengeState.SOLVED

    def __post_init__(self):
        if self._via is not _TRANSITION:
            raise InvalidTransitionError(
                "SolvedChallenge can only be built by SubmittedChallenge.solve()"
            )
