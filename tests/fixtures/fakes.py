"""In-memory stand-ins for the portal and the recognition service.

Both fakes record every call in order in a shared ``events`` list so tests
can check what happened, and in which order, across stages.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Union

from bspl_harvester.captcha.challenge import (
    SolvedChallenge,
    SubmittedChallenge,
    UnsubmittedChallenge,
)
from bspl_harvester.captcha.interfaces import IRecognitionService
from bspl_harvester.connectors.smes.interfaces import IChallengeSite
from bspl_harvester.errors import RequestError, UnsuccessfulResponseError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

PollOutcome = Union[str, Exception]


class FakeSite(IChallengeSite):
    """Portal fake. Challenge requests are numbered from 1."""

    def __init__(
        self,
        failing_challenges: Iterable[int] = (),
        failing_pages: Iterable[str] = (),
        events: Optional[List[tuple]] = None,
    ):
        self.failing_challenges = set(failing_challenges)
        self.failing_pages = set(failing_pages)
        self.events = events if events is not None else []
        self.challenge_calls: List[str] = []
        self.page_calls: List[SolvedChallenge] = []
        self.closed = False

    async def get_challenge(self, identifier):
        self.challenge_calls.append(identifier)
        number = len(self.challenge_calls)
        self.events.append(("challenge", identifier))
        await asyncio.sleep(0)
        if number in self.failing_challenges:
            raise RequestError(f"captcha request {number} failed")
        return UnsubmittedChallenge(
            identifier=identifier,
            image=PNG_BYTES,
            cookies={"JSESSIONID": f"session-{number}"},
        )

    async def get_page(self, challenge: SolvedChallenge) -> str:
        self.page_calls.append(challenge)
        self.events.append(("page", challenge.identifier))
        await asyncio.sleep(0)
        if challenge.identifier in self.failing_pages:
            raise UnsuccessfulResponseError("page request failed", 500, "server error")
        return f"<html>{challenge.identifier}:{challenge.answer}</html>"

    async def close(self):
        self.closed = True


class FakeRecognizer(IRecognitionService):
    """Recognition service fake. Submissions get tokens job-1, job-2, ...

    ``poll_outcomes`` maps a token to the outcomes of its successive polls:
    a string is an answer, an exception is raised. The last outcome repeats
    once the list is used up. Tokens without a script are answered with
    ``answer`` right away.

    Failing calls raise without yielding to the event loop, so whatever a
    stage does in reaction happens before any other task runs.
    """

    def __init__(
        self,
        answer: str = "160665",
        poll_outcomes: Optional[Dict[str, List[PollOutcome]]] = None,
        submit_errors: Optional[Dict[int, Exception]] = None,
        events: Optional[List[tuple]] = None,
    ):
        self.answer = answer
        self.poll_outcomes = {token: list(script) for token, script in (poll_outcomes or {}).items()}
        self.submit_errors = submit_errors or {}
        self.events = events if events is not None else []
        self.submit_calls: List[UnsubmittedChallenge] = []
        self.poll_calls: List[str] = []
        self.closed = False

    async def submit(self, challenge: UnsubmittedChallenge) -> SubmittedChallenge:
        self.submit_calls.append(challenge)
        number = len(self.submit_calls)
        self.events.append(("submit", challenge.identifier))
        if number in self.submit_errors:
            raise self.submit_errors[number]
        await asyncio.sleep(0)
        return challenge.submit(f"job-{number}")

    async def get_answer(self, challenge: SubmittedChallenge) -> SolvedChallenge:
        self.poll_calls.append(challenge.token)
        self.events.append(("poll", challenge.token))
        script = self.poll_outcomes.get(challenge.token)
        if script:
            outcome = script.pop(0) if len(script) > 1 else script[0]
        else:
            outcome = self.answer
        if isinstance(outcome, Exception):
            raise outcome
        await asyncio.sleep(0)
        return challenge.solve(outcome)

    async def close(self):
        self.closed = True


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_challenge(identifier: str = "1071180", number: int = 1) -> UnsubmittedChallenge:
    return UnsubmittedChallenge(
        identifier=identifier,
        image=PNG_BYTES,
        cookies={"JSESSIONID": f"session-{number}"},
    )


async def collect(receive) -> list:
    """Drain a receive stream until its sender side is closed."""
    return [item async for item in receive]
