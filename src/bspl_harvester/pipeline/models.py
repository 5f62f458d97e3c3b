"""Data flowing out of the harvest pipeline."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..captcha.challenge import EntityIdentifier


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one entity page fetch.

    Exactly one of ``content`` and ``error`` is set.

    Attributes:
        identifier: Entity the page belongs to.
        content: Page content when the fetch succeeded.
        error: Description of the terminal failure otherwise.
    """
    identifier: EntityIdentifier
    content: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if (self.content is None) == (self.error is None):
            raise ValueError("FetchResult needs exactly one of content and error")

    @classmethod
    def success(cls, identifier: EntityIdentifier, content: str) -> "FetchResult":
        return cls(identifier=identifier, content=content)

    @classmethod
    def failure(cls, identifier: EntityIdentifier, error: str) -> "FetchResult":
        return cls(identifier=identifier, error=error)

    @property
    def ok(self) -> bool:
        return self.content is not None


@dataclass
class StageStats:
    """Per-stage counters, reported by HarvestPipeline.get_status()."""
    received: int = 0
    emitted: int = 0
    dropped: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def missing_identifiers(
    identifiers: Iterable[EntityIdentifier], results: Iterable[FetchResult]
) -> List[EntityIdentifier]:
    """List the identifiers that did not get a successful result.

    The pipeline drops failed items silently, so callers that need
    completeness compare what they asked for with what they received.

    Args:
        identifiers: Identifiers handed to the pipeline, in input order.
        results: Results received from the pipeline.

    Returns:
        Identifiers without a successful FetchResult, in input order.
    """
    delivered = {result.identifier for result in results if result.ok}
    return [identifier for identifier in identifiers if identifier not in delivered]
