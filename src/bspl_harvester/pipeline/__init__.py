"""Harvest pipeline: captcha acquisition, solving and page fetching stages."""

from .fetcher import PageFetcher
from .models import FetchResult, StageStats, missing_identifiers
from .orchestrator import HarvestPipeline, harvest_pages
from .poller import AnswerPoller
from .source import ChallengeSource
from .submitter import ChallengeSubmitter

__all__ = [
    "AnswerPoller",
    "ChallengeSource",
    "ChallengeSubmitter",
    "FetchResult",
    "HarvestPipeline",
    "PageFetcher",
    "StageStats",
    "harvest_pages",
    "missing_identifiers",
]
