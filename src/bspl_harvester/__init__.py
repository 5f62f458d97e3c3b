"""Captcha-gated disclosure page harvester.

Turns a list of entity identifiers into a live stream of fetched pages from a
portal that requires a freshly solved image captcha for every page request.
"""

from .captcha.challenge import EntityIdentifier
from .config.settings import HarvestSettings, load_settings
from .pipeline import FetchResult, HarvestPipeline, harvest_pages, missing_identifiers

__all__ = [
    "EntityIdentifier",
    "FetchResult",
    "HarvestPipeline",
    "HarvestSettings",
    "harvest_pages",
    "load_settings",
    "missing_identifiers",
]

__version__ = "0.1.0"
