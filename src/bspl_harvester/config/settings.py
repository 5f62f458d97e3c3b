"""Runtime settings for the harvester.

Settings are read from the environment, optionally seeded from a ``.env``
file through python-dotenv.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from ..errors import ConfigurationError

DEFAULT_OCR_BASE_URL = "https://api.nopecha.com"
DEFAULT_SITE_BASE_URL = "https://www.smes.go.kr"
DEFAULT_PAGE_PATH = "/venturein/pbntc/selectBsPlInfo.do"


@dataclass
class HarvestSettings:
    """Configuration consumed by the harvest pipeline.

    Attributes:
        ocr_api_key: API key of the OCR recognition service.
        ocr_base_url: Base URL of the OCR recognition service.
        site_base_url: Base URL of the captcha-gated portal.
        page_path: Path of the portal endpoint serving entity pages.
        challenge_buffer: Capacity of the queue between the challenge source
            and the submitter. This is the only throttle on how many unsolved
            captchas are requested ahead of time.
        downstream_buffer: Capacity of the queues after the submitter.
            None means unbounded.
        poll_max_attempts: Maximum number of answer polls per challenge.
        poll_delay: Seconds to wait between two answer polls.
        request_timeout: Total timeout in seconds for a single HTTP request.
        emit_failures: Emit a failed FetchResult when a page fetch fails
            instead of dropping the identifier silently.
    """
    ocr_api_key: str
    ocr_base_url: str = DEFAULT_OCR_BASE_URL
    site_base_url: str = DEFAULT_SITE_BASE_URL
    page_path: str = DEFAULT_PAGE_PATH
    challenge_buffer: int = 8
    downstream_buffer: Optional[int] = None
    poll_max_attempts: int = 10
    poll_delay: float = 1.0
    request_timeout: float = 30.0
    emit_failures: bool = False

    def validate(self) -> "HarvestSettings":
        """Check value ranges.

        Returns:
            Self, so the call can be chained.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        if not self.ocr_api_key:
            raise ConfigurationError("OCR API key is empty")
        if self.challenge_buffer <= 0:
            raise ConfigurationError("challenge_buffer must be positive")
        if self.downstream_buffer is not None and self.downstream_buffer <= 0:
            raise ConfigurationError("downstream_buffer must be positive or unset")
        if self.poll_max_attempts <= 0:
            raise ConfigurationError("poll_max_attempts must be positive")
        if self.poll_delay < 0:
            raise ConfigurationError("poll_delay must not be negative")
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be positive")
        return self


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def load_settings(env_file: Optional[str] = None) -> HarvestSettings:
    """Load settings from the environment.

    Args:
        env_file: Optional path of a .env file. When omitted, python-dotenv
            looks for one starting from the current directory. Variables
            already set in the environment win over the file.

    Returns:
        Validated HarvestSettings.

    Raises:
        ConfigurationError: If NOPECHA_KEY is missing or a value is invalid.
    """
    load_dotenv(env_file or find_dotenv(usecwd=True))

    api_key = os.getenv("NOPECHA_KEY")
    if not api_key:
        raise ConfigurationError("NOPECHA_KEY is not set")

    settings = HarvestSettings(
        ocr_api_key=api_key,
        ocr_base_url=os.getenv("NOPECHA_BASE_URL", DEFAULT_OCR_BASE_URL),
        site_base_url=os.getenv("SMES_BASE_URL", DEFAULT_SITE_BASE_URL),
        page_path=os.getenv("SMES_PAGE_PATH", DEFAULT_PAGE_PATH),
        challenge_buffer=_env_int("HARVEST_CHALLENGE_BUFFER", 8),
        downstream_buffer=_env_int("HARVEST_DOWNSTREAM_BUFFER", None),
        poll_max_attempts=_env_int("HARVEST_POLL_MAX_ATTEMPTS", 10),
        poll_delay=_env_float("HARVEST_POLL_DELAY", 1.0),
        request_timeout=_env_float("HARVEST_REQUEST_TIMEOUT", 30.0),
        emit_failures=os.getenv("HARVEST_EMIT_FAILURES", "false").lower() == "true",
    )
    return settings.validate()
