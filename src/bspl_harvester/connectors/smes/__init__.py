"""SMES Connector Package.

Client for the SMES venture company portal, which serves per-company
financial statement pages behind an image captcha.
"""

# Main client implementation
from .client import SmesClient

# Interface definition for type safety and testing
from .interfaces import IChallengeSite

# Public API exports
__all__ = ["SmesClient", "IChallengeSite"]
