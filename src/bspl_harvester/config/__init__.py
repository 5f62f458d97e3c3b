"""Configuration: structured logging and environment-driven settings."""

from .settings import HarvestSettings, load_settings

__all__ = ["HarvestSettings", "load_settings"]
