"""Configuration — pydantic-settings tree with YAML overlay."""

from conduit_finality.config.settings import AppConfig

__all__ = ["AppConfig"]
