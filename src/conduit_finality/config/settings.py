"""Finality settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``CONDUIT_``, nested via ``__``)
2. YAML config file (``config_path`` field or ``CONDUIT_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ChainConfig(BaseSettings):
    """Read channel (public JSON-RPC endpoint) settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_CHAIN__",
        case_sensitive=False,
    )

    rpc_url: str = "https://mainnet.base.org"
    chain_id: int = 8453
    timeout: float = 30.0


class SubmitterConfig(BaseSettings):
    """Transaction building and gas settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_SUBMITTER__",
        case_sensitive=False,
    )

    min_gas_price_wei: int = Field(
        default=1_000_000,
        description="Floor gas price used when the live price is unavailable or lower",
    )
    estimate_retries: int = 2
    estimate_backoff: float = 0.5
    gas_buffer_percent: int = 10
    approval_gas_fallback: int = 100_000
    deposit_gas_fallback: int = 250_000


class ReconcilerConfig(BaseSettings):
    """Transaction identity reconciliation settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_RECONCILER__",
        case_sensitive=False,
    )

    deadline_ms: int = 30_000
    poll_interval: float = 2.0
    lookback_blocks: int = 5


class PollerConfig(BaseSettings):
    """Receipt polling settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_POLLER__",
        case_sensitive=False,
    )

    interval: float = 2.0
    timeout_ms: int = 120_000


class SettlementConfig(BaseSettings):
    """Settlement backend (contract service) settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_SETTLEMENT__",
        case_sensitive=False,
    )

    url: str = ""
    api_key: str = ""
    timeout: float = 10.0


class VerifierConfig(BaseSettings):
    """Payment verification polling settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_VERIFIER__",
        case_sensitive=False,
    )

    interval: float = 1.5
    deadline: float = 20.0
    amount_tolerance: str = "0.001"


class WebhookSettings(BaseSettings):
    """Merchant webhook delivery settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_WEBHOOK__",
        case_sensitive=False,
    )

    url: str = ""
    secret: str = ""
    timeout: float = 10.0
    max_retries: int = 2
    retry_delay: float = 1.0


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level finality configuration.

    Loads settings from environment variables (``CONDUIT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONDUIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    config_path: str = ""

    chain: ChainConfig = Field(default_factory=ChainConfig)
    submitter: SubmitterConfig = Field(default_factory=SubmitterConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    verifier: VerifierConfig = Field(default_factory=VerifierConfig)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
