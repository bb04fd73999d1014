"""Pre-built configuration errors shared across components."""

from __future__ import annotations

from conduit_finality.errors.finality_errors import ConfigurationError

ErrAgentNotInitialized = ConfigurationError(
    "signing agent not initialized; connect a wallet first",
    code="agent-not-initialized",
)
ErrSettlementURLMissing = ConfigurationError(
    "settlement endpoint URL is not configured",
    code="settlement-url-missing",
)
ErrSessionActive = ConfigurationError(
    "a checkout session is already open; call cleanup() first",
    code="session-active",
)
ErrEngineNotInitialized = ConfigurationError(
    "finality engine not initialized; call initialize() first",
    code="engine-not-initialized",
)
