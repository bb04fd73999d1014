"""Signing agent protocol and wallet integration adapters."""

from conduit_finality.wallet.adapters import Eip1193Agent, JsonRpcWalletAgent, LocalAccountAgent
from conduit_finality.wallet.agent import SigningAgent, classify_agent_error

__all__ = [
    "Eip1193Agent",
    "JsonRpcWalletAgent",
    "LocalAccountAgent",
    "SigningAgent",
    "classify_agent_error",
]
