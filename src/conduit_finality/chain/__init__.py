"""Ledger access — read channel client and dual-channel router."""

from conduit_finality.chain.router import (
    PENDING_NONCE_METHOD,
    READ_METHODS,
    SIGNING_METHODS,
    WALLET_METHODS,
    Channel,
    DualChannelRouter,
    channel_for,
    is_wallet_method,
)
from conduit_finality.chain.rpc import JsonRpcClient

__all__ = [
    "PENDING_NONCE_METHOD",
    "READ_METHODS",
    "SIGNING_METHODS",
    "WALLET_METHODS",
    "Channel",
    "DualChannelRouter",
    "JsonRpcClient",
    "channel_for",
    "is_wallet_method",
]
