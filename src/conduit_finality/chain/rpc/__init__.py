"""Read channel — public JSON-RPC endpoint client and ledger models."""

from conduit_finality.chain.rpc.client import JsonRpcClient
from conduit_finality.chain.rpc.models import Block, LedgerTransaction, hex_to_int, to_hex

__all__ = ["Block", "JsonRpcClient", "LedgerTransaction", "hex_to_int", "to_hex"]
