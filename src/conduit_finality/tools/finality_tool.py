#!/usr/bin/env python3
"""Finality Tool — inspect receipts, stuck nonces and settlement records.

An operator CLI over the read channel and the settlement backend:

    # Wait for a transaction receipt
    python -m conduit_finality.tools.finality_tool receipt <tx_hash> [timeout_ms]

    # Check an address for a stuck nonce
    python -m conduit_finality.tools.finality_tool nonce <address>

    # Verify a settlement record (no buyer expectation, state check only)
    python -m conduit_finality.tools.finality_tool verify <contract_id> [seller_wallet_id]

Settings come from ``CONDUIT_*`` environment variables, or a YAML file
named by ``CONDUIT_CONFIG_PATH``.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from conduit_finality.config.settings import AppConfig
from conduit_finality.engine.client import FinalityEngine
from conduit_finality.errors.finality_errors import FinalityError


def _engine() -> FinalityEngine:
    config = AppConfig()
    if config.config_path:
        config = AppConfig.from_yaml(config.config_path)
    return FinalityEngine(config)


def _cmd_receipt(tx_hash: str, timeout_ms: int | None = None) -> None:
    """Poll the read channel for a receipt."""

    async def _run() -> None:
        engine = _engine()
        await engine.initialize()
        try:
            receipt = await engine.poller.wait_for_receipt(tx_hash, timeout_ms)
            print(f"Hash:      {receipt.hash}")
            print(f"Block:     {receipt.block_number}")
            print(f"Status:    {receipt.status.value}")
            print(f"Gas used:  {receipt.gas_used:,}")
        finally:
            await engine.close()

    asyncio.run(_run())


def _cmd_nonce(address: str) -> None:
    """Compare the latest and pending nonce of an address."""

    async def _run() -> None:
        engine = _engine()
        await engine.initialize()
        try:
            report = await engine.find_stuck_nonce(address)
            if report is None:
                print(f"No stuck transactions for {address}")
                return
            print(f"Address:        {report.address}")
            print(f"Stuck nonce:    {report.stuck_nonce}")
            print(f"Pending nonce:  {report.pending_nonce}  ({report.queued} queued)")
            print(f"Gas price:      {report.current_gas_price / 1e9:.4f} gwei")
            print(f"Suggested:      {report.suggested_gas_price / 1e9:.4f} gwei")
            print()
            print("To clear it, send a zero-value transaction to yourself with")
            print(f"nonce {report.stuck_nonce} and at least the suggested gas price.")
        finally:
            await engine.close()

    asyncio.run(_run())


def _cmd_verify(contract_id: str, seller_wallet_id: str | None = None) -> None:
    """Poll the settlement backend until the record settles."""

    async def _run() -> None:
        engine = _engine()
        await engine.initialize()
        try:
            result = await engine.verifier.verify(
                contract_id,
                seller_wallet_id,
                observer=lambda a: print(f"  attempt {a.attempt} ({a.elapsed:.1f}s): {a.state.value}"),
            )
            print(f"Contract:  {result.record_id}")
            print(f"Address:   {result.ledger_address}")
            print(f"Seller:    {result.counterparty}")
            print(f"Amount:    {result.amount} {result.unit}  ({result.raw_amount} {result.raw_unit})")
            print(f"State:     {result.lifecycle_state}")
            print(f"Verified:  {result.verified_at.isoformat()}")
        finally:
            await engine.close()

    asyncio.run(_run())


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(__doc__)
        sys.exit(1)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    cmd = args[0].lower()

    try:
        if cmd == "receipt":
            if len(args) < 2:
                print("Usage: finality_tool receipt <tx_hash> [timeout_ms]")
                sys.exit(1)
            _cmd_receipt(args[1], int(args[2]) if len(args) > 2 else None)
        elif cmd == "nonce":
            if len(args) < 2:
                print("Usage: finality_tool nonce <address>")
                sys.exit(1)
            _cmd_nonce(args[1])
        elif cmd == "verify":
            if len(args) < 2:
                print("Usage: finality_tool verify <contract_id> [seller_wallet_id]")
                sys.exit(1)
            _cmd_verify(args[1], args[2] if len(args) > 2 else None)
        else:
            print(f"Unknown command: {cmd}")
            print(__doc__)
            sys.exit(1)
    except FinalityError as exc:
        print(f"Error [{exc.kind.value}/{exc.code}]: {exc.message}")
        sys.exit(2)


if __name__ == "__main__":
    main()
