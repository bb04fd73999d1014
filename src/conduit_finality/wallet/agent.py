"""Signing agent protocol — the wallet boundary.

Defines the single interface the finality components depend on. Concrete
wallet integrations are adapted to it once, when the session starts
(see :mod:`conduit_finality.wallet.adapters`), instead of probing the
provider shape on every call.

The protocol has one raw entry point (``request``) plus address
resolution. Agents must raise :class:`SigningRejectedError` when the user
declines and :class:`WalletChannelError` for every other failure.
"""

from __future__ import annotations

import re
from typing import Any, Protocol, runtime_checkable

from conduit_finality.errors.chain_errors import SigningRejectedError, WalletChannelError

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

_REJECTION_PATTERN = re.compile(r"user (rejected|denied|cancel)|rejected by user|cancell?ed", re.I)


@runtime_checkable
class SigningAgent(Protocol):
    """Interface for the user's signing agent (wallet).

    Methods are async because wallet round-trips may involve an app switch
    on mobile devices.
    """

    @property
    def name(self) -> str:
        """Short name of the integration, for logs."""
        ...

    @property
    def is_connected(self) -> bool:
        """Whether the agent can currently accept requests."""
        ...

    async def get_address(self) -> str:
        """Return the address of the connected account."""
        ...

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        """Forward a raw wallet RPC request (eth_sendTransaction, personal_sign, ...)."""
        ...


def classify_agent_error(exc: BaseException) -> SigningRejectedError | WalletChannelError:
    """Map an exception raised by a wallet integration onto the error taxonomy.

    EIP-1193 code 4001 or a "user rejected / denied / cancelled" message
    means the user declined; everything else is a wallet channel failure.
    """
    if isinstance(exc, (SigningRejectedError, WalletChannelError)):
        return exc

    code = getattr(exc, "code", None)
    message = str(exc) or exc.__class__.__name__
    if code == USER_REJECTED_CODE or _REJECTION_PATTERN.search(message):
        return SigningRejectedError(message)
    return WalletChannelError(message, rpc_code=code if isinstance(code, int) else None)
