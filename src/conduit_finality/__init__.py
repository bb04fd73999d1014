"""conduit-finality — payment finality for escrow checkout."""

from __future__ import annotations

__version__ = "0.1.0"
