"""
Escrow engine — trust-minimized P2P trade settlement on a deterministic in-process host.

This package exposes only lightweight metadata at import time. Import the engine
explicitly, e.g. `from escrow.engine import EscrowFactory` and
`from escrow.runtime import Chain`.
"""

# Bump this when making a tagged release. Use semver (major.minor.patch).
__version__ = "0.3.0"

__all__ = ["__version__"]
