"""
Jammer: crash-consistent nockchain state jam export with a verifiable manifest.

Stops the node, exports a state jam, and certifies the published tree with a
SHA256SUMS manifest that can be re-checked at any time.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
