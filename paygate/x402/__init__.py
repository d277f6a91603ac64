"""
x402 Payment Protocol Integration Module.

Gates premium routes behind an x402 payment for registered origins.

Key components:
- networks: network identifiers, families and USDC assets
- models: payment requirements, assertions and facilitator results
- settlement: client for the facilitator's verify/settle operations
- gateway: the per-request access decision
- middleware: FastAPI middleware applying the decision
- audit: settlement audit logging

Configuration is loaded from environment variables via paygate.core.config.
"""

__version__ = "0.1.0"
