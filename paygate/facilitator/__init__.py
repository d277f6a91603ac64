"""
Facilitator process: verifies and settles "exact" x402 payments on EVM and
SVM networks with operator key material.

Run with: uvicorn paygate.facilitator.main:app
"""
