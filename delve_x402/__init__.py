"""
delve-x402: x402 payment headers and microsub credits for payment-gated APIs
"""

__version__ = "0.1.0"
