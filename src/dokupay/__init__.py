"""
dokupay: signed DOKU checkout integration.

Creates checkout payments, queries their status and verifies inbound payment
notifications using the DOKU Non-SNAP HMAC-SHA256 signature scheme.
"""

__version__ = "1.0.0"
