"""Wallet ledger, payout, refund and gift-card service for the consultation marketplace."""

__version__ = "0.1.0"
