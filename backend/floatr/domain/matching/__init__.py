"""Swipe ledger and mutual matching."""
