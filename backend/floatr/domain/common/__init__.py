"""Shared domain primitives: error taxonomy, outbound events and block lookups."""
