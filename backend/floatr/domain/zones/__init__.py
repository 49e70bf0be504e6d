"""No-go zone lookups (ZoneGuard)."""
