"""Read-only view of vessels, captains and crews (profile CRUD lives elsewhere)."""
