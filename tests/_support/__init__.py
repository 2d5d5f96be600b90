"""Test support helpers (fakes, seeded source databases)."""
