"""Core application primitives (settings, database, tenancy, logging)."""
