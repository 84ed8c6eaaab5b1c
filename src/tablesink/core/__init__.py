"""Core utilities: row keys, counters, logging, identity execution, settings."""
