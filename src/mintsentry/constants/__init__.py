"""Constants shared across services."""
