"""Provider response fixtures."""
