"""Core domain helpers: exceptions and address validation."""
