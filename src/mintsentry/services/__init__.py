"""External data provider clients and detection services."""
