"""Storage adapters for the live-event core."""
