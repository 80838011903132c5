"""Domain services for the gateway."""
