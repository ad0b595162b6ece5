"""Plugin modules that fail to load."""
