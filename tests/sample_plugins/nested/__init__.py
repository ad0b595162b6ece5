"""Nested package used to ensure recursive discovery works."""
