"""Plugin module without an entry point."""

NAME = "missing_setup"
