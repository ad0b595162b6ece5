"""Plugins used by the auto discovery tests."""
