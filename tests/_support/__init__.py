"""Helpers shared by keel tests."""
