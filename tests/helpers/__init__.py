"""Helpers de tests."""
