"""Tracker configuration loading."""
