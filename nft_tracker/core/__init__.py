"""Core services: logging, constants and the tracking pipeline."""
