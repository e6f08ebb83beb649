"""Dependency helpers for FastAPI routes."""

from fastapi import Request

from nft_tracker.data.data_locker import DataLocker


def get_locker(request: Request) -> DataLocker:
    """Return the :class:`DataLocker` the app was created with."""
    return request.app.state.locker


__all__ = ["get_locker"]
