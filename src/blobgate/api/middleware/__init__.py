"""Blobgate API middleware package."""

from blobgate.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
