"""Blobgate envelope publishing."""

from blobgate.services.publish.bundler import BundlerPublisher, PublishReceipt

__all__ = ["BundlerPublisher", "PublishReceipt"]
