"""Blobgate object gateway service.

Provides:
- ObjectGateway: store, resolve, discover and publish content-addressed items
- DualWriteExecutor: concurrent envelope and raw blob writes without rollback
- StoreResult / IndexOutcome / ItemDescriptor: structured operation results
"""

from blobgate.services.gateway.dual_write import (
    BlobWriteStep,
    DualWriteExecutor,
    DualWriteResult,
    WriteStepResult,
    WriteStepStatus,
)
from blobgate.services.gateway.models import IndexOutcome, ItemDescriptor, StoreResult
from blobgate.services.gateway.service import (
    DEFAULT_OBJECT_SIZE_LIMIT,
    DEFAULT_PRESIGNED_URL_EXPIRY,
    ObjectGateway,
)

__all__ = [
    "BlobWriteStep",
    "DEFAULT_OBJECT_SIZE_LIMIT",
    "DEFAULT_PRESIGNED_URL_EXPIRY",
    "DualWriteExecutor",
    "DualWriteResult",
    "IndexOutcome",
    "ItemDescriptor",
    "ObjectGateway",
    "StoreResult",
    "WriteStepResult",
    "WriteStepStatus",
]
