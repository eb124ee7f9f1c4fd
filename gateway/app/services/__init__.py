from .bucket_service import BucketService
from .errors import ErrorKind, Operation, Resource, StorageGatewayError
from .link_service import LinkService
from .object_service import ObjectService, ObjectStream

__all__ = [
    "BucketService",
    "ErrorKind",
    "LinkService",
    "ObjectService",
    "ObjectStream",
    "Operation",
    "Resource",
    "StorageGatewayError",
]
