"""Classification of backend failures into caller-facing outcomes.

Every backend fault is sorted into one of three kinds: the resource is
absent, the caller is not permitted to touch it, or something else went
wrong. Service operations raise a single tagged error type,
:class:`StorageGatewayError`, whose ``kind``/``operation``/``resource`` fields
the HTTP layer dispatches on.
"""

from __future__ import annotations

from enum import Enum

from gateway.infra.storage.client import StorageError

NOT_FOUND_CODES = frozenset({"404", "NotFound", "NoSuchBucket", "NoSuchKey"})
UNAUTHORIZED_CODES = frozenset(
    {"401", "403", "AccessDenied", "Forbidden", "Unauthorized", "AllAccessDisabled"}
)
UNAUTHORIZED_STATUSES = frozenset({401, 403})


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    BACKEND_FAULT = "backend_fault"


class Operation(str, Enum):
    BUCKET_EXISTS = "bucket_exists"
    BUCKET_CREATE = "bucket_create"
    BUCKET_DELETE = "bucket_delete"
    OBJECT_LIST = "object_list"
    OBJECT_UPLOAD = "object_upload"
    OBJECT_DELETE = "object_delete"
    OBJECT_RETRIEVE = "object_retrieve"
    LINK_ISSUE = "link_issue"


class Resource(str, Enum):
    BUCKET = "bucket"
    OBJECT = "object"


def classify(exc: BaseException) -> ErrorKind:
    """Sort a backend failure into an :class:`ErrorKind`."""
    if not isinstance(exc, StorageError):
        return ErrorKind.BACKEND_FAULT
    if exc.status_code == 404 or exc.code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if exc.status_code in UNAUTHORIZED_STATUSES or exc.code in UNAUTHORIZED_CODES:
        return ErrorKind.UNAUTHORIZED
    return ErrorKind.BACKEND_FAULT


def missing_resource(exc: BaseException, default: Resource) -> Resource:
    """Tell which resource a not-found failure is about.

    S3 names the missing resource in the error code for object calls; a bare
    404 (HEAD requests carry no body) is about whatever the call targeted.
    """
    code = getattr(exc, "code", None)
    if code == "NoSuchBucket":
        return Resource.BUCKET
    if code == "NoSuchKey":
        return Resource.OBJECT
    return default


def _cause_message(cause: BaseException | None) -> str:
    return str(cause) if cause is not None else "unknown error"


class StorageGatewayError(Exception):
    """A classified failure of a gateway operation.

    Attributes:
        kind: How the failure was classified.
        operation: The gateway operation that failed.
        resource: Which resource the failure is about.
        bucket: Bucket the operation targeted.
        key: Object key, for object and link operations.
        cause: The original backend error, when there is one.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind,
        operation: Operation,
        resource: Resource,
        bucket: str,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.operation = operation
        self.resource = resource
        self.bucket = bucket
        self.key = key
        self.cause = cause

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, "
            f"operation={self.operation.value}, resource={self.resource.value}, "
            f"bucket={self.bucket!r}, key={self.key!r})"
        )

    @classmethod
    def _wrap(
        cls,
        message: str,
        *,
        operation: Operation,
        bucket: str,
        key: str | None,
        cause: BaseException,
        default_resource: Resource,
    ) -> "StorageGatewayError":
        kind = classify(cause)
        resource = (
            missing_resource(cause, default_resource)
            if kind is ErrorKind.NOT_FOUND
            else default_resource
        )
        return cls(
            message,
            kind=kind,
            operation=operation,
            resource=resource,
            bucket=bucket,
            key=key,
            cause=cause,
        )

    @classmethod
    def unauthorized_access(
        cls, bucket: str, cause: BaseException | None = None
    ) -> "StorageGatewayError":
        return cls(
            f"Application not authorized to access bucket {bucket}. The bucket may "
            "exist outside this account, or the credentials lack permission to "
            "access it",
            kind=ErrorKind.UNAUTHORIZED,
            operation=Operation.BUCKET_EXISTS,
            resource=Resource.BUCKET,
            bucket=bucket,
            cause=cause,
        )

    @classmethod
    def bucket_creation_failed(
        cls, bucket: str, cause: BaseException
    ) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while creating bucket {bucket}. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.BUCKET_CREATE,
            bucket=bucket,
            key=None,
            cause=cause,
            default_resource=Resource.BUCKET,
        )

    @classmethod
    def list_failed(cls, bucket: str, cause: BaseException) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while listing bucket {bucket} content. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.OBJECT_LIST,
            bucket=bucket,
            key=None,
            cause=cause,
            default_resource=Resource.BUCKET,
        )

    @classmethod
    def upload_failed(
        cls, bucket: str, key: str, cause: BaseException
    ) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while uploading file {key}. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.OBJECT_UPLOAD,
            bucket=bucket,
            key=key,
            cause=cause,
            default_resource=Resource.BUCKET,
        )

    @classmethod
    def delete_failed(
        cls, bucket: str, key: str, cause: BaseException
    ) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while deleting file {key}. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.OBJECT_DELETE,
            bucket=bucket,
            key=key,
            cause=cause,
            default_resource=Resource.OBJECT,
        )

    @classmethod
    def object_not_found(
        cls, bucket: str, key: str, cause: BaseException | None = None
    ) -> "StorageGatewayError":
        return cls(
            f"File {key} not found in bucket {bucket}",
            kind=ErrorKind.NOT_FOUND,
            operation=Operation.OBJECT_RETRIEVE,
            resource=Resource.OBJECT,
            bucket=bucket,
            key=key,
            cause=cause,
        )

    @classmethod
    def retrieve_failed(
        cls, bucket: str, key: str, cause: BaseException
    ) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while retrieving file {key}. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.OBJECT_RETRIEVE,
            bucket=bucket,
            key=key,
            cause=cause,
            default_resource=Resource.OBJECT,
        )

    @classmethod
    def link_issuance_failed(
        cls, bucket: str, key: str, cause: BaseException
    ) -> "StorageGatewayError":
        return cls._wrap(
            f"Error while generating pre-signed url for file with name {key}. "
            f"Error message: {_cause_message(cause)}",
            operation=Operation.LINK_ISSUE,
            bucket=bucket,
            key=key,
            cause=cause,
            default_resource=Resource.OBJECT,
        )
