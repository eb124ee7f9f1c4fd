"""File API router.

This module provides REST API endpoints for objects in the default bucket:
listing, upload, deletion, streamed download and shareable links.
"""

from __future__ import annotations

import os
from datetime import timedelta
from typing import AsyncIterator, List

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Query,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from gateway.api.deps import get_link_service, get_object_service
from gateway.app.services import LinkService, ObjectService, ObjectStream
from gateway.app.services.link_service import MAX_LINK_VALIDITY

router = APIRouter()

MAX_LINK_MINUTES = int(MAX_LINK_VALIDITY.total_seconds() // 60)


def _content_length(upload: UploadFile) -> int:
    """Size of the uploaded part, measured from the file's current position."""
    if upload.size is not None:
        return int(upload.size)
    fp = upload.file
    position = fp.tell()
    fp.seek(0, os.SEEK_END)
    end = fp.tell()
    fp.seek(position)
    return end - position


async def _iter_object(stream: ObjectStream) -> AsyncIterator[bytes]:
    # 阻塞读在线程池中进行；无论正常结束、读失败还是客户端断开都会释放后端连接
    with stream:
        while True:
            chunk = await run_in_threadpool(stream.read_chunk)
            if not chunk:
                break
            yield chunk


@router.get(
    "/files",
    response_model=List[str],
    summary="List files",
    description="List every object key in the default bucket, in backend order.",
)
def list_files(
    objects: ObjectService = Depends(get_object_service),
) -> List[str]:
    return objects.list()


@router.post(
    "/files/upload",
    status_code=status.HTTP_200_OK,
    response_class=Response,
    summary="Upload file",
    description="Upload a file under its filename, replacing any existing object.",
)
def upload_file(
    file: UploadFile = File(..., description="File to upload"),
    objects: ObjectService = Depends(get_object_service),
) -> Response:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no filename")

    try:
        objects.upload(
            file.filename,
            file.file,
            _content_length(file),
            content_type=file.content_type,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_200_OK)


@router.delete(
    "/files/{file_name}",
    status_code=status.HTTP_200_OK,
    response_class=Response,
    summary="Delete file",
    description="Delete a file. Deleting a missing file succeeds.",
)
def delete_file(
    file_name: str,
    objects: ObjectService = Depends(get_object_service),
) -> Response:
    objects.delete(file_name)
    return Response(status_code=status.HTTP_200_OK)


@router.get(
    "/files/{file_name}",
    response_class=StreamingResponse,
    summary="Download file",
    description="Stream the raw content of a file.",
)
def get_file(
    file_name: str,
    objects: ObjectService = Depends(get_object_service),
) -> StreamingResponse:
    stream = objects.retrieve(file_name)
    headers: dict[str, str] = {}
    if stream.size_bytes is not None:
        headers["Content-Length"] = str(stream.size_bytes)
    if stream.etag:
        headers["ETag"] = stream.etag
    return StreamingResponse(
        _iter_object(stream),
        media_type=stream.content_type or "application/octet-stream",
        headers=headers,
        background=BackgroundTask(stream.close),
    )


@router.get(
    "/files/{file_name}/share",
    response_class=PlainTextResponse,
    summary="Share file",
    description="Issue a pre-signed URL granting temporary read access to a file.",
)
def share_file(
    file_name: str,
    expiration_minutes: int = Query(
        ...,
        alias="expirationTimeInMinutes",
        ge=1,
        le=MAX_LINK_MINUTES,
    ),
    links: LinkService = Depends(get_link_service),
) -> PlainTextResponse:
    try:
        url = links.issue_read_link(file_name, timedelta(minutes=expiration_minutes))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return PlainTextResponse(url)
