from __future__ import annotations

from fastapi import Request

from gateway.app.services import BucketService, LinkService, ObjectService
from gateway.app.services.bundle import ServiceBundle


def get_services(request: Request) -> ServiceBundle:
    return request.app.state.services


def get_bucket_service(request: Request) -> BucketService:
    return get_services(request).bucket()


def get_object_service(request: Request) -> ObjectService:
    return get_services(request).objects()


def get_link_service(request: Request) -> LinkService:
    return get_services(request).links()
