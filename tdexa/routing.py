"""Classification of incoming HTTP requests for the daemon's single listener."""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional


class RequestKind(Enum):
    """Which handler serves a request."""

    HTTP = "http"
    GRPC_WEB = "grpc-web"
    GRPC = "grpc"


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    if not headers:
        return ""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return ""


def is_http_request(method: str, headers: Optional[Mapping[str, str]]) -> bool:
    """GET requests and JSON bodies go to the REST gateway."""
    return method.lower() == "get" or "application/json" in _header(headers, "Content-Type")


def is_valid_grpc_content_type(content_type: str) -> bool:
    """Whether the content type is one of the gRPC-Web types."""
    return content_type.startswith("application/grpc-web-text") or content_type.startswith(
        "application/grpc-web"
    )


def _is_grpc_web_options(method: str, headers: Optional[Mapping[str, str]]) -> bool:
    requested = _header(headers, "Access-Control-Request-Headers")
    return method == "OPTIONS" and "x-grpc-web" in requested and "content-type" in requested


def is_grpc_web_request(method: str, headers: Optional[Mapping[str, str]]) -> bool:
    """A gRPC-Web call or its CORS preflight."""
    if _is_grpc_web_options(method, headers):
        return True
    return method == "POST" and is_valid_grpc_content_type(_header(headers, "content-type"))


def classify_request(method: str, headers: Optional[Mapping[str, str]]) -> RequestKind:
    """Pick the handler for a request: gateway first, then gRPC-Web, else gRPC."""
    if is_http_request(method, headers):
        return RequestKind.HTTP
    if is_grpc_web_request(method, headers):
        return RequestKind.GRPC_WEB
    return RequestKind.GRPC