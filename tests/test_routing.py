import pytest

from tdexa.routing import (
    RequestKind,
    classify_request,
    is_grpc_web_request,
    is_http_request,
    is_valid_grpc_content_type,
)


@pytest.mark.parametrize("method", ["GET", "get", "Get"])
def test_get_is_http(method):
    assert is_http_request(method, {}) is True


def test_json_post_is_http():
    assert is_http_request("POST", {"content-type": "application/json; charset=utf-8"}) is True


def test_grpc_post_is_not_http():
    assert is_http_request("POST", {"Content-Type": "application/grpc"}) is False


@pytest.mark.parametrize(
    "content_type, expected",
    [
        ("application/grpc-web-text", True),
        ("application/grpc-web+proto", True),
        ("application/grpc", False),
        ("", False),
    ],
)
def test_grpc_content_type(content_type, expected):
    assert is_valid_grpc_content_type(content_type) is expected


def test_grpc_web_post():
    assert is_grpc_web_request("POST", {"Content-Type": "application/grpc-web"}) is True


def test_grpc_web_preflight():
    headers = {"Access-Control-Request-Headers": "content-type,x-grpc-web"}
    assert is_grpc_web_request("OPTIONS", headers) is True


def test_preflight_without_grpc_web_header():
    headers = {"Access-Control-Request-Headers": "content-type"}
    assert is_grpc_web_request("OPTIONS", headers) is False


def test_method_match_is_exact_for_grpc_web():
    assert is_grpc_web_request("post", {"Content-Type": "application/grpc-web"}) is False


@pytest.mark.parametrize(
    "method, headers, kind",
    [
        ("GET", {}, RequestKind.HTTP),
        ("POST", {"Content-Type": "application/json"}, RequestKind.HTTP),
        ("POST", {"Content-Type": "application/grpc-web-text"}, RequestKind.GRPC_WEB),
        ("POST", {"Content-Type": "application/grpc"}, RequestKind.GRPC),
        ("POST", None, RequestKind.GRPC),
    ],
)
def test_classify(method, headers, kind):
    assert classify_request(method, headers) is kind