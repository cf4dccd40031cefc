import pytest

from web.routing import RouteCategory, classify_request, is_upload_path


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("POST", "/api/v1/upload/dep1/sig", RouteCategory.UPLOAD),
        ("GET", "/api/v1/public", RouteCategory.PUBLIC),
        ("POST", "/api/v1/evict-globally", RouteCategory.EVICTION),
        ("POST", "/api/v1/register", RouteCategory.AUTHENTICATED),
        ("POST", "/api/v1/project/p1/pay", RouteCategory.AUTHENTICATED),
        ("POST", "/api/v1/public", RouteCategory.AUTHENTICATED),
        ("GET", "/api/v1/upload/dep1/sig", RouteCategory.AUTHENTICATED),
        ("GET", "/unknown", RouteCategory.AUTHENTICATED),
    ],
)
def test_classify_request(method, path, expected):
    assert classify_request(method, path) is expected


def test_exempt_categories():
    assert not RouteCategory.PUBLIC.requires_identity
    assert not RouteCategory.EVICTION.requires_payment
    assert not RouteCategory.UPLOAD.audited
    assert RouteCategory.AUTHENTICATED.requires_identity and RouteCategory.AUTHENTICATED.requires_payment


def test_upload_path_detection():
    assert is_upload_path("/api/v1/upload/a/b")
    assert not is_upload_path("/api/v1/upload/a")
