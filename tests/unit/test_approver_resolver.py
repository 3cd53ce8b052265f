"""Tests for approver resolvers and the permission guard"""
import httpx
import pytest

from hrflow.domain.errors import ApproverResolutionError
from hrflow.engine import HttpRoleDirectoryResolver, StaticRoleResolver
from hrflow.utils.logger import set_correlation_id


class TestStaticRoleResolver:
    def test_role_membership_is_case_insensitive(self):
        resolver = StaticRoleResolver({"HR": ["HR@corp.com"]})

        assert resolver.authorized_for("HR", "LEAVE", "1", "hr@CORP.com") is True
        assert resolver.authorized_for("MANAGER", "LEAVE", "1", "hr@corp.com") is False

    def test_grant(self):
        resolver = StaticRoleResolver({})
        resolver.grant("ADMIN", "boss@corp.com")
        assert resolver.authorized_for("ADMIN", "PAYROLL", "2026-10", "boss@corp.com") is True


def _resolver(handler):
    return HttpRoleDirectoryResolver(
        base_url="http://directory.test/api/",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestHttpRoleDirectoryResolver:
    def test_asks_the_directory(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["correlation"] = request.headers.get("X-Correlation-Id")
            return httpx.Response(200, json={"authorized": True})

        set_correlation_id("corr-123")
        assert _resolver(handler).authorized_for("MANAGER", "LEAVE", "42", "m@corp.com") is True
        assert seen["path"] == "/api/roles/MANAGER/authorize"
        assert seen["params"] == {"entity_type": "LEAVE", "entity_id": "42", "actor_id": "m@corp.com"}
        assert seen["correlation"] == "corr-123"

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"authorized": False}),
            httpx.Response(200, json={}),
            httpx.Response(403),
            httpx.Response(404),
        ],
    )
    def test_denials(self, response):
        assert _resolver(lambda request: response).authorized_for("HR", "LEAVE", "1", "x") is False

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json=["authorized"]),
        ],
    )
    def test_directory_failures_raise(self, response):
        with pytest.raises(ApproverResolutionError):
            _resolver(lambda request: response).authorized_for("HR", "LEAVE", "1", "x")

    def test_unreachable_directory_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ApproverResolutionError) as exc_info:
            _resolver(handler).authorized_for("HR", "LEAVE", "1", "x")
        assert exc_info.value.http_status == 502
