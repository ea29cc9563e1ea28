"""
Tests for client identifier resolution from request headers.
"""

from starlette.requests import Request

from app.core.client_identity import resolve_client_id


def make_request(headers=None, client=("203.0.113.9", 50000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestResolveClientId:

    def test_peer_address_fallback(self):
        assert resolve_client_id(make_request()) == "203.0.113.9"

    def test_no_peer_address(self):
        assert resolve_client_id(make_request(client=None)) == "unknown"

    def test_edge_header_wins(self):
        request = make_request({
            "CF-Connecting-IP": "1.1.1.1",
            "X-Forwarded-For": "2.2.2.2",
            "X-Real-IP": "3.3.3.3",
            "X-Original-Forwarded-For": "4.4.4.4",
        })
        assert resolve_client_id(request) == "1.1.1.1"

    def test_forwarded_for_first_entry(self):
        request = make_request({
            "X-Forwarded-For": "2.2.2.2, 10.0.0.1, 10.0.0.2",
            "X-Real-IP": "3.3.3.3",
        })
        assert resolve_client_id(request) == "2.2.2.2"

    def test_real_ip_before_original_forwarded(self):
        request = make_request({
            "X-Real-IP": "3.3.3.3",
            "X-Original-Forwarded-For": "4.4.4.4",
        })
        assert resolve_client_id(request) == "3.3.3.3"

    def test_original_forwarded_first_entry(self):
        request = make_request({"X-Original-Forwarded-For": "4.4.4.4, 10.0.0.1"})
        assert resolve_client_id(request) == "4.4.4.4"

    def test_blank_headers_skipped(self):
        request = make_request({"CF-Connecting-IP": "  ", "X-Forwarded-For": " ", "X-Real-IP": "3.3.3.3"})
        assert resolve_client_id(request) == "3.3.3.3"
