"""Tests for loopback resolution and the same-domain rule."""

from __future__ import annotations

import httpx
import pytest

from healthchecks.health.resolver import InvalidURL, RequestContext, resolve, within_same_domain

CTX = RequestContext(protocol="http", host="127.0.0.1", port=5000)


class TestResolve:
    def test_relative_path_targets_loopback(self) -> None:
        req = resolve("/status", CTX)
        assert str(req.loopback_url) == "http://127.0.0.1:5000/status"
        assert req.headers["Host"] == "localhost"
        assert req.headers["X-Forwarded-Proto"] == "http"

    def test_preserves_query_and_fragment(self) -> None:
        req = resolve("/search?q=health&page=2#results", CTX)
        assert req.loopback_url.path == "/search"
        assert req.loopback_url.query == b"q=health&page=2"
        assert req.loopback_url.fragment == "results"

    def test_protocol_relative_keeps_intended_host(self) -> None:
        req = resolve("//admin.example.com/dashboard", CTX)
        assert req.loopback_url.host == "127.0.0.1"
        assert req.loopback_url.port == 5000
        assert req.headers["Host"] == "admin.example.com"
        assert req.hostname == "admin.example.com"

    def test_https_check_over_http_loopback(self) -> None:
        req = resolve("https://www.example.com/secure", CTX)
        assert req.loopback_url.scheme == "http"
        assert req.headers["X-Forwarded-Proto"] == "https"
        assert req.url.scheme == "https"

    def test_explicit_port_kept_in_host_header(self) -> None:
        req = resolve("http://www.example.com:8080/", CTX)
        assert req.headers["Host"] == "www.example.com:8080"

    def test_https_context(self) -> None:
        ctx = RequestContext(protocol="https", host="10.0.0.5", port=8443)
        req = resolve("/status", ctx)
        assert str(req.loopback_url) == "https://10.0.0.5:8443/status"
        assert req.headers["X-Forwarded-Proto"] == "https"

    def test_redirect_resolved_against_current_url(self) -> None:
        current = resolve("//admin.example.com/a/b", CTX)
        req = resolve("c?x=1", CTX, base=current.url)
        assert req.url == httpx.URL("http://admin.example.com/a/c?x=1")
        assert req.headers["Host"] == "admin.example.com"

    def test_invalid_port(self) -> None:
        with pytest.raises(InvalidURL):
            resolve("http://localhost:notaport/", CTX)

    def test_non_http_redirect_target(self) -> None:
        with pytest.raises(InvalidURL, match="not an HTTP/S URL"):
            resolve("mailto:ops@example.com", CTX)


class TestWithinSameDomain:
    @pytest.mark.parametrize(
        ("target", "current", "expected"),
        [
            ("example.com", "example.com", True),
            ("admin.example.com", "example.com", True),
            ("example.com", "www.example.com", True),
            ("WWW.Example.com", "www.example.com", True),
            ("example.org", "example.com", False),
            ("badexample.com", "example.com", False),
            ("admin.localhost", "localhost", True),
        ],
    )
    def test_rule(self, target: str, current: str, expected: bool) -> None:
        assert within_same_domain(target, current) is expected
