"""Tests for domain/path cookie scoping."""

from __future__ import annotations

import threading

import pytest

from pigeon.network.cookies import CookieJar


def _pairs(header: str) -> set[str]:
    return {part for part in header.split("; ") if part}


@pytest.fixture
def jar() -> CookieJar:
    return CookieJar()


class TestScoping:
    def test_empty_jar(self, jar):
        assert jar.cookies_for("https://example.com/") == ""
        assert len(jar) == 0

    def test_host_only_cookie(self, jar):
        jar.ingest("sid=abc", "https://www.example.com/")
        assert jar.cookies_for("https://www.example.com/x") == "sid=abc"
        assert jar.cookies_for("https://api.example.com/x") == ""

    def test_domain_attribute_widens_scope(self, jar):
        jar.ingest("sid=abc; Domain=example.com", "https://www.example.com/")
        assert jar.cookies_for("https://api.example.com/") == "sid=abc"
        assert jar.cookies_for("https://example.org/") == ""

    def test_default_path_is_request_directory(self, jar):
        jar.ingest("pref=1", "https://example.com/app/login")
        assert jar.cookies_for("https://example.com/app/home") == "pref=1"
        assert jar.cookies_for("https://example.com/other") == ""

    def test_explicit_path(self, jar):
        jar.ingest("root=1; Path=/", "https://example.com/deep/nested/page")
        assert jar.cookies_for("https://example.com/") == "root=1"

    def test_secure_cookie_not_sent_over_http(self, jar):
        jar.ingest("s=1; Secure", "https://example.com/")
        assert jar.cookies_for("https://example.com/") == "s=1"
        assert jar.cookies_for("http://example.com/") == ""

    def test_expired_cookie_removed(self, jar):
        jar.ingest("a=1; Path=/", "https://example.com/")
        jar.ingest("a=1; Path=/; Max-Age=0", "https://example.com/")
        assert jar.cookies_for("https://example.com/") == ""

    def test_later_value_wins(self, jar):
        jar.ingest("a=1; Path=/", "https://example.com/")
        jar.ingest("a=2; Path=/", "https://example.com/")
        assert jar.cookies_for("https://example.com/") == "a=2"


class TestIngest:
    def test_multiple_values(self, jar):
        jar.ingest(["a=1; Path=/", "b=2; Path=/"], "https://example.com/")
        assert _pairs(jar.cookies_for("https://example.com/")) == {"a=1", "b=2"}
        assert sorted(jar) == ["a", "b"]

    def test_empty_values_ignored(self, jar):
        jar.ingest([], "https://example.com/")
        jar.ingest("", "https://example.com/")
        assert len(jar) == 0

    def test_clear(self, jar):
        jar.ingest("a=1", "https://example.com/")
        jar.clear()
        assert len(jar) == 0
        assert "cookies=0" in repr(jar)

    def test_concurrent_ingest(self, jar):
        def worker(n: int) -> None:
            for i in range(20):
                jar.ingest(f"c{n}_{i}=v; Path=/", "https://example.com/")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(jar) == 80
