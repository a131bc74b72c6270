"""Tests for browser_relay.hosts."""

from __future__ import annotations

import pytest

from browser_relay.hosts import is_local_url, is_scrapable_url


class TestIsLocalUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost:3000/",
            "http://127.0.0.1/",
            "http://[::1]:8080/",
            "http://0.0.0.0/",
            "http://host.docker.internal/api",
            "http://printer.local/",
            "http://192.168.1.20/",
            "http://10.0.0.5/",
            "http://172.16.0.1/",
            "http://172.31.255.1/",
        ],
    )
    def test_local(self, url):
        assert is_local_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/",
            "http://172.32.0.1/",
            "http://172.15.0.1/",
            "http://8.8.8.8/",
            "not a url",
            "",
        ],
    )
    def test_public(self, url):
        assert not is_local_url(url)

    def test_known_local_hosts(self):
        assert is_local_url("https://intranet.corp/x", ["Intranet.Corp"])
        assert not is_local_url("https://intranet.corp/x")


class TestIsScrapableUrl:
    def test_regular_page(self):
        assert is_scrapable_url("https://example.com/about")

    @pytest.mark.parametrize(
        "url",
        [None, "", "data:text/html,<p>hi</p>", "https://example.com/report.PDF"],
    )
    def test_not_scrapable(self, url):
        assert not is_scrapable_url(url)
