"""Tests for the upstream URL allowlist guard."""

import httpx
import pytest

from finproxy.app.exceptions import BlockedHostError, InvalidUrlError, SuspiciousPathError
from finproxy.app.services.url_validator import validate_url


class TestValidateUrl:
    def test_allowlisted_url_is_returned_parsed(self):
        url = validate_url("https://finnhub.io/api/v1/quote?symbol=AAPL")

        assert isinstance(url, httpx.URL)
        assert url.host == "finnhub.io"
        assert url.params["symbol"] == "AAPL"

    def test_http_scheme_allowed(self):
        assert validate_url("http://api.polygon.io/v2/x").host == "api.polygon.io"

    @pytest.mark.parametrize(
        "raw",
        ["ftp://finnhub.io/file", "file:///etc/passwd", "javascript:alert(1)", "not a url"],
    )
    def test_bad_protocol_rejected(self, raw):
        with pytest.raises(InvalidUrlError) as exc_info:
            validate_url(raw)

        assert exc_info.value.code == "INVALID_URL"
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        "raw",
        [
            "https://evil.com/api",
            "https://sub.finnhub.io/api",
            "https://finnhub.io.evil.com/api",
            "https://evil.com/?u=https://finnhub.io/",
        ],
    )
    def test_non_member_host_blocked(self, raw):
        with pytest.raises(BlockedHostError) as exc_info:
            validate_url(raw)

        assert "not in the allowlist" in exc_info.value.message
        assert exc_info.value.code == "INVALID_URL"

    @pytest.mark.parametrize(
        "raw",
        [
            "https://finnhub.io/api/../secret",
            "https://finnhub.io//api/v1/quote",
            "https://finnhub.io/api/v1//quote",
        ],
    )
    def test_suspicious_path_rejected(self, raw):
        with pytest.raises(SuspiciousPathError) as exc_info:
            validate_url(raw)

        assert exc_info.value.message == "Invalid path detected"

    def test_query_is_not_path_checked(self):
        url = validate_url("https://finnhub.io/api/v1/news?next=a//b")
        assert url.params["next"] == "a//b"

    def test_custom_allowlist(self):
        assert validate_url("https://example.com/x", allowlist={"example.com"}).host == "example.com"
        with pytest.raises(BlockedHostError):
            validate_url("https://finnhub.io/x", allowlist={"example.com"})
