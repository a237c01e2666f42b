"""HTTP-level tests for the /proxy endpoint and the app shell."""

import httpx
import respx
from fastapi.testclient import TestClient

from finproxy.app.core.config import Settings
from finproxy.app.main import create_app

QUOTE_URL = "https://finnhub.io/api/v1/quote?symbol=AAPL"


def _mock_quote(router: respx.MockRouter) -> respx.Route:
    return router.get("https://finnhub.io/api/v1/quote").mock(
        return_value=httpx.Response(200, json={"c": 189.5})
    )


class TestProxyEndpoint:
    """Test GET /proxy responses, headers and error bodies."""

    def test_success_headers_and_body(self, client):
        with respx.mock(assert_all_called=False) as router:
            _mock_quote(router)
            resp = client.get("/proxy", params={"url": QUOTE_URL})

        assert resp.status_code == 200
        assert resp.json() == {"c": 189.5}
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.headers["cache-control"] == "public, max-age=5, stale-while-revalidate=25"
        assert resp.headers["x-proxy-cache"] == "MISS"
        assert resp.headers["x-response-time"].endswith("ms")
        assert "x-request-id" in resp.headers

    def test_second_request_is_cache_hit(self, client):
        with respx.mock(assert_all_called=False) as router:
            route = _mock_quote(router)
            client.get("/proxy", params={"url": QUOTE_URL})
            resp = client.get("/proxy", params={"url": QUOTE_URL})

        assert resp.headers["x-proxy-cache"] == "HIT"
        assert resp.json() == {"c": 189.5}
        assert route.call_count == 1
        assert route.calls.last.request.url.params["token"] == "server-token"

    def test_missing_url(self, client):
        resp = client.get("/proxy")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing url parameter", "code": "MISSING_URL"}
        assert resp.headers["cache-control"] == "no-store"

    def test_non_http_protocol(self, client):
        resp = client.get("/proxy", params={"url": "ftp://finnhub.io/data"})

        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_URL"
        assert resp.json()["error"] == "Only HTTP and HTTPS protocols are allowed"
        assert resp.headers["cache-control"] == "no-store"

    def test_blocked_host(self, client):
        with respx.mock(assert_all_called=False) as router:
            route = router.route().mock(return_value=httpx.Response(200))
            resp = client.get("/proxy", params={"url": "https://evil.com/api"})

        assert resp.status_code == 400
        assert resp.json() == {
            "error": "Host evil.com is not in the allowlist",
            "code": "INVALID_URL",
        }
        assert route.call_count == 0

    def test_rate_limit_after_capacity(self, client):
        with respx.mock(assert_all_called=False) as router:
            _mock_quote(router)
            statuses = [
                client.get("/proxy", params={"url": QUOTE_URL}).status_code
                for _ in range(60)
            ]
            resp = client.get("/proxy", params={"url": QUOTE_URL})

        assert statuses == [200] * 60
        assert resp.status_code == 429
        assert resp.json() == {
            "error": "Rate limit exceeded",
            "code": "RATE_LIMIT_EXCEEDED",
            "details": "Too many requests to finnhub.io",
        }
        assert resp.headers["cache-control"] == "no-store"
        assert resp.headers["retry-after"] == "1"
        assert resp.headers["x-ratelimit-remaining"] == "0"

    def test_rate_limit_is_per_caller(self, client):
        with respx.mock(assert_all_called=False) as router:
            _mock_quote(router)
            for _ in range(60):
                client.get(
                    "/proxy", params={"url": QUOTE_URL}, headers={"x-forwarded-for": "1.1.1.1"}
                )
            blocked = client.get(
                "/proxy", params={"url": QUOTE_URL}, headers={"x-forwarded-for": "1.1.1.1"}
            )
            other = client.get(
                "/proxy",
                params={"url": QUOTE_URL},
                headers={"x-forwarded-for": "2.2.2.2, 10.0.0.1"},
            )

        assert blocked.status_code == 429
        assert other.status_code == 200

    def test_upstream_error(self, client):
        with respx.mock(assert_all_called=False) as router:
            router.get("https://finnhub.io/api/v1/quote").mock(
                return_value=httpx.Response(502, text="bad gateway")
            )
            resp = client.get("/proxy", params={"url": QUOTE_URL})

        assert resp.status_code == 502
        assert resp.json() == {
            "error": "Upstream error: 502",
            "code": "UPSTREAM_ERROR",
            "details": "bad gateway",
        }
        assert resp.headers["cache-control"] == "no-store"

    def test_upstream_timeout(self, client):
        with respx.mock(assert_all_called=False) as router:
            router.get("https://finnhub.io/api/v1/quote").mock(
                side_effect=httpx.ConnectTimeout("timed out")
            )
            resp = client.get("/proxy", params={"url": QUOTE_URL})

        assert resp.status_code == 408
        assert resp.json() == {"error": "Request timeout", "code": "TIMEOUT"}

    def test_head_request(self, client):
        resp = client.head("/proxy")

        assert resp.status_code == 200
        assert resp.content == b""

    def test_request_id_echoed(self, client):
        resp = client.get("/proxy", headers={"X-Request-ID": "req-123"})

        assert resp.headers["x-request-id"] == "req-123"


class TestAppShell:
    """Test health, stats and metrics endpoints."""

    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "cache" in data["components"]
        assert "rate_limiter" in data["components"]

    def test_stats_reflect_traffic(self, client):
        with respx.mock(assert_all_called=False) as router:
            _mock_quote(router)
            client.get("/proxy", params={"url": QUOTE_URL})
            client.get("/proxy", params={"url": QUOTE_URL})
        client.get("/proxy")

        data = client.get("/stats").json()

        assert data["total_requests"] == 3
        assert data["outcomes"] == {"OK": 2, "MISSING_URL": 1}
        assert data["served_from_cache"] == 1
        assert data["cache"]["hits"] == 1
        assert data["rate_limiter"]["total_buckets"] == 1

    def test_prometheus_metrics(self, client):
        client.get("/proxy")

        resp = client.get("/metrics")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert 'finproxy_requests_total{code="MISSING_URL"} 1' in resp.text
        assert "finproxy_cache_entries 0" in resp.text

    def test_single_flight_setting_reaches_service(self):
        app = create_app(Settings(_env_file=None, proxy_single_flight=True))

        with TestClient(app) as test_client:
            assert test_client.app.state.proxy_service.single_flight is True

        assert app.state.proxy_service is None
