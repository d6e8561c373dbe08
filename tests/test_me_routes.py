"""HTTP tests for GET/OPTIONS /api/me.

Apps are built through the factory with an injected RateLimitService so every
test starts with fresh counters and, where Redis is involved, a fake store.
"""

from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from portfolio_api.core.app_factory import create_app
from portfolio_api.data.profile import DEFAULT_CATALOG
from portfolio_api.services.profile_service import get_profile_catalog
from portfolio_api.services.rate_limit_service import RateLimitService


REDIS_URL = "redis://localhost:6379/0"

CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-methods": "GET, OPTIONS",
    "access-control-allow-headers": "Content-Type",
    "access-control-max-age": "86400",
}


@pytest.fixture
def build_client(make_service) -> Iterator[Callable[..., TestClient]]:
    """Return a factory creating a TestClient around a fresh app."""

    clients: list[TestClient] = []

    def _build(service: RateLimitService | None = None, **service_kwargs: Any) -> TestClient:
        app = create_app(
            rate_limit_service=service or make_service(**service_kwargs),
            configure_logs=False,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _build

    for client in clients:
        client.__exit__(None, None, None)


def _from(ip: str) -> dict[str, str]:
    return {"X-Forwarded-For": ip}


def assert_standard_headers(response) -> None:
    for name, value in CORS_HEADERS.items():
        assert response.headers[name] == value
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate, private"
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"


class TestGetMe:
    def test_returns_profile_payload(self, build_client) -> None:
        client = build_client()

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Barry Henry"
        assert data["status"] == "operational"
        assert data["title"] == DEFAULT_CATALOG.experience[0].role
        assert data["stack"] == ["TypeScript", "React", "Next.js", "Git"]
        assert data["latest_project"]["id"] == DEFAULT_CATALOG.projects[0].id
        assert data["contact"]["email"] == DEFAULT_CATALOG.social_links.email
        assert data["documentation"] == "https://barryhenry.com/docs"
        assert_standard_headers(response)

    def test_eleventh_request_is_rejected(self, build_client) -> None:
        client = build_client(requests=10, window_seconds=60)

        for _ in range(10):
            assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 429
        retry_after = int(response.headers["Retry-After"])
        assert 1 <= retry_after <= 60
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        error = response.json()["error"]
        assert error["code"] == "rate_limited"
        assert error["message"] == "Too Many Requests"
        assert error["request_id"] == response.headers["X-Request-ID"]
        assert_standard_headers(response)

    def test_clients_are_limited_independently(self, build_client) -> None:
        client = build_client(requests=1)

        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200
        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 429
        assert client.get("/api/me", headers=_from("5.6.7.8")).status_code == 200

    def test_first_forwarded_address_is_the_client(self, build_client) -> None:
        client = build_client(requests=1)

        assert client.get("/api/me", headers=_from("9.9.9.9, 10.0.0.1")).status_code == 200
        assert client.get("/api/me", headers=_from("9.9.9.9, 10.0.0.2")).status_code == 429

    def test_x_real_ip_used_without_forwarded_for(self, build_client) -> None:
        client = build_client(requests=1)

        assert client.get("/api/me", headers={"X-Real-IP": "4.4.4.4"}).status_code == 200
        assert client.get("/api/me", headers={"X-Real-IP": "4.4.4.4"}).status_code == 429
        assert client.get("/api/me", headers={"X-Real-IP": "8.8.8.8"}).status_code == 200

    def test_counter_resets_after_window(self, build_client, make_service, fake_clock) -> None:
        client = build_client(make_service(requests=1, window_seconds=60))

        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200
        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 429

        fake_clock.advance(61)

        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200

    def test_rate_limiting_can_be_disabled(self, build_client) -> None:
        client = build_client(requests=1, enabled=False)

        for _ in range(3):
            assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200

    def test_uses_redis_counters_when_configured(
        self, build_client, make_service, make_connector, fake_redis
    ) -> None:
        service = make_service(redis_url=REDIS_URL, connector=make_connector(fake_redis), requests=2)
        client = build_client(service)

        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200
        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 200
        assert client.get("/api/me", headers=_from("1.2.3.4")).status_code == 429
        assert fake_redis.store["ratelimit:ip:1.2.3.4"][0] == 2


class TestGetMeFailures:
    def test_invalid_redis_url_is_500(self, build_client) -> None:
        client = build_client(redis_url="not-a-redis-url")

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "store_url_invalid"
        assert error["message"] == "Server misconfigured: REDIS_URL invalid"
        assert "not-a-redis-url" not in response.text
        assert_standard_headers(response)

    def test_required_redis_missing_is_500(self, build_client) -> None:
        client = build_client(redis_mode="required")

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "store_url_missing"

    @pytest.mark.parametrize(
        ("field", "code"),
        [("experience", "experience_empty"), ("projects", "projects_empty")],
    )
    def test_empty_catalog_is_500_before_rate_limiting(
        self, build_client, make_service, field: str, code: str
    ) -> None:
        service = make_service(requests=1)
        client = build_client(service)
        empty = DEFAULT_CATALOG.model_copy(update={field: ()})
        client.app.dependency_overrides[get_profile_catalog] = lambda: empty

        for _ in range(3):
            response = client.get("/api/me", headers=_from("1.2.3.4"))
            assert response.status_code == 500
            assert response.json()["error"]["code"] == code

        assert len(service.memory_limiter) == 0

    def test_unreachable_store_is_503(self, build_client, make_service, make_connector, fake_redis) -> None:
        service = make_service(
            redis_url=REDIS_URL,
            connector=make_connector(fake_redis, failures=100),
            store_failure_policy="unavailable",
        )
        client = build_client(service)

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "store_unavailable"
        assert "localhost" not in error["message"]
        assert_standard_headers(response)

    @pytest.mark.parametrize("policy", ["memory", "open"])
    def test_unreachable_store_degrades_per_policy(
        self, build_client, make_service, make_connector, fake_redis, policy: str
    ) -> None:
        service = make_service(
            redis_url=REDIS_URL,
            connector=make_connector(fake_redis, failures=100),
            store_failure_policy=policy,
        )
        client = build_client(service)

        response = client.get("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 200
        assert response.json()["name"] == "Barry Henry"


class TestPreflight:
    def test_options_returns_204_with_cors_headers(self, build_client) -> None:
        client = build_client()

        response = client.options("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 204
        assert response.content == b""
        assert_standard_headers(response)

    def test_options_not_limited_by_default(self, build_client) -> None:
        client = build_client(requests=1)
        client.get("/api/me", headers=_from("1.2.3.4"))

        for _ in range(3):
            assert client.options("/api/me", headers=_from("1.2.3.4")).status_code == 204

    def test_options_limited_when_enabled(self, build_client) -> None:
        client = build_client(requests=1, limit_preflight=True)

        assert client.options("/api/me", headers=_from("1.2.3.4")).status_code == 204
        response = client.options("/api/me", headers=_from("1.2.3.4"))

        assert response.status_code == 429
        assert "Retry-After" in response.headers

    def test_options_survives_store_outage(
        self, build_client, make_service, make_connector, fake_redis
    ) -> None:
        service = make_service(
            redis_url=REDIS_URL,
            connector=make_connector(fake_redis, failures=100),
            store_failure_policy="unavailable",
            limit_preflight=True,
        )
        client = build_client(service)

        assert client.options("/api/me", headers=_from("1.2.3.4")).status_code == 204


class TestHealth:
    def test_reports_memory_backend(self, build_client) -> None:
        client = build_client()

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "rate_limit": {"enabled": True, "backend": "memory", "store_state": "not_configured"},
        }
        assert "access-control-allow-origin" not in response.headers

    def test_reports_redis_state_without_connecting(
        self, build_client, make_service, make_connector, fake_redis
    ) -> None:
        connector = make_connector(fake_redis)
        client = build_client(make_service(redis_url=REDIS_URL, connector=connector))

        response = client.get("/health")

        assert response.json()["rate_limit"]["store_state"] == "disconnected"
        assert connector.calls == 0

    def test_shutdown_closes_store(self, make_service, make_connector, fake_redis) -> None:
        service = make_service(redis_url=REDIS_URL, connector=make_connector(fake_redis))
        app = create_app(rate_limit_service=service, configure_logs=False)

        with TestClient(app) as client:
            client.get("/api/me", headers=_from("1.2.3.4"))
            assert service.store_state == "connected"

        assert fake_redis.closed is True
        assert service.store_state == "disconnected"
