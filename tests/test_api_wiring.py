from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from app.api import projects as projects_api
from app.errors import GENERIC_ERROR_MESSAGE, register_error_handlers
from app.middleware.api_rate_limit import (
    RATE_LIMIT_MESSAGE,
    APIRateLimitMiddleware,
    MemoryWindowStore,
    RedisWindowStore,
)
from app.services.result import ServiceResult, service_boundary


def test_list_projects_wires_arguments_in_expected_order(monkeypatch, db_session, identity_for, pmo_account):
    captured: dict[str, object] = {}

    def _fake_list(db, *args):
        captured["db"] = db
        captured["args"] = args
        return ServiceResult.ok([], pagination={"page": 2, "limit": 5, "total": 0, "totalPages": 0})

    monkeypatch.setattr(projects_api.projects_service.projects, "list", _fake_list)
    identity = identity_for(pmo_account)

    response = projects_api.list_projects(
        status="active",
        department_id="dept-1",
        search="web",
        order_by="name",
        order_dir="asc",
        page=2,
        limit=5,
        identity=identity,
        db=db_session,
    )

    assert response.status_code == 200
    assert captured["db"] is db_session
    assert captured["args"] == (identity, "active", "dept-1", "web", "name", "asc", 2, 5)


# =============================================================================
# HTTP surface
# =============================================================================


class TestEnvelope:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_login_returns_camel_case_tokens(self, client, staff_account):
        response = client.post("/auth/login", json={"username": "staff", "password": "secret123"})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == 200
        assert body["data"]["tokenType"] == "bearer"
        assert body["data"]["accessToken"]
        assert body["data"]["account"]["username"] == "staff"
        assert "passwordHash" not in body["data"]["account"]

    def test_bad_credentials(self, client, staff_account):
        response = client.post("/auth/login", json={"username": "staff", "password": "wrong"})

        assert response.status_code == 401
        assert response.json()["status"] == 401
        assert "data" not in response.json()

    def test_missing_token(self, client):
        response = client.get("/tasks")

        assert response.status_code == 401
        assert set(response.json()) == {"status", "message"}

    def test_forbidden(self, client, auth_headers, staff_account):
        response = client.post("/projects", json={"name": "Side project"}, headers=auth_headers(staff_account))

        assert response.status_code == 403
        assert response.json()["status"] == 403

    def test_request_validation_uses_400(self, client, auth_headers, pmo_account):
        response = client.get("/projects", params={"orderDir": "sideways"}, headers=auth_headers(pmo_account))

        assert response.status_code == 400
        assert "orderDir" in response.json()["message"]

    def test_list_carries_pagination(self, client, auth_headers, project, pmo_account):
        response = client.get("/projects", params={"limit": 10}, headers=auth_headers(pmo_account))

        body = response.json()
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "totalPages": 1}
        assert body["data"][0]["name"] == "Website relaunch"
        assert body["data"][0]["departmentId"]

    def test_staff_progress_update(self, client, auth_headers, task, staff_account):
        response = client.put(
            f"/tasks/{task.id}",
            json={"status": "in-progress", "progress": "40%", "reason": "started"},
            headers=auth_headers(staff_account),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert (data["status"], data["progress"]) == ("in_progress", 40)
        assert data["members"][0]["role"] == "lead"

    def test_staff_dashboard_with_reports(self, client, auth_headers, task, staff_account):
        response = client.get("/dashboard/stats", params={"type": "reports"}, headers=auth_headers(staff_account))

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["tasksByPriority"] == {"medium": 1}
        assert data["departmentData"] == [{"name": "Engineering", "total": 1, "completed": 0, "overdue": 0}]

    def test_unknown_task(self, client, auth_headers, pmo_account):
        response = client.get("/tasks/not-a-uuid", headers=auth_headers(pmo_account))
        assert response.status_code in (400, 404)


class TestRateLimit:
    def _app(self, **kwargs):
        app = FastAPI()
        app.add_middleware(APIRateLimitMiddleware, redis_url="", enabled=True, **kwargs)
        register_error_handlers(app)

        @app.get("/ping")
        def ping():
            return {"ok": True}

        @app.get("/health")
        def health():
            return {"status": "ok"}

        return app

    def test_second_request_in_window_is_rejected(self):
        client = TestClient(self._app(limit=1))

        first = client.get("/ping")
        assert first.status_code == 200
        assert first.headers["X-RateLimit-Limit"] == "1"

        second = client.get("/ping")
        assert second.status_code == 429
        assert second.json() == {"status": 429, "message": RATE_LIMIT_MESSAGE}
        assert "Retry-After" in second.headers

    def test_exempt_paths_are_not_counted(self):
        client = TestClient(self._app(limit=1))

        for _ in range(3):
            assert client.get("/health").status_code == 200
        assert client.get("/ping").status_code == 200

    def test_clients_are_bucketed_by_forwarded_ip(self):
        client = TestClient(self._app(limit=1))

        assert client.get("/ping", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429

    def test_auth_endpoints_use_the_stricter_bucket(self):
        client = TestClient(self._app(limit=100, auth_limit=1))

        assert client.post("/auth/login").status_code != 429
        assert client.post("/auth/login").status_code == 429
        assert client.get("/ping").status_code == 200

    def test_redis_errors_fail_open(self):
        class _BrokenRedis:
            def pipeline(self):
                raise ConnectionError("redis went away")

        middleware = APIRateLimitMiddleware(self._app(), limit=1, redis_url="redis://cache:6379/0", enabled=True)
        middleware._redis_store = RedisWindowStore(_BrokenRedis())
        middleware._redis_checked = True
        request = Request(
            {
                "type": "http",
                "method": "GET",
                "path": "/ping",
                "headers": [],
                "query_string": b"",
                "client": ("10.0.0.1", 5000),
                "server": ("testserver", 80),
                "scheme": "http",
                "root_path": "",
            }
        )

        assert middleware.check(request).allowed
        assert middleware.check(request).allowed


def test_memory_window_store_reports_remaining():
    store = MemoryWindowStore()

    first = store.hit("ip:1", limit=2, window=60)
    second = store.hit("ip:1", limit=2, window=60)
    third = store.hit("ip:1", limit=2, window=60)

    assert (first.remaining, second.remaining) == (1, 0)
    assert not third.allowed
    assert 0 < third.reset_in <= 61


def test_memory_window_store_forgets_idle_clients():
    clock = [1000.0]
    store = MemoryWindowStore(clock=lambda: clock[0])

    for index in range(50):
        store.hit(f"ip:10.0.0.{index}", limit=5, window=60)
    assert len(store) == 50

    clock[0] += 61
    store.hit("ip:10.0.1.1", limit=5, window=60)

    assert len(store) == 1
    assert store.hit("ip:10.0.0.1", limit=5, window=60).remaining == 4


def test_unexpected_service_error_becomes_generic_500(db_session):
    @service_boundary
    def broken(db):
        raise RuntimeError("boom")

    result = broken(db_session)

    assert (result.status, result.message) == (500, GENERIC_ERROR_MESSAGE)
