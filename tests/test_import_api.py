"""
HTTP-level tests for the bulk user import endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from app.api.routers.imports import parse_import_config
from app.domain.users.service import get_user_service
from app.main import app

client = TestClient(app)


@pytest.fixture
def override_creator(fake_creator):
    """Install a fake user service for the duration of a test and return it."""
    installed = {}

    def _install(**kwargs):
        creator = fake_creator(**kwargs)
        app.dependency_overrides[get_user_service] = lambda: creator
        installed["creator"] = creator
        return creator

    yield _install
    app.dependency_overrides.pop(get_user_service, None)


def _upload(content: str, filename: str = "users.csv", content_type: str = "text/csv", **form):
    return client.post(
        "/import-users",
        files={"csv_file": (filename, content.encode("utf-8"), content_type)},
        data=form,
    )


def test_all_success_returns_200(override_creator, csv_builder, user_rows):
    override_creator()

    response = _upload(csv_builder(user_rows(3)), worker_count="3")

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "CSV import completed"
    assert payload["summary"]["total_records"] == 3
    assert payload["summary"]["success_count"] == 3
    assert payload["config"]["worker_count"] == 3
    assert payload["file_info"]["filename"] == "users.csv"
    for result in payload["summary"]["results"]:
        assert "password" not in result["record"]
        assert result["user_id"].startswith("user-")


def test_partial_failure_returns_206(override_creator, csv_builder):
    override_creator(failures={"bob@example.com": "email already exists"})
    content = csv_builder([
        ("alice", "alice@example.com", "password123", "member"),
        ("bob", "bob@example.com", "password123", "member"),
    ])

    response = _upload(content)

    assert response.status_code == 206
    summary = response.json()["summary"]
    assert summary["success_count"] == 1
    assert summary["failure_count"] == 1
    failed = [r for r in summary["results"] if not r["success"]]
    assert failed[0]["error"] == "email already exists"


def test_skipped_duplicates_are_listed_in_response(override_creator, csv_builder):
    creator = override_creator()
    content = csv_builder([
        ("alice", "alice@example.com", "password123", "member"),
        ("alice.again", "ALICE@example.com", "password123", "member"),
    ])

    response = _upload(content)

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["total_records"] == 1
    assert summary["skipped_duplicates"] == [{
        "line_number": 3,
        "username": "alice.again",
        "email": "ALICE@example.com",
        "reason": "duplicate email in file (first seen at line 2)",
    }]
    assert len(creator.calls) == 1


def test_all_failed_returns_400(override_creator, csv_builder):
    override_creator()
    content = csv_builder([("alice", "alice@example.com", "password123", "owner")])

    response = _upload(content)

    assert response.status_code == 400
    assert response.json()["summary"]["failure_count"] == 1


def test_invalid_header_returns_400(override_creator):
    override_creator()

    response = _upload("name,mail,pass,type\nalice,alice@example.com,pw,member\n")

    assert response.status_code == 400
    assert "invalid CSV header" in response.json()["detail"]


def test_header_only_file_returns_empty_summary(override_creator):
    override_creator()

    response = _upload("username,email,password,role\n")

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["total_records"] == 0
    assert summary["results"] == []


def test_non_csv_upload_is_rejected(override_creator):
    override_creator()

    response = _upload("whatever", filename="users.txt", content_type="text/plain")

    assert response.status_code == 400
    assert "CSV" in response.json()["detail"]


def test_missing_file_is_rejected(override_creator):
    override_creator()

    response = client.post("/import-users", data={"worker_count": "2"})

    assert response.status_code == 400
    assert "csv_file" in response.json()["detail"]


def test_timeout_returns_504_with_partial_summary(override_creator, csv_builder, user_rows):
    override_creator(delay=1.2)

    response = _upload(csv_builder(user_rows(3)), worker_count="1", timeout_seconds="1")

    assert response.status_code == 504
    payload = response.json()
    assert "timed out" in payload["error"]
    assert payload["summary"]["cancelled"] is True
    assert payload["summary"]["total_records"] == 3
    assert len(payload["summary"]["results"]) < 3


def test_template_download():
    response = client.get("/import-users/template")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0] == "username,email,password,role"


def test_status_lists_capabilities():
    response = client.get("/import-users/status")

    assert response.status_code == 200
    capabilities = response.json()["import_capabilities"]
    assert capabilities["required_columns"] == ["username", "email", "password", "role"]
    assert capabilities["supported_roles"] == ["manager", "member"]
    assert capabilities["max_workers"] == 20


def test_out_of_range_overrides_keep_defaults():
    config = parse_import_config(
        worker_count="50",
        batch_size="abc",
        max_records="10",
        timeout_seconds="0",
        skip_duplicates="false",
    )

    assert config.worker_count == 5
    assert config.batch_size == 100
    assert config.max_records == 10
    assert config.timeout_seconds == 30
    assert config.skip_duplicates is False


def test_config_accepts_in_range_overrides():
    config = parse_import_config(worker_count="20", batch_size="1", timeout_seconds="300", skip_duplicates="1")

    assert config.worker_count == 20
    assert config.batch_size == 1
    assert config.timeout_seconds == 300
    assert config.skip_duplicates is True


def test_health():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
