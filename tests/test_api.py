import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeExecutor, FakeUploader, RecordingSleep, load_fixture
from schedulr.api.main import app, get_coordinator, get_executor
from schedulr.shopify.models import GraphQLResponse, UploadResponse
from schedulr.shopify.uploads import StagedUploadCoordinator

DEFINITION_EXISTS = GraphQLResponse(data={"metaobjectDefinitionByType": {"id": "d1", "type": "schedulable_entity"}})


@pytest.fixture()
def executor():
    return FakeExecutor()


@pytest.fixture()
def client(executor, no_billing):
    app.dependency_overrides[get_executor] = lambda: executor
    yield TestClient(app)
    app.dependency_overrides.clear()


def use_uploader(executor, uploader):
    coordinator = StagedUploadCoordinator(executor, uploader, poll_attempts=5, poll_interval=1.0, sleep=RecordingSleep())
    app.dependency_overrides[get_coordinator] = lambda: coordinator


def test_list_entries_sorted(client, executor):
    executor.responses.update({"listEntries": load_fixture("entries.json"), "mediaFiles": load_fixture("media_files.json")})
    response = client.get("/entries", params={"sort": "title:asc"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [e["title"] for e in body["entries"]] == ["back to school", "Summer Sale"]
    assert body["entries"][1]["endAt"] == "2100-12-31T23:59:59+00:00"
    assert body["entries"][1]["desktopBanner"]["url"] == "https://cdn.shopify.com/s/files/1/hero.png"
    assert body["mediaFiles"][0]["id"] == "gid://shopify/MediaImage/2"


def test_list_entries_bad_sort(client):
    response = client.get("/entries", params={"sort": "colour:asc"})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_list_entries_load_error(client, executor):
    executor.responses["listEntries"] = GraphQLResponse(
        data=None, errors=[{"message": "No metaobject definition exists for type"}]
    )
    response = client.get("/entries")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["entries"] == []
    assert "Metaobject definition not found" in body["error"]


def test_create_entry(client, executor):
    executor.responses.update(
        {
            "definitionByType": DEFINITION_EXISTS,
            "metaobjectCreate": GraphQLResponse(
                data={"metaobjectCreate": {"metaobject": {"id": "gid://shopify/Metaobject/9"}, "userErrors": []}}
            ),
        }
    )
    response = client.post(
        "/entries",
        data={
            "title": "  Summer Sale ",
            "position_id": "home-hero",
            "start_at": "2025-06-15T14:30",
            "status": "on",
            "timezone": "America/New_York",
            "timezone_offset": "-240",
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "id": "gid://shopify/Metaobject/9",
        "message": "Entry created successfully!",
    }
    metaobject = executor.variables_for("metaobjectCreate")["metaobject"]
    fields = {f["key"]: f["value"] for f in metaobject["fields"]}
    assert fields["title"] == "Summer Sale"
    assert fields["start_at"] == "2025-06-15T14:30:00-04:00"
    assert fields["end_at"] == "2100-12-31T23:59:59-04:00"
    assert metaobject["capabilities"]["publishable"]["status"] == "ACTIVE"


def test_create_entry_requires_title(client, executor):
    response = client.post("/entries", data={"position_id": "home-hero"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Title is required"}
    assert executor.calls == []


def test_create_entry_invalid_date(client):
    response = client.post("/entries", data={"title": "Sale", "position_id": "hero", "end_at": "whenever"})
    assert response.status_code == 400
    assert "Invalid End Date format" in response.json()["error"]


def test_create_entry_remote_failure(client, executor):
    executor.responses.update(
        {
            "definitionByType": DEFINITION_EXISTS,
            "metaobjectCreate": GraphQLResponse(data=None, errors=[{"message": "Internal error"}]),
        }
    )
    response = client.post("/entries", data={"title": "Sale", "position_id": "hero"})
    assert response.status_code == 502
    assert response.json()["error"] == "Failed to create entry: Internal error"


def test_delete_action(client, executor):
    executor.responses["metaobjectDelete"] = GraphQLResponse(
        data={"metaobjectDelete": {"deletedId": "m1", "userErrors": []}}
    )
    response = client.post("/entries/actions", json={"intent": "delete", "id": "m1"})
    assert response.status_code == 200
    assert response.json()["message"] == "Entry deleted successfully!"


def test_toggle_status_action(client, executor):
    executor.responses["metaobjectUpdate"] = GraphQLResponse(
        data={"metaobjectUpdate": {"metaobject": {"id": "m1"}, "userErrors": []}}
    )
    response = client.post("/entries/actions", json={"intent": "toggleStatus", "id": "m1", "status": "draft"})
    assert response.status_code == 200
    assert response.json()["status"] == "DRAFT"


def test_toggle_status_rejects_unknown_state(client, executor):
    response = client.post("/entries/actions", json={"intent": "toggleStatus", "id": "m1", "status": "PAUSED"})
    assert response.status_code == 400
    assert executor.calls == []


def test_update_action(client, executor):
    executor.responses["metaobjectUpdate"] = GraphQLResponse(
        data={"metaobjectUpdate": {"metaobject": {"id": "m1"}, "userErrors": []}}
    )
    response = client.post(
        "/entries/actions",
        json={"intent": "update", "id": "m1", "headline": "New", "startAt": "2025-07-01T08:00", "timezoneOffset": 330},
    )
    assert response.status_code == 200
    fields = executor.variables_for("metaobjectUpdate")["metaobject"]["fields"]
    assert fields == [
        {"key": "headline", "value": "New"},
        {"key": "start_at", "value": "2025-07-01T08:00:00+05:30"},
    ]


def test_upload_file(client, executor):
    executor.responses.update(
        {
            "stagedUploadsCreate": load_fixture("staged_target.json"),
            "fileCreate": load_fixture("file_create_ready.json"),
        }
    )
    uploader = FakeUploader(expected_order=["key", "policy"])
    use_uploader(executor, uploader)
    response = client.post("/files", files={"file": ("hero.png", b"\x89PNG bytes", "image/png")})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["file"]["id"] == "gid://shopify/MediaImage/555"
    assert body["file"]["url"] == "https://cdn.shopify.com/s/files/1/hero.png"
    assert body["file"]["createdAt"]
    assert uploader.calls[0]["file"].data == b"\x89PNG bytes"


def test_upload_file_byte_failure(client, executor):
    executor.responses["stagedUploadsCreate"] = load_fixture("staged_target.json")
    use_uploader(executor, FakeUploader(response=UploadResponse(status_code=403, body="AccessDenied")))
    response = client.post("/files", files={"file": ("hero.png", b"bytes", "image/png")})

    assert response.status_code == 502
    body = response.json()
    assert body["success"] is False
    assert body["kind"] == "ByteUploadFailed"
    assert body["details"] == "AccessDenied"


def test_upload_without_file(client, executor):
    use_uploader(executor, FakeUploader())
    response = client.post("/files", data={"note": "nothing attached"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No file provided"}


def test_search_files(client, executor):
    executor.responses["mediaFiles"] = load_fixture("media_files.json")
    response = client.get("/files", params={"q": "logo"})
    assert response.status_code == 200
    assert [f["alt"] for f in response.json()["files"]] == ["Old logo"]


@pytest.fixture()
def unsubscribed(executor, monkeypatch):
    monkeypatch.setenv("BILLING_ENABLED", "true")
    monkeypatch.setenv("SHOPIFY_APP_URL", "https://schedulr.example.com")
    executor.responses.update(
        {
            "activeSubscriptions": GraphQLResponse(data={"currentAppInstallation": {"activeSubscriptions": []}}),
            "createSubscription": GraphQLResponse(
                data={"appSubscriptionCreate": {"confirmationUrl": "https://confirm.example/1", "userErrors": []}}
            ),
        }
    )


def assert_redirected(response, executor):
    assert response.headers["X-Shopify-App-Bridge-Redirect"] == "1"
    assert response.headers["X-Shopify-App-Bridge-Redirect-Url"] == "https://confirm.example/1"
    assert executor.operations() == ["activeSubscriptions", "createSubscription"]


def test_billing_gate_redirects_entries(client, executor, unsubscribed):
    assert_redirected(client.get("/entries"), executor)


def test_billing_gate_redirects_file_search(client, executor, unsubscribed):
    assert_redirected(client.get("/files", params={"q": "hero"}), executor)


def test_billing_gate_redirects_uploads(client, executor, unsubscribed):
    uploader = FakeUploader()
    use_uploader(executor, uploader)
    response = client.post("/files", files={"file": ("hero.png", b"bytes", "image/png")})

    assert_redirected(response, executor)
    assert uploader.calls == []


def test_toggle_sort_column(client, executor):
    executor.responses.update({"listEntries": load_fixture("entries.json"), "mediaFiles": load_fixture("media_files.json")})
    response = client.get("/entries", params={"sort": "title:asc", "toggle": "title"})

    assert response.status_code == 200
    body = response.json()
    assert body["sort"] == "title:desc"
    assert [e["title"] for e in body["entries"]] == ["Summer Sale", "back to school"]


def test_toggle_unknown_column(client):
    response = client.get("/entries", params={"toggle": "colour"})
    assert response.status_code == 400


def test_list_entries_media_failure_keeps_entries(client, executor):
    executor.responses.update({"listEntries": load_fixture("entries.json"), "mediaFiles": httpx.ConnectError("down")})
    response = client.get("/entries")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert len(body["entries"]) == 2
    assert body["mediaFiles"] == []


def test_list_entries_transport_failure(client, executor):
    executor.responses["listEntries"] = httpx.ConnectError("down")
    response = client.get("/entries")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["entries"] == []
    assert body["mediaFiles"] == []


def test_unexpected_errors_answer_json(executor, no_billing):
    executor.responses["metaobjectDelete"] = KeyError("deletedId")
    app.dependency_overrides[get_executor] = lambda: executor
    try:
        response = TestClient(app, raise_server_exceptions=False).post(
            "/entries/actions", json={"intent": "delete", "id": "m1"}
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("Failed to process request:")
