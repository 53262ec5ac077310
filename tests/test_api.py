import json
from pathlib import Path
from typing import Callable, Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from clauseiq.config import Settings
from clauseiq.context import AppContext, RateLimiters
from clauseiq.main import create_app
from clauseiq.services.rag import NO_RESULTS_ANSWER

from conftest import FakeClock, RecordingLLM

LEASE = (
    "This lease agreement is made between the landlord and the tenant. "
    "The tenant shall give 30 days written notice before terminating the lease. "
    "Rent is payable monthly in advance on the first day of each month."
)


@pytest.fixture
def client(app_context: AppContext) -> Iterator[TestClient]:
    with TestClient(create_app(app_context)) as test_client:
        yield test_client


@pytest.fixture
def alice(token_for: Callable[[str], str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for('alice')}"}


@pytest.fixture
def bob(token_for: Callable[[str], str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for('bob')}"}


def _upload(client: TestClient, headers: Dict[str, str], case_name: str = "Case A", text: str = LEASE):
    return client.post(
        "/documents",
        headers=headers,
        files={"file": ("lease.txt", text.encode("utf-8"), "text/plain")},
        data={"metadata": json.dumps({"caseName": case_name})},
    )


def test_health_endpoints(client: TestClient) -> None:
    assert client.get("/").text == "ok"
    assert client.get("/healthz").text == "ok"
    assert client.get("/readyz").status_code == 200


def test_readiness_reports_unavailable_vector_store(client: TestClient, app_context: AppContext) -> None:
    async def _broken_describe():
        raise ConnectionError("index unreachable")

    app_context.vector_store.describe = _broken_describe

    response = client.get("/readyz")

    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "vector_store_unavailable"
    assert body["message"] == "Vector store is not ready: index unreachable"
    assert "processingTimeMs" in body


def test_app_without_context_builds_one_and_logs_to_configured_dir(
    monkeypatch: pytest.MonkeyPatch, settings: Settings
) -> None:
    monkeypatch.setattr(Settings, "from_env", classmethod(lambda cls: settings))
    app = create_app()

    with TestClient(app) as test_client:
        assert test_client.get("/readyz").text == "ok"
        assert app.state.context.settings is settings

    assert app.state.context is None
    assert (Path(settings.log_dir) / "ingest_audit.log").exists()


@pytest.mark.parametrize(
    "method, path",
    [
        ("post", "/documents"),
        ("post", "/search"),
        ("post", "/qa"),
        ("get", "/documents/labels"),
        ("post", "/documents/labels"),
        ("get", "/inspect"),
    ],
)
def test_protected_endpoints_require_bearer_token(client: TestClient, method: str, path: str) -> None:
    response = getattr(client, method)(path)

    assert response.status_code == 401
    body = response.json()
    assert body["error"] == "unauthorized"
    assert body["message"] == "Unauthorized"
    assert "processingTimeMs" in body


def test_token_signed_with_another_secret_is_rejected(client: TestClient, token_for: Callable[..., str]) -> None:
    headers = {"Authorization": f"Bearer {token_for('alice', secret='other-secret')}"}

    response = client.post("/search", headers=headers, json={"query": "notice", "caseName": "Case A"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_upload_search_and_answer_round_trip(client: TestClient, alice: Dict[str, str], llm: RecordingLLM) -> None:
    uploaded = _upload(client, alice)

    assert uploaded.status_code == 200
    body = uploaded.json()
    assert body["success"] is True
    assert body["usedCase"] == "case-a"
    assert body["chunks"] == 1
    assert body["ocrUsed"] is False
    assert uploaded.headers["X-Request-ID"]
    doc_id = body["docId"]

    search = client.post("/search", headers=alice, json={"query": "notice period", "caseName": "Case A"})
    assert search.status_code == 200
    results = search.json()
    assert results["usedCase"] == "case-a"
    assert results["totalResults"] == 1
    document = results["documents"][0]
    assert document["docId"] == doc_id
    assert document["fileName"] == "lease.txt"
    assert document["chunkCount"] == 1
    assert document["metadata"] == {"caseName": "Case A"}

    answer = client.post("/qa", headers=alice, json={"question": "What is the notice period?", "caseName": "Case A"})
    assert answer.status_code == 200
    payload = answer.json()
    assert payload["answer"] == "The notice period is 30 days."
    assert payload["usedCase"] == "case-a"
    assert payload["sources"][0]["docId"] == doc_id
    assert "30 days" in llm.prompts[0]


def test_case_name_aliases_are_accepted(client: TestClient, alice: Dict[str, str]) -> None:
    _upload(client, alice, case_name="Smith v Jones")

    response = client.post("/search", headers=alice, json={"query": "rent", "collectionName": "Smith v Jones"})

    assert response.status_code == 200
    assert response.json()["usedCase"] == "smith-v-jones"


def test_other_users_cannot_see_documents(client: TestClient, alice: Dict[str, str], bob: Dict[str, str], llm: RecordingLLM) -> None:
    _upload(client, alice)

    search = client.post("/search", headers=bob, json={"query": "notice", "caseName": "Case A"})
    answer = client.post("/qa", headers=bob, json={"question": "What is the notice period?", "caseName": "Case A"})

    assert search.json()["documents"] == []
    assert answer.json()["answer"] == NO_RESULTS_ANSWER
    assert answer.json()["sources"] == []
    assert llm.prompts == []


def test_upload_validation_errors(client: TestClient, alice: Dict[str, str]) -> None:
    missing = client.post("/documents", headers=alice, data={"metadata": "{}"})
    bad_type = client.post(
        "/documents",
        headers=alice,
        files={"file": ("tool.exe", b"MZ\x90\x00", "application/octet-stream")},
    )
    bad_metadata = client.post(
        "/documents",
        headers=alice,
        files={"file": ("lease.txt", LEASE.encode("utf-8"), "text/plain")},
        data={"metadata": "not json"},
    )

    assert missing.status_code == 400
    assert missing.json()["message"] == "No file provided"
    assert bad_type.status_code == 400
    assert bad_type.json()["message"].startswith("Invalid file type")
    assert bad_metadata.status_code == 400
    assert bad_metadata.json()["message"] == "metadata must be a JSON object"


def test_oversized_upload_is_rejected_before_any_work(settings: Settings, llm: RecordingLLM, alice: Dict[str, str]) -> None:
    settings.max_upload_bytes = 1024
    context = AppContext.build(settings, llm=llm)
    try:
        with TestClient(create_app(context)) as small_client:
            too_big = _upload(small_client, alice, text="notice " * 1000)
            accepted = _upload(small_client, alice)
        stored = list((Path(settings.blob_dir) / "documents").iterdir())
        assert context.repository.count_documents() == 1
    finally:
        context.close()

    assert too_big.status_code == 400
    assert too_big.json()["message"].startswith("File too large. Maximum size is ")
    assert accepted.status_code == 200
    assert [path.name for path in stored] == [accepted.json()["docId"]]


def test_search_validation_error_shape(client: TestClient, alice: Dict[str, str]) -> None:
    response = client.post("/search", headers=alice, json={"query": "", "caseName": "Case A"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["message"] == "Query is required and must be a non-empty string"


def test_malformed_body_is_a_validation_error(client: TestClient, alice: Dict[str, str]) -> None:
    response = client.post("/search", headers=alice, json={"query": "x", "caseName": "A", "page": "first"})

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


def test_label_management(client: TestClient, alice: Dict[str, str], bob: Dict[str, str]) -> None:
    doc_id = _upload(client, alice).json()["docId"]

    added = client.post(
        "/documents/labels", headers=alice, json={"docId": doc_id, "action": "add", "labels": [" urgent ", "lease"]}
    )
    assert added.status_code == 200
    assert added.json()["labels"] == ["lease", "urgent"]
    assert added.json()["fileName"] == "lease.txt"

    listed = client.get("/documents/labels", headers=alice)
    assert listed.json()["labels"] == ["lease", "urgent"]

    foreign = client.post("/documents/labels", headers=bob, json={"docId": doc_id, "action": "set", "labels": []})
    assert foreign.status_code == 404
    assert foreign.json()["message"] == "Document not found or access denied"

    invalid = client.post("/documents/labels", headers=alice, json={"docId": doc_id, "action": "rename", "labels": []})
    assert invalid.status_code == 400
    assert invalid.json()["message"] == "Invalid action. Must be 'add', 'remove', or 'set'"

    incomplete = client.post("/documents/labels", headers=alice, json={"action": "add", "labels": ["x"]})
    assert incomplete.status_code == 400
    assert incomplete.json()["message"] == "docId and labels array are required"

    assert client.get("/documents/labels", headers=bob).json()["labels"] == []


def test_rate_limit_returns_429_with_retry_after(client: TestClient, app_context: AppContext, alice: Dict[str, str]) -> None:
    clock = FakeClock()
    app_context.settings.qa_rate_limit = 2
    app_context.limiters = RateLimiters.from_settings(app_context.settings, clock=clock)
    body = {"question": "What is the notice period?", "caseName": "Case A"}

    assert client.post("/qa", headers=alice, json=body).status_code == 200
    assert client.post("/qa", headers=alice, json=body).status_code == 200
    limited = client.post("/qa", headers=alice, json=body)

    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "60"
    assert limited.json()["error"] == "rate_limited"

    clock.advance(60)
    assert client.post("/qa", headers=alice, json=body).status_code == 200


def test_inspect_lists_namespaces(client: TestClient, alice: Dict[str, str]) -> None:
    _upload(client, alice, case_name="Case A")
    _upload(client, alice, case_name="Case B")

    response = client.get("/inspect", headers=alice)

    assert response.status_code == 200
    body = response.json()
    assert body["backend"] == "memory"
    assert body["dimension"] == 64
    assert body["totalVectors"] == 2
    assert body["namespaces"] == [
        {"namespace": "case-a", "vectorCount": 1},
        {"namespace": "case-b", "vectorCount": 1},
    ]
