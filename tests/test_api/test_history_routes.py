"""
API endpoint tests for the character history routes.

Tests cover:
- Appending records (including duplicate suppression and validation errors)
- Paging through blocks with the ``block-number`` query parameter
- Reverting the latest record and the sheet write-back
- Setting record comments
- Verifying history structure
- Error envelope and status codes

Uses TestClient for HTTP request testing.
"""

import uuid

import pytest

from progression_server.db.history_repo import StoreSettings
from progression_server.services import LedgerServices
from tests.factories import level_draft, skill_draft, wire


def _history_url(character_id: str, suffix: str = "") -> str:
    return f"/characters/{character_id}/history{suffix}"


def _append(client, character_id: str, draft) -> dict:
    response = client.post(_history_url(character_id), json=wire(draft))
    assert response.status_code == 200, response.text
    return response.json()


# ============================================================================
# APPEND
# ============================================================================


@pytest.mark.api
def test_append_returns_stored_record(test_client, character_id):
    body = _append(test_client, character_id, level_draft(1, 2, comment="first"))

    assert body["number"] == 1
    assert body["type"] == 1
    assert body["comment"] == "first"
    uuid.UUID(body["id"])
    assert "timestamp" in body
    assert body["calculationPoints"] == {"adventurePoints": None, "attributePoints": None}


@pytest.mark.api
def test_append_duplicate_returns_latest(test_client, character_id):
    first = _append(test_client, character_id, level_draft(1, 2))
    again = _append(test_client, character_id, level_draft(1, 2))

    assert again["id"] == first["id"]


@pytest.mark.api
def test_append_invalid_payload_is_400(test_client, character_id):
    body = wire(level_draft())
    body["data"] = {"old": {"value": 1}, "new": {"points": 2}}

    response = test_client.post(_history_url(character_id), json=body)

    assert response.status_code == 400
    assert response.json()["message"]


@pytest.mark.api
def test_append_unknown_type_is_400(test_client, character_id):
    body = wire(level_draft())
    body["type"] = 42

    response = test_client.post(_history_url(character_id), json=body)

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid input values!"
    assert response.json()["errors"]


@pytest.mark.api
def test_invalid_character_id_is_400(test_client):
    response = test_client.post(_history_url("not-a-uuid"), json=wire(level_draft()))
    assert response.status_code == 400


@pytest.mark.api
def test_oversized_record_is_409(temp_db_path, test_db, character_id):
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from progression_server.api.routes import register_routes
    from tests.factories import special_abilities_draft

    app = FastAPI()
    register_routes(
        app, LedgerServices(StoreSettings(db_path=temp_db_path, max_block_bytes=600))
    )
    client = TestClient(app)
    draft = special_abilities_draft([], [f"ability {i:03d}" for i in range(100)])

    response = client.post(_history_url(character_id), json=wire(draft))

    assert response.status_code == 409
    assert response.json()["context"]["limit"] == 600


# ============================================================================
# READ
# ============================================================================


@pytest.mark.api
def test_get_history_without_records_is_404(test_client, character_id):
    response = test_client.get(_history_url(character_id))

    assert response.status_code == 404
    assert response.json()["context"]["character_id"] == character_id


@pytest.mark.api
def test_get_history_pages_backwards(temp_db_path, test_db, character_id):
    """With three records per block, block 2 points back at block 1."""
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from progression_server.api.routes import register_routes

    app = FastAPI()
    register_routes(
        app, LedgerServices(StoreSettings(db_path=temp_db_path, max_block_records=3))
    )
    client = TestClient(app)
    for i in range(1, 5):
        _append(client, character_id, level_draft(i, i + 1))

    latest = client.get(_history_url(character_id)).json()
    assert latest["items"][0]["blockNumber"] == 2
    assert latest["previousBlockNumber"] == 1
    assert latest["previousBlockId"] == latest["items"][0]["previousBlockId"]

    first = client.get(_history_url(character_id), params={"block-number": 1}).json()
    assert first["items"][0]["blockId"] == latest["previousBlockId"]
    assert first["previousBlockNumber"] is None
    assert [r["number"] for r in first["items"][0]["changes"]] == [1, 2, 3]


@pytest.mark.api
def test_get_missing_block_is_404(test_client, character_id):
    _append(test_client, character_id, level_draft())

    response = test_client.get(_history_url(character_id), params={"block-number": 9})

    assert response.status_code == 404
    assert response.json()["context"]["block_number"] == 9


@pytest.mark.api
def test_block_number_must_be_positive(test_client, character_id):
    response = test_client.get(_history_url(character_id), params={"block-number": 0})
    assert response.status_code == 400


@pytest.mark.api
def test_creation_record_has_no_old_on_the_wire(test_client, character_id):
    from tests.factories import creation_draft

    _append(test_client, character_id, creation_draft())
    record = test_client.get(_history_url(character_id)).json()["items"][0]["changes"][0]

    assert "old" not in record["data"]


# ============================================================================
# REVERT
# ============================================================================


@pytest.mark.api
def test_revert_latest_record(test_client, services, seeded_character):
    _append(test_client, seeded_character, level_draft(1, 2))
    second = _append(test_client, seeded_character, skill_draft())

    response = test_client.delete(_history_url(seeded_character, f"/{second['id']}"))

    assert response.status_code == 200
    assert response.json()["id"] == second["id"]
    sheet = services.sheets.get_sheet(seeded_character)
    assert sheet["skills"]["body"]["athletics"]["current"] == 4
    page = test_client.get(_history_url(seeded_character)).json()
    assert len(page["items"][0]["changes"]) == 1


@pytest.mark.api
def test_revert_non_latest_is_404(test_client, seeded_character):
    first = _append(test_client, seeded_character, level_draft(1, 2))
    _append(test_client, seeded_character, level_draft(2, 3))

    response = test_client.delete(_history_url(seeded_character, f"/{first['id']}"))

    assert response.status_code == 404
    assert response.json()["context"]["expected_id"] == first["id"]


@pytest.mark.api
def test_revert_only_record_empties_history(test_client, seeded_character):
    record = _append(test_client, seeded_character, level_draft(1, 2))

    assert test_client.delete(_history_url(seeded_character, f"/{record['id']}")).status_code == 200
    assert test_client.get(_history_url(seeded_character)).status_code == 404


@pytest.mark.api
def test_revert_without_sheet_is_500(test_client, character_id):
    record = _append(test_client, character_id, level_draft(1, 2))

    response = test_client.delete(_history_url(character_id, f"/{record['id']}"))

    assert response.status_code == 500
    assert response.json()["context"]["target"] == "generalInformation.level"
    # The record is still there.
    page = test_client.get(_history_url(character_id)).json()
    assert page["items"][0]["changes"][0]["id"] == record["id"]


# ============================================================================
# COMMENTS
# ============================================================================


@pytest.mark.api
def test_set_comment(test_client, character_id):
    record = _append(test_client, character_id, level_draft(1, 2))

    response = test_client.patch(
        _history_url(character_id, f"/{record['id']}"), json={"comment": "milestone"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "characterId": character_id,
        "blockNumber": 1,
        "recordId": record["id"],
        "comment": "milestone",
    }
    stored = test_client.get(_history_url(character_id)).json()["items"][0]["changes"][0]
    assert stored["comment"] == "milestone"


@pytest.mark.api
def test_clear_comment(test_client, character_id):
    record = _append(test_client, character_id, level_draft(1, 2, comment="x"))

    response = test_client.patch(
        _history_url(character_id, f"/{record['id']}"), json={"comment": None}
    )

    assert response.status_code == 200
    assert response.json()["comment"] is None


@pytest.mark.api
def test_comment_too_long_is_400(test_client, character_id):
    record = _append(test_client, character_id, level_draft(1, 2))

    response = test_client.patch(
        _history_url(character_id, f"/{record['id']}"), json={"comment": "x" * 1001}
    )

    assert response.status_code == 400


@pytest.mark.api
def test_comment_unknown_record_is_404(test_client, character_id):
    _append(test_client, character_id, level_draft(1, 2))

    response = test_client.patch(
        _history_url(character_id, f"/{uuid.uuid4()}"), json={"comment": "x"}
    )

    assert response.status_code == 404


@pytest.mark.api
def test_comment_record_in_older_block(temp_db_path, test_db, character_id):
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from progression_server.api.routes import register_routes

    app = FastAPI()
    register_routes(
        app, LedgerServices(StoreSettings(db_path=temp_db_path, max_block_records=3))
    )
    client = TestClient(app)
    first = _append(client, character_id, level_draft(1, 2))
    for i in range(2, 5):
        _append(client, character_id, level_draft(i, i + 1))

    url = _history_url(character_id, f"/{first['id']}")
    assert client.patch(url, json={"comment": "x"}).status_code == 404
    response = client.patch(url, params={"block-number": 1}, json={"comment": "x"})
    assert response.status_code == 200
    assert response.json()["blockNumber"] == 1


# ============================================================================
# VERIFY AND ERROR MAPPING
# ============================================================================


@pytest.mark.api
def test_verify_history(test_client, character_id):
    assert test_client.get(_history_url(character_id, "/verify")).json()["status"] == "empty"

    _append(test_client, character_id, level_draft(1, 2))
    body = test_client.get(_history_url(character_id, "/verify")).json()

    assert body["status"] == "ok"
    assert body["recordCount"] == 1
    assert body["lastRecordNumber"] == 1


@pytest.mark.api
def test_conditional_write_conflict_is_409(test_client, services, character_id, monkeypatch):
    """A latest block that moved between read and write maps to 409."""
    _append(test_client, character_id, level_draft(1, 2))
    stale = services.store.get_latest_block(character_id)
    _append(test_client, character_id, level_draft(2, 3))

    monkeypatch.setattr(services.store, "get_latest_block", lambda _cid: stale)
    response = test_client.post(_history_url(character_id), json=wire(level_draft(3, 4)))

    assert response.status_code == 409
    assert response.json()["context"]["operation"] == "history.append_record"


@pytest.mark.api
def test_database_failure_is_500(test_client, services, character_id, monkeypatch):
    from progression_server.db.errors import DatabaseOperationContext, DatabaseReadError

    def boom(_cid):
        raise DatabaseReadError(context=DatabaseOperationContext(operation="history.get"))

    monkeypatch.setattr(services.store, "get_latest_block", boom)
    response = test_client.get(_history_url(character_id))

    assert response.status_code == 500
    assert response.json()["message"] == "Internal server error"
