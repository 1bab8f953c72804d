"""
API endpoint tests for the character sheet routes.

Tests cover:
- Creating and reading sheet documents
- Cloning a character together with its history
- Deleting a character and its history
- Health and root endpoints
"""

import uuid

import pytest

from tests.constants import SAMPLE_SHEET
from tests.factories import level_draft, wire


@pytest.mark.api
def test_root_endpoint(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Progression Server API"


@pytest.mark.api
def test_health_endpoint(test_client):
    assert test_client.get("/health").json() == {"status": "ok"}


# ============================================================================
# CREATE / READ
# ============================================================================


@pytest.mark.api
def test_create_character(test_client, character_id):
    response = test_client.post(
        f"/characters/{character_id}", json={"sheet": SAMPLE_SHEET, "userId": "user-7"}
    )

    assert response.status_code == 201
    assert response.json()["characterId"] == character_id

    fetched = test_client.get(f"/characters/{character_id}").json()
    assert fetched["userId"] == "user-7"
    assert fetched["sheet"] == SAMPLE_SHEET


@pytest.mark.api
def test_create_existing_character_is_409(test_client, seeded_character):
    response = test_client.post(f"/characters/{seeded_character}", json={"sheet": {}})

    assert response.status_code == 409
    assert response.json()["context"]["character_id"] == seeded_character


@pytest.mark.api
def test_get_unknown_character_is_404(test_client, character_id):
    assert test_client.get(f"/characters/{character_id}").status_code == 404


@pytest.mark.api
def test_create_requires_sheet(test_client, character_id):
    response = test_client.post(f"/characters/{character_id}", json={"userId": "u"})
    assert response.status_code == 400


# ============================================================================
# CLONE
# ============================================================================


@pytest.mark.api
def test_clone_copies_sheet_and_history(test_client, seeded_character):
    test_client.post(f"/characters/{seeded_character}/history", json=wire(level_draft(1, 2)))
    target = str(uuid.uuid4())

    response = test_client.post(
        f"/characters/{seeded_character}/clone", json={"targetCharacterId": target}
    )

    assert response.status_code == 201
    assert response.json() == {
        "characterId": seeded_character,
        "targetCharacterId": target,
        "blocksCopied": 1,
        "sheetCopied": True,
    }
    clone = test_client.get(f"/characters/{target}").json()
    assert clone["sheet"] == SAMPLE_SHEET
    assert clone["userId"] == "user-1"

    source_record = test_client.get(f"/characters/{seeded_character}/history").json()
    cloned_record = test_client.get(f"/characters/{target}/history").json()
    source_change = source_record["items"][0]["changes"][0]
    cloned_change = cloned_record["items"][0]["changes"][0]
    assert cloned_change["number"] == source_change["number"]
    assert cloned_change["id"] != source_change["id"]


@pytest.mark.api
def test_clone_with_new_owner(test_client, seeded_character):
    target = str(uuid.uuid4())
    test_client.post(
        f"/characters/{seeded_character}/clone",
        json={"targetCharacterId": target, "userId": "user-2"},
    )
    assert test_client.get(f"/characters/{target}").json()["userId"] == "user-2"


@pytest.mark.api
def test_clone_onto_existing_character_is_409(test_client, seeded_character):
    response = test_client.post(
        f"/characters/{seeded_character}/clone", json={"targetCharacterId": seeded_character}
    )
    assert response.status_code == 409


@pytest.mark.api
def test_clone_rejects_non_uuid_target(test_client, seeded_character):
    response = test_client.post(
        f"/characters/{seeded_character}/clone", json={"targetCharacterId": "copy"}
    )
    assert response.status_code == 400


# ============================================================================
# DELETE
# ============================================================================


@pytest.mark.api
def test_delete_character_removes_history(test_client, seeded_character):
    test_client.post(f"/characters/{seeded_character}/history", json=wire(level_draft(1, 2)))

    response = test_client.delete(f"/characters/{seeded_character}")

    assert response.status_code == 200
    assert response.json()["blocksDeleted"] == 1
    assert response.json()["sheetDeleted"] is True
    assert test_client.get(f"/characters/{seeded_character}").status_code == 404
    assert test_client.get(f"/characters/{seeded_character}/history").status_code == 404


@pytest.mark.api
def test_delete_unknown_character_is_a_noop(test_client, character_id):
    response = test_client.delete(f"/characters/{character_id}")

    assert response.status_code == 200
    assert response.json()["blocksDeleted"] == 0
    assert response.json()["sheetDeleted"] is False
