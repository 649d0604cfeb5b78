"""Case API tests — creation, projection, updates, deletion and listings.

Learn: Tests cover:
1. Location sanitization on create and update
2. Read projection: team sees everything, others get the redacted view
3. Private cases are invisible (404) to non-members
4. Status changes log one entry and emit one event
5. Public listing, "my cases" listing and stats
"""

import uuid

import pytest

from conftest import add_collaborator, create_case
from rescuetrack.events.store import ActivityStore
from rescuetrack.services.case_service import escape_like, sanitize_location


# ═══════════════════════════════════════════════════════════
# Location sanitization
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "location, expected",
    [
        ("123 Main St, Downtown", "Downtown Area"),
        ("Pier 4, Harbor Rd,  Westside ", "Westside Area"),
        ("Behind the grocery store", "General Area"),
        ("Trailing comma,", "General Area"),
    ],
)
def test_sanitize_location(location, expected):
    assert sanitize_location(location) == expected


# ═══════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_case(client, alice):
    case = await create_case(client, alice)
    assert case["primary_owner_id"] == alice["id"]
    assert case["location_found"] == "123 Main St, Downtown"
    assert case["location_found_general"] == "Downtown Area"
    assert case["injuries"] == "Fractured left foreleg"

    r = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    log = r.json()["activity_log"]
    assert [e["action_type"] for e in log] == ["case_created"]
    assert log[0]["user"] == "Alice"


@pytest.mark.asyncio
async def test_create_case_requires_identity(client):
    r = await client.post("/api/v1/cases", json={"species": "cat"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "AUTH_REQUIRED"


@pytest.mark.asyncio
async def test_create_case_validation(client, alice):
    r = await client.post(
        "/api/v1/cases",
        json={"species": "dragon", "status": "rescued", "urgency": "high"},
        headers=alice["headers"],
    )
    assert r.status_code == 400
    fields = {d["field"] for d in r.json()["error"]["details"]}
    assert fields == {"species", "location_found"}


# ═══════════════════════════════════════════════════════════
# Read projection
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_owner_sees_full_case(client, alice):
    case = await create_case(client, alice)
    r = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["case"]["location_found"] == "123 Main St, Downtown"
    assert body["case"]["medications"] == "Carprofen 25mg"
    assert body["can_edit"] is True
    assert body["is_owner"] is True
    assert body["primary_owner"]["name"] == "Alice"


@pytest.mark.asyncio
async def test_public_case_redacted_for_anonymous(client, alice):
    case = await create_case(client, alice)
    await client.post(
        f"/api/v1/cases/{case['id']}/notes",
        json={"description": "Owner's phone is 555-0100", "is_public": False},
        headers=alice["headers"],
    )

    r = await client.get(f"/api/v1/cases/{case['id']}")
    assert r.status_code == 200
    body = r.json()
    assert body["case"]["location_found"] == "Downtown Area"
    for field in ("injuries", "treatments", "medications"):
        assert body["case"][field] is None
    assert body["case"]["description"] == "Brown terrier mix, limping"
    assert body["can_edit"] is False
    assert body["is_owner"] is False
    assert all(e["is_public"] for e in body["activity_log"])
    assert "555-0100" not in r.text


@pytest.mark.asyncio
async def test_public_case_redacted_for_outsider(client, alice, bob):
    case = await create_case(client, alice)
    r = await client.get(f"/api/v1/cases/{case['id']}", headers=bob["headers"])
    assert r.status_code == 200
    assert r.json()["case"]["location_found"] == "Downtown Area"
    assert r.json()["case"]["injuries"] is None


@pytest.mark.asyncio
async def test_collaborator_sees_private_details(client, alice, bob):
    case = await create_case(client, alice)
    await add_collaborator(client, alice, case["id"], bob)

    r = await client.get(f"/api/v1/cases/{case['id']}", headers=bob["headers"])
    body = r.json()
    assert body["case"]["injuries"] == "Fractured left foreleg"
    assert body["can_edit"] is True
    assert body["is_owner"] is False
    assert body["collaborators"][0]["id"] == bob["id"]
    assert body["collaborators"][0]["role_label"] == "Vet"


@pytest.mark.asyncio
async def test_private_case_hidden_from_non_members(client, alice, bob):
    case = await create_case(client, alice, is_public=False)

    anon = await client.get(f"/api/v1/cases/{case['id']}")
    assert anon.status_code == 404
    assert anon.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    outsider = await client.get(f"/api/v1/cases/{case['id']}", headers=bob["headers"])
    assert outsider.status_code == 404

    owner = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    assert owner.status_code == 200


@pytest.mark.asyncio
async def test_bad_token_on_optional_route_reads_as_anonymous(client, alice):
    case = await create_case(client, alice, is_public=False)
    r = await client.get(
        f"/api/v1/cases/{case['id']}", headers={"Authorization": "Bearer nonsense"}
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_unknown_and_malformed_case_ids(client):
    r = await client.get(f"/api/v1/cases/{uuid.uuid4()}")
    assert r.status_code == 404

    r = await client.get("/api/v1/cases/not-a-uuid")
    assert r.status_code == 400
    assert r.json()["error"]["details"][0]["field"] == "case_id"


# ═══════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_collaborator_status_change_logs_once_and_emits_once(
    client, alice, bob, broadcaster, publisher
):
    case = await create_case(client, alice, status="at_vet")
    await add_collaborator(client, alice, case["id"], bob)
    await broadcaster.drain()
    publisher.clear()

    r = await client.put(
        f"/api/v1/cases/{case['id']}", json={"status": "surgery"}, headers=bob["headers"]
    )
    assert r.status_code == 200
    assert r.json()["status"] == "surgery"
    await broadcaster.drain()

    detail = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    changes = [e for e in detail.json()["activity_log"] if e["action_type"] == "status_change"]
    assert len(changes) == 1
    assert changes[0]["description"] == "Changed status from at_vet to surgery"
    assert changes[0]["user"] == "Bob"

    updates = [m for _, m in publisher.sent if m["event"] == "case_updated"]
    assert len(updates) == 1
    assert updates[0]["data"]["changes"] == {"status": "surgery"}


@pytest.mark.asyncio
async def test_status_may_move_backwards(client, alice):
    case = await create_case(client, alice, status="adopted")
    r = await client.put(
        f"/api/v1/cases/{case['id']}", json={"status": "reported"}, headers=alice["headers"]
    )
    assert r.status_code == 200
    assert r.json()["status"] == "reported"


@pytest.mark.asyncio
async def test_update_without_status_change_logs_nothing(client, alice):
    case = await create_case(client, alice)
    r = await client.put(
        f"/api/v1/cases/{case['id']}",
        json={"status": "rescued", "public_notes": "Eating well"},
        headers=alice["headers"],
    )
    assert r.status_code == 200
    assert r.json()["public_notes"] == "Eating well"

    detail = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    assert [e["action_type"] for e in detail.json()["activity_log"]] == ["case_created"]


@pytest.mark.asyncio
async def test_update_location_rederives_general_area(client, alice):
    case = await create_case(client, alice)
    r = await client.put(
        f"/api/v1/cases/{case['id']}",
        json={"location_found": "Lot 9, Industrial Park"},
        headers=alice["headers"],
    )
    assert r.json()["location_found_general"] == "Industrial Park Area"


@pytest.mark.asyncio
async def test_update_cannot_null_required_fields(client, alice):
    case = await create_case(client, alice)
    r = await client.put(
        f"/api/v1/cases/{case['id']}",
        json={"species": None, "status": None, "injuries": None},
        headers=alice["headers"],
    )
    assert r.status_code == 400
    fields = {d["field"] for d in r.json()["error"]["details"]}
    assert fields == {"species", "status"}


@pytest.mark.asyncio
async def test_update_clears_optional_field(client, alice):
    case = await create_case(client, alice)
    r = await client.put(
        f"/api/v1/cases/{case['id']}", json={"injuries": None}, headers=alice["headers"]
    )
    assert r.status_code == 200
    assert r.json()["injuries"] is None
    assert r.json()["treatments"] == "Splint applied"


@pytest.mark.asyncio
async def test_outsider_cannot_update(client, alice, bob):
    case = await create_case(client, alice)
    r = await client.put(
        f"/api/v1/cases/{case['id']}", json={"status": "adopted"}, headers=bob["headers"]
    )
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "PERMISSION_DENIED"


# ═══════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_owner_deletes_case_with_children(client, alice, bob, broadcaster, publisher):
    case = await create_case(client, alice, is_public=False)
    await add_collaborator(client, alice, case["id"], bob)
    await client.post(
        f"/api/v1/cases/{case['id']}/photos",
        files=[("photos", ("a.jpg", b"\xff\xd8jpeg", "image/jpeg"))],
        headers=alice["headers"],
    )

    r = await client.delete(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    assert r.status_code == 200
    assert r.json() == {"message": "Case deleted successfully"}
    await broadcaster.drain()

    r = await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])
    assert r.status_code == 404

    deleted = [(c, m) for c, m in publisher.sent if m["event"] == "case_deleted"]
    assert deleted == [("public", {"event": "case_deleted", "data": {"case_id": case["id"]}})]

    mine = await client.get("/api/v1/users/me/cases?filter=collaborating", headers=bob["headers"])
    assert mine.json()["cases"] == []


@pytest.mark.asyncio
async def test_delete_unknown_case(client, alice):
    r = await client.delete(f"/api/v1/cases/{uuid.uuid4()}", headers=alice["headers"])
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Listings + stats
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_public_listing_only_public_and_sanitized(client, alice):
    await create_case(client, alice)
    await create_case(client, alice, is_public=False, species="cat")

    r = await client.get("/api/v1/cases")
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"]["total"] == 1
    listed = body["cases"][0]
    assert listed["species"] == "dog"
    assert listed["location_found"] == "Downtown Area"
    assert listed["primary_owner"]["name"] == "Alice"
    assert "injuries" not in listed


@pytest.mark.asyncio
async def test_public_listing_filters_and_search(client, alice):
    await create_case(client, alice, species="cat", urgency="low", description="Grey kitten")
    await create_case(client, alice, species="dog", urgency="high")
    await create_case(
        client, alice, species="squirrel", urgency="medium", location_found="Oak Tree, Riverside"
    )

    r = await client.get("/api/v1/cases", params={"species": "cat"})
    assert [c["description"] for c in r.json()["cases"]] == ["Grey kitten"]

    r = await client.get("/api/v1/cases", params={"search": "riverside"})
    assert [c["species"] for c in r.json()["cases"]] == ["squirrel"]

    r = await client.get("/api/v1/cases", params={"sort_by": "urgency", "sort_order": "desc"})
    assert [c["urgency"] for c in r.json()["cases"]] == ["high", "medium", "low"]


@pytest.mark.parametrize(
    "term, escaped",
    [
        ("kitten", "kitten"),
        ("100%", "100\\%"),
        ("a_b", "a\\_b"),
        ("back\\slash", "back\\\\slash"),
    ],
)
def test_escape_like(term, escaped):
    assert escape_like(term) == escaped


@pytest.mark.asyncio
async def test_search_wildcards_match_literally(client, alice):
    await create_case(client, alice, description="Found near the 7_11")
    await create_case(client, alice, description="Quiet spaniel")

    r = await client.get("/api/v1/cases", params={"search": "%"})
    assert r.json()["cases"] == []

    r = await client.get("/api/v1/cases", params={"search": "7_1"})
    assert [c["description"] for c in r.json()["cases"]] == ["Found near the 7_11"]

    r = await client.get("/api/v1/cases", params={"search": "7%1"})
    assert r.json()["cases"] == []


@pytest.mark.asyncio
async def test_public_listing_pagination(client, alice):
    for _ in range(3):
        await create_case(client, alice)

    r = await client.get("/api/v1/cases", params={"page": 2, "limit": 2})
    body = r.json()
    assert len(body["cases"]) == 1
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}


@pytest.mark.asyncio
async def test_public_listing_rejects_bad_params(client):
    r = await client.get("/api/v1/cases", params={"limit": 0, "sort_by": "name"})
    assert r.status_code == 400
    fields = {d["field"] for d in r.json()["error"]["details"]}
    assert fields == {"limit", "sort_by"}


@pytest.mark.asyncio
async def test_my_cases_filters(client, alice, bob):
    own = await create_case(client, alice)
    shared = await create_case(client, bob, is_public=False)
    await add_collaborator(client, bob, shared["id"], alice)

    mine = await client.get("/api/v1/users/me/cases", headers=alice["headers"])
    assert [c["id"] for c in mine.json()["cases"]] == [own["id"]]
    assert mine.json()["cases"][0]["relation"] == "owner"
    assert mine.json()["cases"][0]["primary_owner"] is None

    collab = await client.get(
        "/api/v1/users/me/cases", params={"filter": "collaborating"}, headers=alice["headers"]
    )
    assert [c["id"] for c in collab.json()["cases"]] == [shared["id"]]
    assert collab.json()["cases"][0]["primary_owner"]["name"] == "Bob"

    both = await client.get(
        "/api/v1/users/me/cases", params={"filter": "all"}, headers=alice["headers"]
    )
    assert {c["id"] for c in both.json()["cases"]} == {own["id"], shared["id"]}


@pytest.mark.asyncio
async def test_stats_count_public_cases(client, alice):
    await create_case(client, alice, status="at_foster", urgency="low")
    await create_case(client, alice, status="adopted")
    await create_case(client, alice, status="rescued", is_public=False)

    r = await client.get("/api/v1/stats")
    assert r.status_code == 200
    stats = r.json()
    assert stats["active_cases"] == 1
    assert stats["in_foster_care"] == 1
    assert stats["adopted_this_month"] == 1
    assert stats["by_status"] == {"at_foster": 1, "adopted": 1}
    assert stats["by_urgency"] == {"low": 1}
    assert stats["by_species"] == {"dog": 2}


@pytest.mark.asyncio
async def test_my_cases_rejects_unknown_filter(client, alice):
    r = await client.get(
        "/api/v1/users/me/cases", params={"filter": "everything"}, headers=alice["headers"]
    )
    assert r.status_code == 400
    assert r.json()["error"]["details"][0]["field"] == "filter"


# ═══════════════════════════════════════════════════════════
# Atomicity
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_failed_history_write_rolls_back_update(
    client, server_error_client, alice, monkeypatch, broadcaster, publisher
):
    case = await create_case(client, alice, status="at_vet")
    await broadcaster.drain()
    publisher.clear()

    async def failing_append(self, **kwargs):
        await self.db.flush()
        raise RuntimeError("activity table unavailable")

    monkeypatch.setattr(ActivityStore, "append", failing_append)
    r = await server_error_client.put(
        f"/api/v1/cases/{case['id']}",
        json={"status": "surgery", "treatments": "Pinning"},
        headers=alice["headers"],
    )
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "INTERNAL_ERROR"
    monkeypatch.undo()

    detail = (await client.get(f"/api/v1/cases/{case['id']}", headers=alice["headers"])).json()
    assert detail["case"]["status"] == "at_vet"
    assert detail["case"]["treatments"] == "Splint applied"
    assert [e["action_type"] for e in detail["activity_log"]] == ["case_created"]

    await broadcaster.drain()
    assert publisher.sent == []
