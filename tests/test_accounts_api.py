"""
Tests for the accounts REST endpoints.

Uses the async_client fixture, which routes requests to an AccountService
backed by a fresh in-memory store.
"""

import pytest

from conftest import TENANT

BASE = f"/api/v1/accounts/{TENANT}"


async def _create(client, name, **fields):
    response = await client.post(BASE, json={"name": name, **fields}, headers={"X-User-ID": "alice"})
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAccountEndpoints:

    @pytest.mark.asyncio
    async def test_create_and_get(self, async_client):
        created = await _create(async_client, "Acme", account_type="CUSTOMER", phone="+1 (555) 123-4567")

        assert created["created_by"] == "alice"
        assert created["hierarchy_path"] == created["id"]

        response = await async_client.get(f"{BASE}/{created['id']}")
        assert response.status_code == 200
        assert response.json()["name"] == "Acme"

    @pytest.mark.asyncio
    async def test_acting_user_defaults_to_system(self, async_client):
        response = await async_client.post(BASE, json={"name": "Acme"})
        assert response.json()["created_by"] == "system"

    @pytest.mark.asyncio
    async def test_validation_error_shape(self, async_client):
        response = await async_client.post(BASE, json={"name": " ", "website": "nope"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_FAILED"
        assert "Account name is required" in body["context"]["errors"]
        assert body["error_id"].startswith("ERR-")

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, async_client):
        response = await async_client.post(BASE, json={"name": "Acme", "colour": "red"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_invalid_tenant(self, async_client):
        response = await async_client.post("/api/v1/accounts/Bad-Tenant", json={"name": "Acme"})
        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TENANT_ID"

    @pytest.mark.asyncio
    async def test_not_found(self, async_client):
        response = await async_client.get(f"{BASE}/ghost")
        assert response.status_code == 404
        assert response.json()["error"] == "ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, async_client):
        created = await _create(async_client, "Acme")

        response = await async_client.put(f"{BASE}/{created['id']}", json={"name": "Acme Holdings"})
        assert response.status_code == 200
        assert response.json()["name"] == "Acme Holdings"

        response = await async_client.delete(f"{BASE}/{created['id']}")
        assert response.status_code == 204

        response = await async_client.get(f"{BASE}/{created['id']}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_parent_conflict(self, async_client):
        parent = await _create(async_client, "Parent")
        await _create(async_client, "Child", parent_account_id=parent["id"])

        response = await async_client.delete(f"{BASE}/{parent['id']}")
        assert response.status_code == 409
        assert response.json()["error"] == "ACCOUNT_HAS_CHILDREN"

    @pytest.mark.asyncio
    async def test_bulk_create(self, async_client):
        response = await async_client.post(f"{BASE}/bulk", json={"accounts": [
            {"name": "Alpha"},
            {"name": "Beta", "website": "bad site"},
        ]})

        assert response.status_code == 200
        body = response.json()
        assert [a["name"] for a in body["created"]] == ["Alpha"]
        assert body["failed"][0]["index"] == 1


class TestHierarchyEndpoints:

    @pytest.mark.asyncio
    async def test_parent_tree_and_stats(self, async_client):
        root = await _create(async_client, "Root")
        child = await _create(async_client, "Child")

        response = await async_client.put(
            f"{BASE}/{child['id']}/parent", json={"parent_account_id": root["id"]}
        )
        assert response.status_code == 200
        assert response.json()["hierarchy_level"] == 1

        tree = (await async_client.get(f"{BASE}/{root['id']}/tree")).json()
        assert tree["id"] == root["id"]
        assert [c["id"] for c in tree["children"]] == [child["id"]]

        stats = (await async_client.get(f"{BASE}/{root['id']}/stats")).json()
        assert stats == {"account_id": root["id"], "depth": 1, "account_count": 2}

        ancestors = (await async_client.get(f"{BASE}/{child['id']}/ancestors")).json()
        assert [a["id"] for a in ancestors["accounts"]] == [root["id"]]

        descendants = (await async_client.get(f"{BASE}/{root['id']}/descendants")).json()
        assert descendants["total"] == 1

        roots = (await async_client.get(f"{BASE}/roots")).json()
        assert [a["id"] for a in roots["accounts"]] == [root["id"]]

        level_zero = (await async_client.get(f"{BASE}/levels/0")).json()
        assert level_zero["total"] == 1

        response = await async_client.delete(f"{BASE}/{child['id']}/parent")
        assert response.status_code == 200
        assert response.json()["parent_account_id"] is None

    @pytest.mark.asyncio
    async def test_siblings(self, async_client):
        root = await _create(async_client, "Root")
        a = await _create(async_client, "A", parent_account_id=root["id"])
        b = await _create(async_client, "B", parent_account_id=root["id"])

        siblings = (await async_client.get(f"{BASE}/{a['id']}/siblings")).json()
        assert [s["id"] for s in siblings["accounts"]] == [b["id"]]

    @pytest.mark.asyncio
    async def test_cycle_rejected(self, async_client):
        a = await _create(async_client, "A")
        b = await _create(async_client, "B", parent_account_id=a["id"])

        response = await async_client.put(f"{BASE}/{a['id']}/parent", json={"parent_account_id": b["id"]})
        assert response.status_code == 422
        assert response.json()["error"] == "CIRCULAR_HIERARCHY"


class TestDuplicateAndMergeEndpoints:

    @pytest.mark.asyncio
    async def test_duplicate_check_and_sweep(self, async_client):
        acme = await _create(async_client, "Acme Corporation")
        await _create(async_client, "Acme Corporations")
        await _create(async_client, "Initech")

        response = await async_client.post(f"{BASE}/duplicates/check", json={"name": "Acme Corporation"})
        assert response.status_code == 200
        assert response.json()["total"] == 2

        per_account = (await async_client.get(f"{BASE}/{acme['id']}/duplicates")).json()
        assert per_account["total"] == 1

        sweep = (await async_client.get(f"{BASE}/duplicates/sweep")).json()
        assert sweep["total"] == 2

    @pytest.mark.asyncio
    async def test_merge(self, async_client):
        primary = await _create(async_client, "Acme", tags=["a"])
        secondary = await _create(async_client, "Acme Inc", website="acme.com", tags=["b"])

        response = await async_client.post(f"{BASE}/merge", json={
            "primary_account_id": primary["id"],
            "secondary_account_id": secondary["id"],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["website"] == "acme.com"
        assert body["tags"] == ["a", "b"]
        assert (await async_client.get(f"{BASE}/{secondary['id']}")).status_code == 404


class TestRelationshipAndIntegrityEndpoints:

    @pytest.mark.asyncio
    async def test_relationships(self, async_client):
        a = await _create(async_client, "A")
        b = await _create(async_client, "B")
        payload = {"from_account_id": a["id"], "to_account_id": b["id"], "relationship_type": "PARTNER"}

        response = await async_client.post(f"{BASE}/relationships", json=payload)
        assert response.status_code == 201

        response = await async_client.post(f"{BASE}/relationships", json=payload)
        assert response.status_code == 409
        assert response.json()["error"] == "RELATIONSHIP_EXISTS"

        listed = (await async_client.get(f"{BASE}/{b['id']}/relationships")).json()
        assert listed["total"] == 1

    @pytest.mark.asyncio
    async def test_integrity_report(self, async_client):
        await _create(async_client, "A")

        response = await async_client.get(f"{BASE}/integrity")
        assert response.status_code == 200
        assert response.json() == {
            "tenant_id": TENANT,
            "valid": True,
            "accounts_checked": 1,
            "violations": [],
        }
