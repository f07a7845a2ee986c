"""Giveaway API tests (ASGI transport, in-memory services)."""

import pytest

from conftest import bearer

ADMIN = "/api/v1/admin/giveaways"
PUBLIC = "/api/v1/giveaways"

# The clock fixture starts at 2026-03-01T12:00:00Z
ENDS_AT = "2026-03-02T12:00:00Z"


async def create_giveaway(client, admin_headers, **overrides):
    body = {"title": "Weekly", "prize": "$500", "ends_at": ENDS_AT}
    body.update(overrides)
    response = await client.post(ADMIN, json=body, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAdmin:
    @pytest.mark.asyncio
    async def test_create_with_requirements(self, client, admin_headers):
        giveaway = await create_giveaway(
            client,
            admin_headers,
            casino_id=4,
            requirements=[{"type": "linked_account", "casino_id": 4, "value": "verified"}],
        )

        assert giveaway["is_active"] is True
        assert giveaway["winner_id"] is None
        assert giveaway["requirements"] == [
            {"type": "linked_account", "casino_id": 4, "value": "verified", "verified": True, "implicit": False}
        ]

    @pytest.mark.asyncio
    async def test_naive_end_time_is_utc(self, client, admin_headers):
        giveaway = await create_giveaway(client, admin_headers, ends_at="2026-03-02T12:00:00")
        assert giveaway["ends_at"] == "2026-03-02T12:00:00+00:00"

    @pytest.mark.asyncio
    async def test_unknown_requirement_type(self, client, admin_headers):
        response = await client.post(
            ADMIN,
            json={
                "title": "Weekly",
                "prize": "$500",
                "ends_at": ENDS_AT,
                "requirements": [{"type": "followers", "value": "100"}],
            },
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ENTRY"

    @pytest.mark.asyncio
    async def test_replace_requirements(self, client, admin_headers):
        giveaway = await create_giveaway(client, admin_headers)

        response = await client.put(
            f"{ADMIN}/{giveaway['id']}/requirements",
            json={"requirements": [{"type": "vip", "value": "gold"}]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert [r["value"] for r in response.json()["requirements"]] == ["gold"]

    @pytest.mark.asyncio
    async def test_pick_winner_before_end(self, client, admin_headers):
        giveaway = await create_giveaway(client, admin_headers)
        await client.post(f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer("viewer-1"))

        response = await client.post(f"{ADMIN}/{giveaway['id']}/pick-winner", headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "NOT_ENDED"

    @pytest.mark.asyncio
    async def test_pick_and_verify(self, client, admin_headers, clock):
        giveaway = await create_giveaway(client, admin_headers)
        for i in range(3):
            response = await client.post(
                f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer(f"viewer-{i}")
            )
            assert response.status_code == 201
        clock.advance(days=2)

        response = await client.post(f"{ADMIN}/{giveaway['id']}/pick-winner", headers=admin_headers)
        assert response.status_code == 200
        picked = response.json()
        assert picked["winner_id"] in {"viewer-0", "viewer-1", "viewer-2"}
        assert picked["winner_picked_by"] == "admin-1"

        response = await client.post(f"{ADMIN}/{giveaway['id']}/pick-winner", headers=admin_headers)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "WINNER_ALREADY_PICKED"

        verification = (await client.get(f"{PUBLIC}/{giveaway['id']}/verify")).json()
        assert verification["valid"] is True
        assert verification["recomputed_winner_id"] == picked["winner_id"]


class TestViewer:
    @pytest.mark.asyncio
    async def test_enter_and_duplicate(self, client, admin_headers):
        giveaway = await create_giveaway(client, admin_headers)

        response = await client.post(f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer("viewer-1"))
        assert response.status_code == 201
        assert response.json()["user_id"] == "viewer-1"

        response = await client.post(f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer("viewer-1"))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_ENTRY"

        detail = (await client.get(f"{PUBLIC}/{giveaway['id']}", headers=bearer("viewer-1"))).json()
        assert detail["entries"] == 1
        assert detail["has_entered"] is True

    @pytest.mark.asyncio
    async def test_requirement_not_met_is_forbidden(self, client, admin_headers):
        giveaway = await create_giveaway(client, admin_headers, casino_id=9)

        response = await client.post(f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer("viewer-1"))
        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "REQUIREMENT_NOT_MET"
        assert error["details"]["requirementType"] == "linked_account"

    @pytest.mark.asyncio
    async def test_eligibility_dry_run(self, client, admin_headers, identity):
        giveaway = await create_giveaway(client, admin_headers, casino_id=9)
        identity.link("member", 9)

        stranger = await client.get(
            f"{PUBLIC}/{giveaway['id']}/eligibility", headers=bearer("stranger")
        )
        member = await client.get(
            f"{PUBLIC}/{giveaway['id']}/eligibility", headers=bearer("member")
        )
        assert stranger.json()["eligible"] is False
        assert stranger.json()["reason"]["code"] == "REQUIREMENT_NOT_MET"
        assert member.json() == {"eligible": True, "reason": None}

    @pytest.mark.asyncio
    async def test_enter_after_end(self, client, admin_headers, clock):
        giveaway = await create_giveaway(client, admin_headers)
        clock.advance(days=1)

        response = await client.post(f"{PUBLIC}/{giveaway['id']}/enter", headers=bearer("viewer-1"))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "EVENT_ENDED"

    @pytest.mark.asyncio
    async def test_list_active_only(self, client, admin_headers, clock):
        ended = await create_giveaway(client, admin_headers)
        await client.post(f"{PUBLIC}/{ended['id']}/enter", headers=bearer("viewer-1"))
        running = await create_giveaway(client, admin_headers, ends_at="2026-04-01T00:00:00Z")
        clock.advance(days=2)
        await client.post(f"{ADMIN}/{ended['id']}/pick-winner", headers=admin_headers)

        public = (await client.get(PUBLIC)).json()
        everything = (await client.get(ADMIN, headers=admin_headers)).json()
        assert [g["id"] for g in public] == [running["id"]]
        assert {g["id"] for g in everything} == {ended["id"], running["id"]}

    @pytest.mark.asyncio
    async def test_unknown_giveaway(self, client):
        response = await client.get(f"{PUBLIC}/31337")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"
