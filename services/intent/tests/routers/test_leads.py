"""
Tests for the /leads endpoints.

The SA session behind get_db is the shared MockSASession from conftest,
so tests queue results on `mock_session` before calling the API.
"""

import pytest

from services.intent.tests.conftest import make_lead


class TestScoreEndpoint:

    @pytest.mark.asyncio
    async def test_score_only(self, client, mock_session):
        resp = await client.post("/leads/score", json={
            "source_referral": "instagram",
            "volume": 1000,
            "product_type": "lamination",
            "engagement": {"message_count": 5},
            "contact_info": "0912",
        })
        assert resp.status_code == 200
        assert resp.json()["data"] == {"score": 62, "status": "warm", "needs_notification": False}
        mock_session.mock.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_negative_volume_rejected(self, client):
        resp = await client.post("/leads/score", json={"volume": -1})
        assert resp.status_code == 422


class TestCreateLead:

    @pytest.mark.asyncio
    async def test_create(self, client, mock_session):
        resp = await client.post("/leads", json={
            "user_identifier": "visitor-1",
            "source_referral": "referral",
            "volume": 10000,
            "product_type": "gold_foil",
        })
        assert resp.status_code == 201
        assert resp.json()["data"] == {"lead_id": 101, "lead_score": 65, "lead_status": "warm"}
        mock_session.mock.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_storage_failure(self, client, mock_session):
        mock_session.commit_fails()
        resp = await client.post("/leads", json={"user_identifier": "visitor-1"})
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "STORAGE_ERROR"

    @pytest.mark.asyncio
    async def test_missing_user(self, client):
        resp = await client.post("/leads", json={"volume": 10})
        assert resp.status_code == 422


class TestReadLeads:

    @pytest.mark.asyncio
    async def test_list(self, client, mock_session):
        mock_session.returns_scalar(21).returns_many([make_lead(id=3), make_lead(id=2)])
        resp = await client.get("/leads?status=medium&per_page=10")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert [lead["id"] for lead in data["leads"]] == [3, 2]
        assert data["total"] == 21
        assert data["pages"] == 3
        assert data["per_page"] == 10

    @pytest.mark.asyncio
    async def test_list_unknown_status(self, client):
        resp = await client.get("/leads?status=lukewarm")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_get(self, client, mock_session):
        mock_session.returns_get(make_lead(requirements_summary='{"pages": 80}'))
        data = (await client.get("/leads/1")).json()["data"]
        assert data["id"] == 1
        assert data["requirements_summary"] == {"pages": 80}

    @pytest.mark.asyncio
    async def test_get_not_found(self, client):
        resp = await client.get("/leads/404")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "LEAD_NOT_FOUND"


class TestUpdateLead:

    @pytest.mark.asyncio
    async def test_patch(self, client, mock_session):
        mock_session.returns_get(make_lead())
        resp = await client.patch("/leads/1", json={"lead_status": "warm"})
        assert resp.status_code == 200
        assert resp.json()["data"]["lead_status"] == "warm"

    @pytest.mark.asyncio
    async def test_patch_nothing(self, client):
        resp = await client.patch("/leads/1", json={})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_patch_not_found(self, client):
        resp = await client.patch("/leads/9", json={"lead_status": "hot"})
        assert resp.status_code == 404


class TestDraftOrder:

    @pytest.mark.asyncio
    async def test_create_draft_order(self, client, mock_session):
        lead = make_lead()
        mock_session.returns_get(lead)
        resp = await client.post("/leads/1/draft-order", json={"products": [{"id": 7, "quantity": 2}]})
        assert resp.status_code == 201
        assert resp.json()["data"] == {"lead_id": 1, "order_id": 101}
        assert lead.draft_order_id == 101
        assert mock_session.added[0].products == [{"id": 7, "quantity": 2}]

    @pytest.mark.asyncio
    async def test_invalid_product(self, client):
        resp = await client.post("/leads/1/draft-order", json={"products": [{"id": 0}]})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_lead_not_found(self, client):
        resp = await client.post("/leads/1/draft-order", json={})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "LEAD_NOT_FOUND"
