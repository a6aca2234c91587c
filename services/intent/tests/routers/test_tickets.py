"""
Tests for the /tickets endpoints.

The SA session behind get_db is the shared MockSASession from conftest.
"""

import pytest

from services.intent.tests.conftest import make_ticket


class TestCreateTicket:

    @pytest.mark.asyncio
    async def test_create(self, client, mock_session):
        resp = await client.post("/tickets", json={
            "user_identifier": "visitor-1",
            "message": "لطفا فوری آدرس ارسال را اصلاح کنید",
            "context": {"page": "/checkout"},
        })
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["ticket_id"] == 101
        assert data["category"] == "order_modification"
        assert data["category_label"] == "تغییر سفارش"
        assert data["urgency"] == "high"
        assert data["urgency_label"] == "فوری"
        assert mock_session.added[0].metadata_ == {"page": "/checkout"}

    @pytest.mark.asyncio
    async def test_blank_message(self, client, mock_session):
        resp = await client.post("/tickets", json={"user_identifier": "visitor-1", "message": "  "})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        mock_session.mock.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_user(self, client):
        resp = await client.post("/tickets", json={"message": "سلام"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_storage_failure(self, client, mock_session):
        mock_session.commit_fails()
        resp = await client.post("/tickets", json={"user_identifier": "visitor-1", "message": "سلام"})
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "STORAGE_ERROR"


class TestReadTickets:

    @pytest.mark.asyncio
    async def test_list_for_user(self, client, mock_session):
        mock_session.returns_many([make_ticket(id=5), make_ticket(id=4)])
        resp = await client.get("/tickets?user_identifier=visitor-1")
        assert resp.status_code == 200
        assert [t["id"] for t in resp.json()["data"]["tickets"]] == [5, 4]

    @pytest.mark.asyncio
    async def test_list_requires_user(self, client):
        resp = await client.get("/tickets")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_get(self, client, mock_session):
        mock_session.returns_get(make_ticket(id=9, urgency="critical"))
        data = (await client.get("/tickets/9")).json()["data"]
        assert data["id"] == 9
        assert data["urgency_label"] == "بحرانی"

    @pytest.mark.asyncio
    async def test_get_not_found(self, client):
        resp = await client.get("/tickets/404")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TICKET_NOT_FOUND"
