"""API tests for the key-gated admin endpoints."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from httpx import AsyncClient

from speedcache.services.job_store import utc_now

from conftest import ACCESS_KEY, fake_pagespeed, force_fields


async def _backdate(store, session_factory, url: str, days: float):
    report = await store.create(url)
    await force_fields(session_factory, report.public_id, created_at=utc_now() - timedelta(days=days))
    return report


class TestAccessKey:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,path", [
        ("GET", "/debug/list"),
        ("GET", "/admin/delete-old"),
        ("POST", "/admin/delete-old"),
        ("POST", "/admin/recover-stuck"),
    ])
    async def test_admin_routes_require_key(self, client: AsyncClient, method, path):
        resp = await client.request(method, path)
        assert resp.status_code == 401

        resp = await client.request(method, path, params={"key": "wrong"})
        assert resp.status_code == 401


class TestDebugList:

    @pytest.mark.asyncio
    async def test_lists_records_and_counts(self, client: AsyncClient, store):
        done = await store.create("https://a.example.com")
        await store.update_status(done.public_id, "processing")
        await store.update_status(done.public_id, "completed", result_location="results/a.json")
        await store.create("https://b.example.com")

        resp = await client.get("/debug/list", params={"key": ACCESS_KEY})

        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 2
        assert data["counts"] == {"pending": 1, "processing": 0, "completed": 1, "failed": 0}
        record = next(r for r in data["records"] if r["publicId"] == done.public_id)
        assert record["dataUrl"] == "results/a.json"
        assert record["hasData"] is True
        assert "data" not in record
        pending = next(r for r in data["records"] if r["publicId"] != done.public_id)
        assert pending["hasData"] is False

    @pytest.mark.asyncio
    async def test_empty_list(self, client: AsyncClient):
        resp = await client.get("/debug/list", params={"key": ACCESS_KEY})
        assert resp.json()["count"] == 0
        assert resp.json()["records"] == []


class TestDeleteOld:

    @pytest.mark.asyncio
    async def test_default_ten_days(self, client: AsyncClient, store, session_factory):
        for i in range(3):
            await _backdate(store, session_factory, f"https://old{i}.example.com", 11)
        recent = await _backdate(store, session_factory, "https://recent.example.com", 9)

        resp = await client.get("/admin/delete-old", params={"key": ACCESS_KEY})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "deletedCount": 3, "daysOld": 10}
        assert await store.get_by_public_id(recent.public_id) is not None

    @pytest.mark.asyncio
    async def test_custom_days(self, client: AsyncClient, store, session_factory):
        await _backdate(store, session_factory, "https://a.example.com", 2)
        await _backdate(store, session_factory, "https://b.example.com", 0.1)

        resp = await client.post("/admin/delete-old", params={"key": ACCESS_KEY, "days": "1"})

        assert resp.json()["deletedCount"] == 1
        assert resp.json()["daysOld"] == 1

    @pytest.mark.asyncio
    async def test_fractional_days(self, client: AsyncClient, store, session_factory):
        await _backdate(store, session_factory, "https://a.example.com", 1)

        resp = await client.get("/admin/delete-old", params={"key": ACCESS_KEY, "days": "0.5"})

        assert resp.json()["deletedCount"] == 1
        assert resp.json()["daysOld"] == 0.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days", ["abc", "-1", "nan", "inf"])
    async def test_invalid_days_returns_400(self, client: AsyncClient, days):
        resp = await client.get("/admin/delete-old", params={"key": ACCESS_KEY, "days": days})
        assert resp.status_code == 400
        assert "Invalid days parameter" in resp.json()["detail"]


class TestRecoverStuck:

    @pytest.mark.asyncio
    async def test_recover_dispatches_stuck_reports(self, client: AsyncClient, store, mock_dispatch):
        stuck = await store.create("https://stuck.example.com")
        await store.update_status(
            stuck.public_id, "processing", processing_started_at=utc_now() - timedelta(minutes=4)
        )
        fresh = await store.create("https://fresh.example.com")
        await store.update_status(fresh.public_id, "processing")

        resp = await client.post("/admin/recover-stuck", params={"key": ACCESS_KEY})

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "recovered": 1}
        mock_dispatch.assert_called_once_with(stuck.public_id, "https://stuck.example.com")
        assert (await store.get_by_public_id(stuck.public_id)).status == "pending"
        assert (await store.get_by_public_id(fresh.public_id)).status == "processing"

    @pytest.mark.asyncio
    async def test_recover_inline_when_dispatch_disabled(self, client: AsyncClient, store, mock_dispatch):
        stuck = await store.create("https://stuck.example.com")
        await store.update_status(
            stuck.public_id, "processing", processing_started_at=utc_now() - timedelta(minutes=4)
        )

        with patch("speedcache.api.admin.settings.DISPATCH_BACKGROUND_JOBS", False), \
             patch("speedcache.services.report.fetch_analysis", side_effect=fake_pagespeed()):
            resp = await client.post("/admin/recover-stuck", params={"key": ACCESS_KEY})

        assert resp.json()["recovered"] == 1
        mock_dispatch.assert_not_called()
        assert (await store.get_by_public_id(stuck.public_id)).status == "completed"
