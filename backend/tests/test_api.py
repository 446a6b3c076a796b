import asyncio

import pytest
from fastapi.testclient import TestClient

from civiclens.core.exceptions import StoreUnavailableError
from civiclens.main import app, background_tasks, start_background, stop_background

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def client(report_service, hotspot_service, analytics_service):
    # No ``with``: startup would connect to Postgres, Redis and MinIO
    app.state.report_service = report_service
    app.state.hotspot_service = hotspot_service
    app.state.analytics_service = analytics_service
    return TestClient(app)


def create(client, description, **fields):
    response = client.post(
        "/reports/",
        params={"wait_for_analysis": True},
        json={"description": description, **fields},
    )
    assert response.status_code == 201
    return response.json()


def test_root(client):
    assert client.get("/").json() == {"message": "CivicLens API is running"}


def test_create_and_fetch(client):
    created = create(client, "large pothole on the road", location="MG Road", category="roads")
    assert created["analysis"]["predicted_category"] == "roads"

    report = client.get(f"/reports/{created['report_id']}").json()
    assert report["category"] == "roads"
    assert report["status"] == "reported"
    assert report["analysis"]["suggested_title"] == created["analysis"]["suggested_title"]


def test_validation_errors(client):
    assert client.post("/reports/", json={"description": "   "}).status_code == 422
    assert client.post("/reports/", json={"title": "no description"}).status_code == 422
    assert client.post("/reports/", json={"description": "x", "category": "weather"}).status_code == 422


def test_missing_report_is_404(client):
    response = client.get("/reports/99")
    assert response.status_code == 404
    assert response.json() == {"detail": "Report 99 not found"}


def test_store_outage_is_503(client, report_store):
    async def unavailable(report):
        raise StoreUnavailableError("insert failed after 3 attempts")

    report_store.create = unavailable
    response = client.post("/reports/", json={"description": "Streetlight not working"})
    assert response.status_code == 503


def test_image_store_outage_is_503(client, blob_store):
    report_id = create(client, "Broken bench in park")["report_id"]

    async def unavailable(*args, **kwargs):
        raise StoreUnavailableError("MinioBlobStore._upload failed after 3 attempts")

    blob_store.put = unavailable
    response = client.post(
        f"/reports/{report_id}/images",
        files=[("files", ("bench.png", PNG, "image/png"))],
    )
    assert response.status_code == 503


def test_updates(client):
    report_id = create(client, "Broken bench in park")["report_id"]

    assert client.patch(f"/reports/{report_id}/status", json={"status": "in-progress"}).json()["status"] == "in-progress"
    assert client.patch(f"/reports/{report_id}/priority", json={"priority": "urgent"}).json()["priority"] == "urgent"
    assert client.patch(f"/reports/{report_id}/moderation", json={"moderation_status": "rejected"}).json()["moderation_status"] == "rejected"
    assert client.patch(f"/reports/{report_id}/verification", json={"is_correct": False}).json()["is_verified"] is False
    assert client.patch(f"/reports/{report_id}/status", json={"status": "done"}).status_code == 422

    assert client.post(f"/reports/{report_id}/upvote").json() == {"report_id": report_id, "upvotes": 1}


def test_list_and_search(client):
    create(client, "Pothole on FC Road", category="roads")
    create(client, "Garbage near school", category="sanitation")

    assert len(client.get("/reports/").json()) == 2
    assert len(client.get("/reports/", params={"category": "roads"}).json()) == 1
    [found] = client.get("/reports/", params={"search": "school"}).json()
    assert found["category"] == "sanitation"


def test_flagged_and_analyses(client):
    spam_id = create(client, "BUY NOW http://x.com free money!!!")["report_id"]

    flagged = client.get("/reports/flagged").json()
    assert [r["id"] for r in flagged["spam"]] == [spam_id]

    [record] = client.get(f"/reports/{spam_id}/analyses").json()
    assert record["result"]["is_spam"] is True


def test_analyze_without_report(client):
    response = client.post("/reports/analyze", json={"description": "Water pipe leak", "image_url": ""})
    body = response.json()
    assert body["success"] is True
    assert body["analysis"]["predicted_category"] == "water"
    assert client.get("/reports/").json() == []


def test_images(client):
    report_id = create(client, "Broken bench in park")["report_id"]

    response = client.post(
        f"/reports/{report_id}/images",
        files=[("files", ("bench.png", PNG, "image/png"))],
    )
    assert response.status_code == 200
    [url] = response.json()["uploaded_urls"]
    assert client.get(f"/reports/{report_id}/images").json() == [url]

    rejected = client.post(
        f"/reports/{report_id}/images",
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )
    assert rejected.status_code == 400

    assert client.delete(f"/reports/{report_id}").status_code == 204
    assert client.get(f"/reports/{report_id}").status_code == 404


def test_hotspots(client):
    create(client, "Water leakage near the temple", location="Kothrud, Pune")
    create(client, "Pipe burst on the main lane", location="Kothrud")

    [hotspot] = client.post("/hotspots/generate").json()
    assert hotspot["location"] == "Kothrud"
    assert client.post("/hotspots/generate").json() == []
    assert [h["id"] for h in client.get("/hotspots/").json()] == [hotspot["id"]]

    updated = client.put(f"/hotspots/{hotspot['id']}/accuracy", json={"actual_issues_count": 3}).json()
    assert updated["actual_issues_count"] == 3
    assert client.put("/hotspots/99/accuracy", json={"actual_issues_count": 3}).status_code == 404
    assert client.post("/hotspots/expire").json() == {"deactivated": 0}


def test_analytics(client):
    create(client, "Streetlight not working")

    summary = client.get("/analytics/summary").json()
    assert summary["total_issues"] == 1
    assert summary["pending_issues"] == 1

    events = client.get("/analytics/events").json()
    assert {e["type"] for e in events} == {"issue_created", "ml_analysis"}

    performance = client.get("/analytics/performance").json()
    assert performance["spam_detection_rate"] == 0.0


def test_websocket_accepts_listeners(client):
    with client.websocket_connect("/reports/ws") as websocket:
        websocket.send_text("hello")


async def test_background_loops_unwind_on_shutdown():
    unwound = []

    async def loop_forever():
        try:
            await asyncio.sleep(3600)
        finally:
            unwound.append(True)

    task = start_background(loop_forever())
    await asyncio.sleep(0)
    await stop_background()

    assert task.cancelled()
    assert unwound == [True]
    assert not background_tasks
