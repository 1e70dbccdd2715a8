async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_detailed_health(client):
    response = await client.get("/health/detailed")

    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"] == {"ok": True}
    assert data["checks"]["redis"] == {"ok": True, "enabled": False}
    assert data["checks"]["scheduler"]["backend"] == "off"


async def test_admin_job_flow(client, admin_headers):
    source = await client.post(
        "/api/v1/admin/collect/sources/create",
        json={"name": "Remote", "base_url": "https://remote.example.com/api/"},
        headers=admin_headers,
    )
    source_id = source.json()["id"]

    job = await client.post(
        "/api/v1/admin/collect/jobs/create",
        json={"name": "Hourly", "schedule": "3600", "source_ids": [source_id]},
        headers=admin_headers,
    )
    job_id = job.json()["id"]

    jobs = (await client.get("/api/v1/admin/collect/jobs", headers=admin_headers)).json()
    assert jobs[0]["source_ids"] == [source_id]

    run = await client.post("/api/v1/admin/collect/jobs/run", json={"id": job_id}, headers=admin_headers)
    run_id = run.json()["id"]

    runs = (await client.get("/api/v1/admin/collect/runs", headers=admin_headers)).json()
    assert runs["total"] == 1
    assert runs["items"][0]["job_name"] == "Hourly"

    detail = (await client.get(f"/api/v1/admin/collect/runs/{run_id}", headers=admin_headers)).json()
    assert detail["status"] == 0
    assert detail["job_name"] is None

    tasks = (await client.get("/api/v1/admin/collect/tasks", params={"run_id": run_id}, headers=admin_headers)).json()
    assert tasks["items"][0]["source_name"] == "Remote"

    cancel = await client.post("/api/v1/admin/collect/runs/cancel", json={"id": run_id}, headers=admin_headers)
    assert cancel.json() == {"ok": True}
    again = await client.post("/api/v1/admin/collect/runs/cancel", json={"id": run_id}, headers=admin_headers)
    assert again.status_code == 409

    busy = await client.post("/api/v1/admin/collect/sources/delete", json={"id": source_id}, headers=admin_headers)
    assert busy.status_code == 409

    missing = await client.post("/api/v1/admin/collect/jobs/run", json={"id": 999}, headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["detail"]
