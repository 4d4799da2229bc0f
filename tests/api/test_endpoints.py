"""
API endpoint tests
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from api.dependencies import get_db
from api.main import app
from batch.job import JobLauncher
from batch.jobs import JOB_A, JOIN_STAGING_JOB, default_registry
from batch.repository import JobRepository
from models import BatchStatus, SourceTableA


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client bound to the app, reading from the test database"""
    async def override_get_db():
        async with session_factory() as session:
            yield session
    
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def launcher(session_factory):
    return JobLauncher(session_factory, default_registry())


class TestHealthEndpoint:
    
    @pytest.mark.asyncio
    async def test_healthy_without_runs(self, client):
        response = await client.get("/health")
        
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["total_jobs"] == 0
    
    @pytest.mark.asyncio
    async def test_request_id_headers(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})
        
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-API-Latency-ms" in response.headers
    
    @pytest.mark.asyncio
    async def test_degraded_when_latest_run_failed(self, client, launcher, session_factory):
        await launcher.launch(JOB_A, {"run_token": 1})
        async with session_factory() as session:
            repo = JobRepository(session)
            run = await repo.create_job_run(JOIN_STAGING_JOB, "k" * 64, {"run_token": 1})
            await repo.complete_job_run(run, BatchStatus.FAILED, exit_message="mergeFinalStep: boom")
        
        response = await client.get("/health")
        
        data = response.json()
        assert data["status"] == "degraded"
        assert data["total_jobs"] == 2
        assert data["failed_jobs"] == 1


class TestJobsEndpoint:
    
    @pytest.mark.asyncio
    async def test_lists_registered_jobs(self, client):
        response = await client.get("/jobs")
        
        assert response.status_code == 200
        jobs = {job["name"]: job["steps"] for job in response.json()["jobs"]}
        assert jobs["jobA"] == ["stepJobA"]
        assert jobs["joinStagingJob"] == ["loadStagingAStep", "loadStagingBStep", "mergeFinalStep"]


class TestRunsEndpoint:
    
    @pytest.mark.asyncio
    async def test_paginated_history(self, client, launcher, seed_demo):
        await seed_demo()
        for token in (1, 2, 3):
            await launcher.launch(JOB_A, {"run_token": token})
        
        response = await client.get("/runs", params={"page": 1, "page_size": 2})
        
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total_items"] == 3
        assert data["pagination"]["total_pages"] == 2
        assert data["pagination"]["has_next"] is True
        assert [item["parameters"]["run_token"] for item in data["items"]] == [3, 2]
        assert data["items"][0]["status"] == "completed"
    
    @pytest.mark.asyncio
    async def test_filters(self, client, launcher, seed_demo):
        await seed_demo()
        await launcher.launch(JOB_A, {"run_token": 1})
        await launcher.launch(JOIN_STAGING_JOB, {"run_token": 1})
        
        response = await client.get("/runs", params={"job_name": JOIN_STAGING_JOB, "status": "completed"})
        
        data = response.json()
        assert [item["job_name"] for item in data["items"]] == [JOIN_STAGING_JOB]
        assert data["filters_applied"] == {"job_name": JOIN_STAGING_JOB, "status": "completed"}
    
    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, client):
        response = await client.get("/runs", params={"status": "exploded"})
        
        assert response.status_code == 422
    
    @pytest.mark.asyncio
    async def test_run_detail_includes_steps_and_checkpoints(self, client, launcher, seed_rows):
        await seed_rows(SourceTableA, [(1, "A1", "1.00"), (2, "A2", "2.00"), (3, "A3", "3.00")])
        result = await launcher.launch(JOB_A, {"run_token": 1})
        
        response = await client.get(f"/runs/{result.run_id}")
        
        assert response.status_code == 200
        data = response.json()
        assert data["run_id"] == result.run_id
        assert data["attempt"] == 1
        step = data["steps"][0]
        assert step["step_name"] == "stepJobA"
        assert step["status"] == "completed"
        assert step["read_count"] == 3
        assert step["checkpoint"]["position"] == "3"
    
    @pytest.mark.asyncio
    async def test_unknown_run(self, client):
        response = await client.get("/runs/does-not-exist")
        
        assert response.status_code == 404
