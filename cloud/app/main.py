from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import sqlalchemy as sa
from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel, Field

from pathgate.errors import ChangesetError, ConfigError, OutcomeConflict
from pathgate.model import JobState

from .db import SessionLocal, init_db
from .models import Run, Job, Lease
from .redisq import enqueue_jobs, dequeue_job, requeue_job, take_lease_lock, release_lease_lock
from .service import QUEUED, RunPlan, build_engine, complete_job, plan_run
from .settings import CLAIM_TIMEOUT_SECONDS, LEASE_SECONDS

app = FastAPI(title="pathgate control plane")

# -------------------- Schemas --------------------

class CreateRunRequest(BaseModel):
    repo: str
    ref: str = "HEAD"
    changed_paths: list[str] = Field(default_factory=list)
    pipeline: dict[str, Any]

class CreateRunResponse(BaseModel):
    run_id: str
    flags: dict[str, bool]
    jobs: dict[str, str]
    queued: list[str]

class ClaimRequest(BaseModel):
    agent_id: str

class ClaimedJob(BaseModel):
    job_id: str
    run_id: str
    job_name: str
    payload_json: dict[str, Any]
    lease_expires_at: str

class CompleteRequest(BaseModel):
    agent_id: str
    outcome: str  # success|failure
    details: dict[str, Any] = Field(default_factory=dict)

class CompleteResponse(BaseModel):
    job_name: str
    outcome: str
    queued: list[str]
    run_status: str

class RunStatusResponse(BaseModel):
    run_id: str
    repo: str
    ref: str
    status: str
    overall: str | None
    flags: dict[str, bool]
    jobs: dict[str, str]
    required: list[str]

class JobResponse(BaseModel):
    id: str
    run_id: str
    job_name: str
    status: str
    required: bool
    logs: str | None
    created_at: datetime

# -------------------- Startup --------------------

@app.on_event("startup")
async def startup() -> None:
    await init_db()

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def _uuid(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"{what} not found")

async def _run_jobs(s, run_id) -> list[Job]:
    q = sa.select(Job).where(Job.run_id == run_id)
    return list((await s.execute(q)).scalars())

def _apply_plan(run: Run, rows: list[Job], plan: RunPlan) -> list[str]:
    """Write plan states onto rows; return ids of jobs released to the queue."""
    released = set(plan.queued)
    queued_ids = []
    for row in rows:
        row.status = plan.states[row.job_name]
        if row.job_name in released:
            queued_ids.append(str(row.id))
    run.status = plan.status
    if plan.overall is not None and run.finished_at is None:
        run.finished_at = now_utc()
    return queued_ids

# -------------------- Endpoints --------------------

@app.post("/runs", response_model=CreateRunResponse)
async def create_run(req: CreateRunRequest):
    try:
        plan = plan_run(req.pipeline, req.changed_paths)
        engine = build_engine(req.pipeline)
    except (ConfigError, ChangesetError) as e:
        raise HTTPException(status_code=422, detail=str(e))

    async with SessionLocal() as s:
        async with s.begin():
            run = Run(
                repo=req.repo,
                ref=req.ref,
                status=plan.status,
                pipeline_json=req.pipeline,
                flags_json=plan.flags,
                changed_paths=sorted(req.changed_paths),
            )
            s.add(run)
            await s.flush()

            rows = []
            for name in engine.order:
                job = Job(run_id=run.id, job_name=name, status=plan.states[name], required=engine.jobs[name].required)
                s.add(job)
                rows.append(job)
            await s.flush()

            queued_ids = _apply_plan(run, rows, plan)
            run_id = str(run.id)

    # push to Redis after DB commit
    await enqueue_jobs(queued_ids)

    return CreateRunResponse(run_id=run_id, flags=plan.flags, jobs=plan.states, queued=plan.queued)

@app.post("/leases/claim", response_model=ClaimedJob)
async def claim(req: ClaimRequest):
    job_id = await dequeue_job(timeout_s=CLAIM_TIMEOUT_SECONDS)
    if not job_id:
        return Response(status_code=204)

    # Lock in Redis to reduce duplicate leasing during retries
    if not await take_lease_lock(job_id, req.agent_id):
        return await claim(req)  # try again

    expires_at = now_utc() + timedelta(seconds=LEASE_SECONDS)

    async with SessionLocal() as s:
        async with s.begin():
            job = await s.get(Job, uuid.UUID(job_id))
            if not job:
                await release_lease_lock(job_id)
                raise HTTPException(status_code=404, detail="Job not found")

            if job.status != QUEUED:
                await release_lease_lock(job_id)
                raise HTTPException(status_code=409, detail=f"Job already {job.status}")

            lease = await s.get(Lease, uuid.UUID(job_id))
            if lease and lease.expires_at > now_utc():
                await release_lease_lock(job_id)
                await requeue_job(job_id)
                return await claim(req)

            if lease:
                lease.agent_id = req.agent_id
                lease.leased_at = now_utc()
                lease.expires_at = expires_at
            else:
                s.add(Lease(job_id=uuid.UUID(job_id), agent_id=req.agent_id, leased_at=now_utc(), expires_at=expires_at))

            job.status = JobState.RUNNING.value

            run = await s.get(Run, job.run_id)
            trigger = build_engine(run.pipeline_json).trigger(job.job_name).to_dict()
            trigger.update({"repo_url": run.repo, "ref": run.ref})

            return ClaimedJob(
                job_id=job_id,
                run_id=str(job.run_id),
                job_name=job.job_name,
                payload_json=trigger,
                lease_expires_at=expires_at.isoformat(),
            )

@app.post("/leases/{job_id}/complete", response_model=CompleteResponse)
async def complete(job_id: str, req: CompleteRequest):
    if req.outcome not in (JobState.SUCCESS.value, JobState.FAILURE.value):
        raise HTTPException(status_code=400, detail="outcome must be success|failure")
    jid = _uuid(job_id, "Job")

    async with SessionLocal() as s:
        async with s.begin():
            job = await s.get(Job, jid)
            if not job:
                raise HTTPException(status_code=404, detail="Job not found")

            lease = await s.get(Lease, jid)
            if not lease:
                raise HTTPException(status_code=409, detail="No lease for job")
            if lease.agent_id != req.agent_id:
                raise HTTPException(status_code=403, detail="Lease owned by different agent")

            # serialize completions within one run
            run = (await s.execute(
                sa.select(Run).where(Run.id == job.run_id).with_for_update()
            )).scalar_one()
            rows = await _run_jobs(s, run.id)

            try:
                plan = complete_job(
                    run.pipeline_json,
                    run.flags_json,
                    {row.job_name: row.status for row in rows},
                    job.job_name,
                    JobState(req.outcome),
                )
            except OutcomeConflict as e:
                raise HTTPException(status_code=409, detail=str(e))

            logs = req.details.get("logs", "")
            job.logs = logs if logs else None

            queued_ids = _apply_plan(run, rows, plan)
            await s.delete(lease)
            run_status = run.status

    await release_lease_lock(job_id)
    await enqueue_jobs(queued_ids)

    return CompleteResponse(job_name=job.job_name, outcome=req.outcome, queued=plan.queued, run_status=run_status)

@app.get("/runs/{run_id}", response_model=RunStatusResponse)
async def get_run(run_id: str):
    """Run status: flags, per-job states, and overall once settled."""
    async with SessionLocal() as s:
        run = await s.get(Run, _uuid(run_id, "Run"))
        if not run:
            raise HTTPException(status_code=404, detail="Run not found")
        rows = await _run_jobs(s, run.id)

        return RunStatusResponse(
            run_id=str(run.id),
            repo=run.repo,
            ref=run.ref,
            status=run.status,
            overall=run.status if run.status in (JobState.SUCCESS.value, JobState.FAILURE.value) else None,
            flags=run.flags_json,
            jobs={row.job_name: row.status for row in rows},
            required=[row.job_name for row in rows if row.required],
        )

@app.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str):
    """Get job details including logs."""
    async with SessionLocal() as s:
        job = await s.get(Job, _uuid(job_id, "Job"))
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        return JobResponse(
            id=str(job.id),
            run_id=str(job.run_id),
            job_name=job.job_name,
            status=job.status,
            required=job.required,
            logs=job.logs,
            created_at=job.created_at,
        )
