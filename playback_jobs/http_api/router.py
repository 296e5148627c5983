from typing import Dict, Any, Optional

from fastapi import APIRouter, Body, Depends

from .jobs import (
    JobRequest,
    JobResponse,
    run_job_handler,
    sns_relay_handler,
    verify_api_key,
)

router = APIRouter()

# Health check endpoint
@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "version": "0.1.0"}

# Job trigger endpoints
@router.post("/jobs/stats", response_model=JobResponse, dependencies=[Depends(verify_api_key)])
async def trigger_stats(job_request: Optional[JobRequest] = None):
    """Aggregate pending playbacks into user stats"""
    return await run_job_handler("stats", job_request or JobRequest())

@router.post("/jobs/monthly-stats", response_model=JobResponse, dependencies=[Depends(verify_api_key)])
async def trigger_monthly_stats(job_request: Optional[JobRequest] = None):
    """Create this month's statistic notification and run the cleanup"""
    return await run_job_handler("monthly-stats", job_request or JobRequest())

@router.post("/jobs/playback-cleanup", response_model=JobResponse, dependencies=[Depends(verify_api_key)])
async def trigger_playback_cleanup(job_request: Optional[JobRequest] = None):
    """Delete playbacks older than the retention window"""
    return await run_job_handler("playback-cleanup", job_request or JobRequest())

# Notification relay
@router.post("/notifications/sns", dependencies=[Depends(verify_api_key)])
async def relay_sns(event: Dict[str, Any] = Body(...)):
    """Forward SNS notification records to Discord"""
    return await sns_relay_handler(event)
