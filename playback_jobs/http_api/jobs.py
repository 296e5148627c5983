import hmac
import logging
from typing import Optional

from fastapi import Header, HTTPException
from pydantic import BaseModel

from .. import config
from ..db.connection import get_database
from ..jobs.runner import run_job
from ..notifications.discord import DiscordNotifier
from ..notifications.reporter import handle_sns_event

logger = logging.getLogger(__name__)


class JobRequest(BaseModel):
    test_mode: bool = False
    triggered_by: str = "api"


class JobResponse(BaseModel):
    success: bool
    job: str
    summary: dict


def verify_api_key(x_api_key: Optional[str] = Header(None)):
    """Compare the x-api-key header with API_INTERNAL_SECRET_KEY"""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Internal API key is required")

    expected = config.internal_secret_key()
    if not expected:
        raise HTTPException(status_code=401, detail="Internal API key not configured")
    if not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid internal API key")


async def run_job_handler(name: str, job_request: JobRequest) -> JobResponse:
    try:
        summary = await run_job(
            name, get_database(), test_mode=job_request.test_mode, triggered_by=job_request.triggered_by
        )
        return JobResponse(success=True, job=name, summary=summary)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Job {name} failed: {e}")
        raise HTTPException(status_code=500, detail=f"Job {name} failed: {str(e)}")


async def sns_relay_handler(event: dict) -> dict:
    settings = config.NotifierSettings.from_env()
    notifier = None
    if settings.discord_webhook_url:
        notifier = DiscordNotifier(
            settings.discord_webhook_url,
            timezone_name=settings.discord_timezone,
            region=settings.aws_region,
            log_group=settings.log_group_name,
        )

    result = handle_sns_event(event, notifier)
    if result["statusCode"] != 200:
        raise HTTPException(status_code=result["statusCode"], detail=result["body"])
    return result
