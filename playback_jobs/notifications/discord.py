"""
Discord formatting for job summaries

Two message families arrive here: stats dispatcher reports, keyed by
"status", and monthly stats / cleanup reports, keyed by "type" or "source".
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from ..jobs.time_period import format_execution_time, parse_execution_time

logger = logging.getLogger(__name__)


def logs_url(region: Optional[str], log_group: Optional[str]) -> str:
    return (
        f"https://{region}.console.aws.amazon.com/cloudwatch/home?region={region}"
        f"#logsV2:log-groups/log-group/{quote(log_group or '', safe='')}"
    )


def local_now(tz_name: str = "UTC", now: Optional[datetime] = None) -> str:
    try:
        tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name}, falling back to UTC")
        tz = timezone.utc
    return (now or datetime.now(timezone.utc)).astimezone(tz).strftime("%m/%d/%Y, %I:%M:%S %p")


def _count(value) -> str:
    return f"{value:,}" if isinstance(value, (int, float)) else "0"


def _or_na(value) -> str:
    if value is None:
        return "N/A"
    return f"{value:,}" if isinstance(value, int) else str(value)


def format_stats_report(msg: dict, now: str, url: str) -> dict:
    status = msg.get("status")

    if status == "success":
        failed_users = msg.get("failed_process_users") or []
        total_ms = msg.get("total_execution_time_ms") or 0
        return {
            "content":
                f"**🎯 Stats Processing Report**\n\n"
                f"**Status**: ✅ {status.upper()}\n"
                f"**Total Users**: {_or_na(msg.get('total_users'))}\n"
                f"**Successfully Processed**: {_or_na(msg.get('total_success_processed_users'))}\n"
                f"**Failed Processed**: {_or_na(msg.get('total_failed_processed_users'))}\n"
                f"**Success Rate**: {msg.get('success_rate_percentage') or 'N/A'}%\n"
                f"**Ranges Processed**: {_or_na(msg.get('total_invoked_ranges'))}\n"
                f"**Total Execution Time**: {total_ms / 1000:.2f}s\n"
                f"**Average Time Per User**: {msg.get('average_time_per_user_ms') or 'N/A'}ms\n"
                f"**Timestamp**: {now}\n\n"
                f"**Failed Users**: {chr(10).join(failed_users) if failed_users else 'None'}\n\n"
                f"**Logs**: [View Logs]({url})"
        }

    if status == "failure":
        return {
            "content":
                f"**🚨 Stats Processing Error**\n\n"
                f"**Status**: ❌ {status.upper()}\n"
                f"**Error**: {msg.get('error') or 'Unknown error'}\n"
                f"**Timestamp**: {now}\n\n"
                f"**Logs**: [View Logs]({url})"
        }

    return {
        "content":
            f"**📢 General Notification**\n\n"
            f"**Status**: {status}\n"
            f"**Detail**: {json.dumps(msg, indent=2, default=str)}\n"
            f"**Timestamp**: {now}\n\n"
            f"**Logs**: [View Logs]({url})"
    }


def _format_monthly_summary(data: dict, url: str) -> dict:
    formatted_time = format_execution_time(parse_execution_time(data.get("executionTime", 0)))
    return {
        "content":
            f"## 📊 Monthly Statistics Processed Successfully\n\n"
            f"✅ **Status**: Completed\n"
            f"🔔 **Notifications Created**: {data.get('notificationsCreated', 0)}\n"
            f"👥 **Users Processed**: {_count(data.get('usersProcessed'))}\n"
            f"📝 **Users Updated**: {_count(data.get('usersUpdated'))}\n"
            f"🧹 **Cleanup Status**: {'✅ Triggered' if data.get('cleanupTriggered') else '❌ Failed'}\n"
            f"⏱️ **Execution Time**: {formatted_time}\n"
            f"🕐 **Completed At**: {data.get('timestamp')}\n\n"
            f"📋 [View Detailed Logs]({url})"
    }


def _format_cleanup(msg: dict, url: str) -> dict:
    data = msg.get("data") or msg.get("results") or {}
    execution_time = data.get("executionTime") or f"{data.get('executionTimeMs', 0)}ms"
    formatted_time = format_execution_time(parse_execution_time(execution_time))
    completed_at = msg.get("timestamp") or data.get("timestamp")

    if data.get("success") is False:
        return {
            "content":
                f"## 🚨 Playback Data Cleanup Failed\n\n"
                f"❌ **Status**: Error\n"
                f"⚠️ **Error Message**: `{data.get('error')}`\n"
                f"⏱️ **Execution Time**: {formatted_time}\n"
                f"🕐 **Failed At**: {completed_at}\n\n"
                f"🔧 **Next Steps**: Please check the logs for detailed error information\n"
                f"📋 [View Error Logs]({url})"
        }

    timed_out = data.get("wasTimeoutStopped") is True
    remaining = data.get("remainingRecords") or 0
    completion = data.get("completionPercentage", 100)

    if timed_out:
        status_text = "⏰ Partially Completed (Timeout)"
        title = "Playback Data Cleanup Partially Completed"
    elif data.get("testMode") is True:
        status_text = "Test Mode"
        title = "Playback Data Cleanup Completed Successfully"
    else:
        status_text = "Completed"
        title = "Playback Data Cleanup Completed Successfully"

    content = (
        f"## 🧹 {title}\n\n"
        f"✅ **Status**: {status_text}\n"
        f"📦 **Records Deleted**: {_count(data.get('recordsDeleted'))}\n"
        f"📊 **Total Found**: {_count(data.get('totalRecordsFound'))}\n"
    )
    if remaining > 0:
        content += f"📋 **Remaining**: {remaining:,} ({completion}% complete)\n"
    content += (
        f"⚙️ **Processing Mode**: {data.get('processingMode') or 'unknown'}\n"
        f"⏱️ **Execution Time**: {formatted_time}\n"
        f"🕐 **Completed At**: {completed_at}\n\n"
    )
    if timed_out:
        content += (
            "⚠️ **Note**: Process stopped early to prevent timeout. "
            "Remaining records will be processed in the next weekly cleanup.\n\n"
        )
    content += f"📋 [View Detailed Logs]({url})"
    return {"content": content}


def format_job_report(msg: dict, now: str, url: str) -> dict:
    """Format monthly stats, cleanup and alarm messages; never raises"""
    try:
        if msg.get("type") == "monthly_stats_summary":
            return _format_monthly_summary(msg["data"], url)

        if msg.get("source") == "playback-data-cleanup":
            return _format_cleanup(msg, url)

        if msg.get("type") == "monthly_stats_error":
            data = msg.get("data", {})
            return {
                "content":
                    f"## 🚨 Monthly Statistics Processing Failed\n\n"
                    f"❌ **Status**: Error\n"
                    f"⚠️ **Error Message**: `{data.get('error')}`\n"
                    f"🕐 **Failed At**: {data.get('timestamp')}\n\n"
                    f"🔧 **Next Steps**: Please check the logs for detailed error information\n"
                    f"📋 [View Error Logs]({url})"
            }

        is_alarm = bool(msg.get("AlarmName") and msg.get("NewStateValue"))
        title = f"🚨 CloudWatch Alarm: {msg['AlarmName']}" if is_alarm else "📢 Job Notification"
        return {
            "content":
                f"## {title}\n\n"
                f"**Message**:\n```json\n{json.dumps(msg, indent=2, default=str)}```\n\n"
                f"🕐 **Received At**: {now}\n"
                f"📋 [View Logs]({url})"
        }
    except Exception as e:
        logger.error(f"❌ Failed to format Discord message: {e}")
        return {
            "content":
                f"## ❌ Discord Message Processing Error\n\n"
                f"**Error**: `{e}`\n"
                f"**Raw Message**: ```json\n{json.dumps(msg, default=str)}```\n\n"
                f"🕐 **Error Time**: {now}\n"
                f"📋 [View Logs]({url})"
        }


def format_message(msg: dict, now: str, url: str) -> dict:
    if "status" in msg and "type" not in msg and "source" not in msg:
        return format_stats_report(msg, now, url)
    return format_job_report(msg, now, url)


class DiscordNotifier:
    def __init__(self, webhook_url: str, timezone_name: str = "UTC",
                 region: Optional[str] = None, log_group: Optional[str] = None, timeout: float = 10.0):
        if not webhook_url:
            raise ValueError("Discord webhook URL is not set")
        self.webhook_url = webhook_url
        self.timezone_name = timezone_name
        self.logs_url = logs_url(region, log_group)
        self.timeout = timeout

    def send(self, msg: dict) -> bool:
        payload = format_message(msg, local_now(self.timezone_name), self.logs_url)
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            logger.info("💬 Message sent to Discord")
            return True
        except requests.RequestException as e:
            logger.error(f"❌ Failed to send message to Discord: {e}")
            return False
