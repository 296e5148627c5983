import json
import logging
from typing import Optional

from ..config import NotifierSettings
from .discord import DiscordNotifier
from .sns_service import SNSService

logger = logging.getLogger(__name__)


class JobReporter:
    """Sends job summaries to SNS and/or Discord, whichever is configured"""

    def __init__(self, sns: Optional[SNSService] = None, discord: Optional[DiscordNotifier] = None):
        self.sns = sns
        self.discord = discord

    @classmethod
    def from_env(cls) -> "JobReporter":
        settings = NotifierSettings.from_env()
        sns = SNSService(settings.sns_topic_arn, settings.aws_region) if settings.sns_topic_arn else None
        discord = None
        if settings.discord_webhook_url:
            discord = DiscordNotifier(
                settings.discord_webhook_url,
                timezone_name=settings.discord_timezone,
                region=settings.aws_region,
                log_group=settings.log_group_name,
            )
        return cls(sns=sns, discord=discord)

    def report(self, message: dict) -> bool:
        delivered = False
        for channel in (self.sns, self.discord):
            if channel is None:
                continue
            try:
                sent = channel.publish(message) if channel is self.sns else channel.send(message)
                delivered = delivered or sent
            except Exception as e:
                logger.error(f"❌ Failed to report job result via {type(channel).__name__}: {e}")

        if self.sns is None and self.discord is None:
            logger.info("📭 No notification channel configured, summary only logged")
        return delivered


def handle_sns_event(event: dict, notifier: Optional[DiscordNotifier]) -> dict:
    """Relay SNS notification records to Discord"""
    if notifier is None:
        return {"statusCode": 500, "body": "Discord webhook URL is not set"}

    sent = 0
    try:
        for record in event.get("Records", []):
            message = json.loads(record["Sns"]["Message"])
            if notifier.send(message):
                sent += 1
    except (KeyError, TypeError, json.JSONDecodeError) as e:
        logger.error(f"❌ Invalid SNS event: {e}")
        return {
            "statusCode": 400,
            "body": json.dumps({"message": "Failed to send message to Discord", "error": str(e)}),
        }

    return {
        "statusCode": 200,
        "body": json.dumps({"message": "Messages sent to Discord successfully", "sent": sent}),
    }
