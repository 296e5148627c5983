"""SNS publisher for job summaries"""
import json
import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class SNSService:
    def __init__(self, topic_arn: str, region: Optional[str] = None, client=None):
        if not topic_arn:
            raise ValueError("Missing SNS configuration. Please set SNS_TOPIC_ARN")

        self.topic_arn = topic_arn
        self.region = region
        self.client = client or boto3.client("sns", region_name=region)

        logger.info(f"✅ SNS Service initialized with topic: {self.topic_arn}")

    def publish(self, message: dict) -> bool:
        """Publish a JSON message to the topic"""
        try:
            response = self.client.publish(
                TopicArn=self.topic_arn,
                Message=json.dumps(message, default=str),
            )
            logger.info(f"📡 Summary sent to SNS: {response.get('MessageId')}")
            return True

        except ClientError as e:
            logger.error(f"❌ SNS Error: {e}")
            logger.error(f"   Error Code: {e.response.get('Error', {}).get('Code', 'Unknown')}")
            return False
        except BotoCoreError as e:
            logger.error(f"❌ Failed to publish to SNS: {e}")
            return False
