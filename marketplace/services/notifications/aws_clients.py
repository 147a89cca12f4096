"""
AWS SNS mobile push client wrapper with error handling.

Device tokens are Firebase registration tokens. Each push registers the token
as an endpoint of the configured SNS platform application (an idempotent call
for a token already registered) and publishes a GCM payload to that endpoint.
Calls are blocking boto3 calls; async callers run them in a worker thread.
"""

import json
import time
from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_ERROR_CODES = frozenset(
    {
        "InvalidParameter",
        "InvalidParameterValue",
        "EndpointDisabled",
        "NotFound",
        "AuthorizationError",
    }
)


class PushClientError(Exception):
    """Exception for SNS push delivery errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """
        Initialize push client error.

        Args:
            message: Error message
            **context: Additional error context
        """
        super().__init__(message)
        self.service = "SNS"
        self.context = context


def build_push_message(title: str, body: str) -> str:
    """
    Build the SNS ``MessageStructure="json"`` payload for an FCM notification.

    Args:
        title: Notification title
        body: Notification body

    Returns:
        JSON string with a plain-text default and a GCM notification entry
    """
    gcm_payload = {"notification": {"title": title, "body": body}}
    return json.dumps({"default": body, "GCM": json.dumps(gcm_payload)})


def _redact(token: str) -> str:
    return f"{token[:8]}..." if len(token) > 8 else "***"


class SNSPushClient:
    """
    AWS SNS client wrapper for mobile push with retry logic.

    Retries throttling, transient service and connection errors with
    exponential backoff. Invalid tokens and parameters fail immediately.
    """

    def __init__(
        self,
        platform_application_arn: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        client: Any = None,
    ) -> None:
        """
        Initialize SNS push client.

        Args:
            platform_application_arn: SNS platform application ARN (defaults to settings)
            aws_access_key_id: AWS access key ID (defaults to settings)
            aws_secret_access_key: AWS secret access key (defaults to settings)
            region_name: AWS region name (defaults to settings)
            max_retries: Maximum number of attempts per token (defaults to settings)
            retry_backoff: Initial backoff time in seconds (defaults to settings)
            client: Pre-built boto3 SNS client, mainly for tests
        """
        settings = get_settings()
        self.platform_application_arn = (
            platform_application_arn or settings.sns_platform_application_arn
        )
        self.max_retries = max_retries or settings.push_max_retries
        self.retry_backoff = (
            settings.push_retry_backoff if retry_backoff is None else retry_backoff
        )
        region = region_name or settings.aws_region

        self._client = client or boto3.client(
            "sns",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key
            or settings.aws_secret_access_key,
            region_name=region,
        )

        logger.info(
            "SNS push client initialized",
            region=region,
            max_retries=self.max_retries,
        )

    def _create_endpoint(self, device_token: str) -> str:
        response = self._client.create_platform_endpoint(
            PlatformApplicationArn=self.platform_application_arn,
            Token=device_token,
        )
        return response["EndpointArn"]

    def send_push(self, device_token: str, title: str, body: str) -> dict[str, Any]:
        """
        Send a push notification to one device with retry logic.

        Args:
            device_token: FCM registration token
            title: Notification title
            body: Notification body

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            PushClientError: If delivery fails after retries or is rejected
        """
        if not device_token:
            raise PushClientError("Device token is required")
        if not self.platform_application_arn:
            raise PushClientError("SNS platform application ARN is not configured")

        message = build_push_message(title, body)
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                endpoint_arn = self._create_endpoint(device_token)
                response = self._client.publish(
                    TargetArn=endpoint_arn,
                    MessageStructure="json",
                    Message=message,
                )

                message_id = response["MessageId"]
                logger.info(
                    "Push sent via SNS",
                    message_id=message_id,
                    token=_redact(device_token),
                    attempt=attempt + 1,
                )
                return {"message_id": message_id, "status": "sent"}

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                error_message = e.response.get("Error", {}).get("Message", str(e))

                logger.warning(
                    "SNS client error",
                    attempt=attempt + 1,
                    error_code=error_code,
                    error_message=error_message,
                    token=_redact(device_token),
                )

                last_exception = e

                if error_code in NON_RETRYABLE_ERROR_CODES:
                    raise PushClientError(
                        f"SNS error: {error_message}",
                        error_code=error_code,
                    ) from e

            except (
                BotoConnectionError,
                EndpointConnectionError,
                BotoCoreError,
            ) as e:
                logger.warning(
                    "SNS connection error",
                    attempt=attempt + 1,
                    error=str(e),
                )
                last_exception = e

            if attempt < self.max_retries - 1:
                backoff_time = self.retry_backoff * (2**attempt)
                logger.info(
                    "Retrying push after backoff",
                    backoff_seconds=backoff_time,
                    attempt=attempt + 1,
                )
                time.sleep(backoff_time)

        raise PushClientError(
            f"Failed to send push after {self.max_retries} attempts",
            last_error=str(last_exception),
        ) from last_exception


def get_push_client() -> SNSPushClient:
    """
    Get SNS push client instance configured from settings.

    Returns:
        Configured SNS push client
    """
    return SNSPushClient()
