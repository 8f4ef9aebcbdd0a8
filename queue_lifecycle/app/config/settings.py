"""Settings for the queue lifecycle library."""
from __future__ import annotations

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from queue_lifecycle.app.domain.models import QueueConfiguration


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    gateway_backend: str = Field("sqs", validation_alias="GATEWAY_BACKEND")

    aws_region: str = Field("us-east-1", validation_alias="AWS_REGION")
    sqs_endpoint_url: str | None = Field(None, validation_alias="SQS_ENDPOINT_URL")
    aws_access_key_id: str | None = Field(None, validation_alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str | None = Field(None, validation_alias="AWS_SECRET_ACCESS_KEY")
    sqs_connect_timeout_seconds: float = Field(5.0, validation_alias="SQS_CONNECT_TIMEOUT_SECONDS")
    sqs_read_timeout_seconds: float = Field(30.0, validation_alias="SQS_READ_TIMEOUT_SECONDS")
    # Total attempts botocore makes per request (transport-level only; the controller never retries).
    sqs_max_attempts: int = Field(3, validation_alias="SQS_MAX_ATTEMPTS")

    default_max_receive_count: int = Field(3, validation_alias="DEFAULT_MAX_RECEIVE_COUNT")
    default_visibility_timeout_seconds: float = Field(30.0, validation_alias="DEFAULT_VISIBILITY_TIMEOUT_SECONDS")
    default_message_retention_seconds: int | None = Field(None, validation_alias="DEFAULT_MESSAGE_RETENTION_SECONDS")
    receive_wait_seconds: int = Field(0, validation_alias="RECEIVE_WAIT_SECONDS")

    def default_queue_configuration(self) -> QueueConfiguration:
        retention = self.default_message_retention_seconds
        return QueueConfiguration(
            max_receive_count=self.default_max_receive_count,
            visibility_timeout=timedelta(seconds=self.default_visibility_timeout_seconds),
            message_retention_period=timedelta(seconds=retention) if retention else None,
        )
