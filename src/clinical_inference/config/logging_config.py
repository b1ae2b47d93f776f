# ============================================================================
# src/clinical_inference/config/logging_config.py
# ============================================================================
"""
Logging Settings
- Log level
- JSON output
- AWS execution context enrichment
"""

from pydantic import Field
from pydantic_settings import BaseSettings

class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )
    LOG_FORMAT_JSON: bool = Field(
        default=False,
        description="Emit log records as JSON lines"
    )
    ENABLE_AWS_CONTEXT: bool = Field(
        default=True,
        description="Attach EC2/Lambda/ECS/EKS context to every log record"
    )

logging_settings = LoggingSettings()
