# ============================================================================
# src/clinical_inference/utils/__init__.py
# ============================================================================
"""
Shared utilities: exceptions, logging and AWS execution context.
"""

from .exceptions import (
    BuilderValidationError,
    ClinicalInferenceError,
    ConfidenceRangeError,
    ConfigurationError,
    FactParseError,
    InvalidArgumentError,
    InvalidDeterminationError,
    InvalidReferenceError,
    MissingRequiredFieldError,
)
from .aws_context import AwsContextFilter, Ec2MetadataClient
from .logging import JsonFormatter, LogContext, setup_logging, setup_logging_from_settings
