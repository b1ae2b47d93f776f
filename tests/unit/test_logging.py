# ============================================================================
# FILE: tests/unit/test_logging.py
# ============================================================================
"""
Unit tests for logging setup and JSON formatting
"""

import json
import logging

import pytest

from clinical_inference.utils.aws_context import AwsContextFilter
from clinical_inference.utils.exceptions import ConfigurationError
from clinical_inference.utils.logging import JsonFormatter, LogContext, setup_logging


@pytest.fixture
def restore_root_logger():
    """Put back the root logger handlers replaced by setup_logging"""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _record(message="Built Observation to.ai-inference-000001"):
    return logging.LogRecord("clinical_inference", logging.INFO, __file__, 10, message, None, None)


def test_json_formatter_includes_context():
    context_filter = AwsContextFilter(
        probe_metadata=False,
        environ={"AWS_LAMBDA_FUNCTION_NAME": "hsdm", "AWS_REGION": "us-east-2"}
    )
    record = _record()
    context_filter.filter(record)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Built Observation to.ai-inference-000001"
    assert payload["level"] == "INFO"
    assert payload["lambda_function_name"] == "hsdm"
    assert payload["aws_region"] == "us-east-2"
    assert payload["execution_environment"] == "Lambda"
    assert "ec2_instance_id" not in payload


def test_setup_logging_attaches_filter(restore_root_logger):
    context_filter = AwsContextFilter(probe_metadata=False, environ={})

    setup_logging(level="debug", format_json=True, context_filter=context_filter)

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert context_filter in root.handlers[0].filters
    assert isinstance(root.handlers[0].formatter, JsonFormatter)


def test_setup_logging_without_context(restore_root_logger):
    setup_logging(level="WARNING", aws_context=False)

    assert not restore_root_logger.handlers[0].filters


def test_setup_logging_invalid_level():
    with pytest.raises(ConfigurationError):
        setup_logging(level="LOUD", aws_context=False)


def test_log_context_sets_record_attributes():
    logger = logging.getLogger("clinical_inference.test")

    with LogContext(logger, inference_id="to.ai-inference-000009"):
        record = logger.makeRecord(logger.name, logging.INFO, __file__, 1, "msg", None, None)

    assert record.inference_id == "to.ai-inference-000009"
