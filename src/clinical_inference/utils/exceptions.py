# ============================================================================
# src/clinical_inference/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the clinical inference builders.
"""

from typing import Optional


class ClinicalInferenceError(Exception):
    """Base exception for all clinical inference errors."""
    pass


class BuilderValidationError(ClinicalInferenceError):
    """Error raised while validating builder state."""
    pass


class MissingRequiredFieldError(BuilderValidationError):
    """A required field was not set before build()."""
    def __init__(self, field_name: str, setter: str, message: Optional[str] = None):
        super().__init__(
            message or f"{field_name} is required. Call {setter}() before build()."
        )
        self.field_name = field_name
        self.setter = setter


class InvalidArgumentError(BuilderValidationError, ValueError):
    """Invalid value passed to a builder setter."""
    pass


class ConfidenceRangeError(InvalidArgumentError):
    """Confidence score outside [0.0, 1.0]."""
    def __init__(self, value: float):
        super().__init__(f"Confidence must be between 0.0 and 1.0, got {value}")
        self.value = value


class InvalidDeterminationError(InvalidArgumentError):
    """Determination or progression value outside its closed set."""
    def __init__(self, value: str, allowed):
        super().__init__(
            f"Invalid determination value: {value}. Must be one of: {', '.join(allowed)}."
        )
        self.value = value
        self.allowed = tuple(allowed)


class InvalidReferenceError(InvalidArgumentError):
    """Reference points at the wrong resource type."""
    def __init__(self, reference: str, expected_type: str):
        super().__init__(
            f"Expected a {expected_type} reference. "
            f"Reference must start with '{expected_type}/', got '{reference}'"
        )
        self.reference = reference
        self.expected_type = expected_type


class FactParseError(ClinicalInferenceError, ValueError):
    """Facts JSON could not be parsed."""
    pass


class ConfigurationError(ClinicalInferenceError):
    """Invalid configuration."""
    pass
