# ============================================================================
# src/clinical_inference/fhir_utils/ids.py
# ============================================================================
"""
Identifier generation for AI generated resources.
"""

import threading
from typing import Optional
from uuid import uuid4

from ..utils.exceptions import InvalidArgumentError

_sequence_counter = 0
_sequence_lock = threading.Lock()


def generate_inference_id(sequence: Optional[int] = None) -> str:
    """
    Generate an inference id.

    Args:
        sequence: Optional sequence number; produces a zero-padded id instead of a uuid

    Returns:
        "to.ai-inference-<uuid>" or "to.ai-inference-000042"
    """
    if sequence is not None:
        return f"to.ai-inference-{sequence:06d}"
    return f"to.ai-inference-{uuid4()}"


def generate_provenance_id() -> str:
    return f"to.ai-provenance-{uuid4()}"


def generate_document_id(doc_type: str) -> str:
    if not doc_type:
        raise InvalidArgumentError("Document type cannot be empty")
    sanitized = doc_type.lower().replace(" ", "-")
    return f"to.ai-document-{sanitized}-{uuid4()}"


def generate_resource_id(prefix: str, guid: Optional[str] = None) -> str:
    if not prefix:
        raise InvalidArgumentError("Prefix cannot be empty")
    return f"{prefix}-{(guid or str(uuid4())).lower()}"


def generate_sequential_id(prefix: str, sequence: Optional[int] = None) -> str:
    """Generate "<prefix>-000001" style ids from a process wide counter."""
    global _sequence_counter

    if not prefix:
        raise InvalidArgumentError("Prefix cannot be empty")
    if sequence is not None:
        return f"{prefix}-{sequence:06d}"

    with _sequence_lock:
        _sequence_counter += 1
        return f"{prefix}-{_sequence_counter:06d}"


def reset_sequence_counter() -> None:
    global _sequence_counter

    with _sequence_lock:
        _sequence_counter = 0
