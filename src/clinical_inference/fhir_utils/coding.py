# ============================================================================
# src/clinical_inference/fhir_utils/coding.py
# ============================================================================
"""
Helpers for building CodeableConcepts and References.
"""

from typing import Optional, Union

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.reference import Reference

from ..constants import SNOMED_CODES, ICD10_CODES, LOINC_CODES, NCI_CODES
from ..constants.coding_systems import (
    SNOMED_SYSTEM,
    ICD10_SYSTEM,
    LOINC_SYSTEM,
    NCI_SYSTEM,
)
from ..utils.exceptions import InvalidArgumentError, InvalidReferenceError


def create_codeable_concept(
    system: str,
    code: str,
    display: Optional[str] = None
) -> CodeableConcept:
    """
    Create a CodeableConcept holding a single coding.

    Args:
        system: Coding system URI
        code: Code within the system
        display: Optional display text, also used as the concept text

    Returns:
        CodeableConcept
    """
    if not system:
        raise InvalidArgumentError("Coding system cannot be empty")
    if not code:
        raise InvalidArgumentError("Code cannot be empty")

    return CodeableConcept(
        coding=[Coding(system=system, code=code, display=display)],
        text=display or None
    )


def create_snomed_concept(code: str, display: Optional[str] = None) -> CodeableConcept:
    return create_codeable_concept(SNOMED_SYSTEM, code, display)


def create_icd10_concept(code: str, display: Optional[str] = None) -> CodeableConcept:
    return create_codeable_concept(ICD10_SYSTEM, code, display)


def create_loinc_concept(code: str, display: Optional[str] = None) -> CodeableConcept:
    return create_codeable_concept(LOINC_SYSTEM, code, display)


def create_nci_concept(code: str, display: Optional[str] = None) -> CodeableConcept:
    return create_codeable_concept(NCI_SYSTEM, code, display)


# Lookup order matters: the same name can exist in several tables
_CONSTANT_TABLES = (
    (SNOMED_CODES, SNOMED_SYSTEM),
    (ICD10_CODES, ICD10_SYSTEM),
    (LOINC_CODES, LOINC_SYSTEM),
    (NCI_CODES, NCI_SYSTEM),
)


def create_concept_from_constant(
    constant_name: str,
    display: Optional[str] = None
) -> Optional[CodeableConcept]:
    """
    Create a concept from a named code constant, e.g. "ADT_THERAPY".

    Returns:
        CodeableConcept, or None if the name is not in any code table
    """
    if not constant_name:
        raise InvalidArgumentError("Constant name cannot be empty")

    for table, system in _CONSTANT_TABLES:
        code = table.get(constant_name)
        if code is not None:
            return create_codeable_concept(system, code, display)
    return None


def add_coding(
    concept: CodeableConcept,
    system: str,
    code: str,
    display: Optional[str] = None
) -> CodeableConcept:
    """Append a coding to an existing concept and return it."""
    if not system:
        raise InvalidArgumentError("Coding system cannot be empty")
    if not code:
        raise InvalidArgumentError("Code cannot be empty")

    codings = list(concept.coding or [])
    codings.append(Coding(system=system, code=code, display=display))
    concept.coding = codings
    return concept


def make_reference(
    value: Union[str, Reference],
    resource_type: Optional[str] = None,
    display: Optional[str] = None
) -> Reference:
    """
    Build a Reference from a bare id or a typed reference string.

    A bare id is prefixed with the resource type ("123" -> "Patient/123");
    an already prefixed value is kept as is. A typed value naming another
    resource type ("Device/d1" for a Patient) raises InvalidReferenceError.
    Reference objects pass through.
    """
    if isinstance(value, Reference):
        return value

    if value is None or not str(value).strip():
        label = resource_type or "Reference"
        raise InvalidArgumentError(f"{label} ID cannot be empty")

    reference = value
    if resource_type and not value.startswith(f"{resource_type}/"):
        if "/" in value:
            raise InvalidReferenceError(value, resource_type)
        reference = f"{resource_type}/{value}"

    return Reference(reference=reference, display=display)
