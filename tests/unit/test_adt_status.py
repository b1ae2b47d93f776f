# ============================================================================
# FILE: tests/unit/test_adt_status.py
# ============================================================================
"""
Unit tests for the ADT status Observation builder
"""

from datetime import date

import pytest

from clinical_inference.constants.coding_systems import (
    ACT_CODE_SYSTEM,
    RESULT_CODE_SYSTEM,
    SOURCE_MEDICATION_REFERENCE_URL,
)
from clinical_inference.fhir_utils import AdtStatusObservationBuilder
from clinical_inference.utils.exceptions import (
    ConfidenceRangeError,
    InvalidArgumentError,
    MissingRequiredFieldError,
)


def _builder(patient_ref, device_ref):
    return (
        AdtStatusObservationBuilder()
        .with_patient(patient_ref)
        .with_device(device_ref)
    )


def test_adt_end_to_end(patient_ref, device_ref):
    """Active ADT with confidence and nothing else"""
    obs = (
        _builder(patient_ref, device_ref)
        .with_status(True)
        .with_confidence(0.94)
        .build()
    )

    assert obs is not None
    assert obs.status == "final"
    assert obs.subject.reference == "Patient/p1"
    assert obs.device.reference == "Device/d1"
    assert obs.valueCodeableConcept.coding[0].code == "385654001"
    assert obs.code.coding[0].code == "413712001"
    assert obs.category[0].coding[0].code == "therapy"

    assert len(obs.component) == 1
    assert float(obs.component[0].valueQuantity.value) == 0.94

    assert not obs.derivedFrom
    assert not obs.note


def test_adt_inactive_status(patient_ref, device_ref):
    """Not receiving ADT maps to the inactive code"""
    obs = _builder(patient_ref, device_ref).with_status(False).build()

    assert obs.valueCodeableConcept.coding[0].code == "385655000"
    assert obs.valueCodeableConcept.coding[0].display == "Inactive"


def test_adt_requires_patient(device_ref):
    """Missing patient names the setter"""
    builder = AdtStatusObservationBuilder().with_device(device_ref).with_status(True)

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_patient()" in str(exc_info.value)


def test_adt_requires_device(patient_ref):
    builder = AdtStatusObservationBuilder().with_patient(patient_ref).with_status(True)

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_device()" in str(exc_info.value)


def test_adt_requires_status(patient_ref, device_ref):
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        _builder(patient_ref, device_ref).build()

    assert "with_status()" in str(exc_info.value)


@pytest.mark.parametrize("value", [-0.1, 1.1, float("nan")])
def test_confidence_out_of_range(value):
    """Confidence is checked when the setter is called"""
    with pytest.raises(ConfidenceRangeError):
        AdtStatusObservationBuilder().with_confidence(value)


@pytest.mark.parametrize("value", [0.0, 1.0])
def test_confidence_boundaries(patient_ref, device_ref, value):
    """Boundary values appear verbatim in the confidence component"""
    obs = _builder(patient_ref, device_ref).with_status(True).with_confidence(value).build()

    assert float(obs.component[0].valueQuantity.value) == value


def test_treatment_start_date_component(patient_ref, device_ref):
    """Treatment start date carries the medication reference extension"""
    obs = (
        _builder(patient_ref, device_ref)
        .with_status(True)
        .with_treatment_start_date(date(2024, 1, 15), "MedicationRequest/leuprolide-1", "Leuprolide started")
        .build()
    )

    component = obs.component[0]
    assert component.code.coding[0].system == RESULT_CODE_SYSTEM
    assert component.code.coding[0].code == "treatmentStartDate_v1"
    assert component.code.text == "Leuprolide started"
    assert component.valueDateTime is not None
    assert component.extension[0].url == SOURCE_MEDICATION_REFERENCE_URL
    assert component.extension[0].valueReference.reference == "MedicationRequest/leuprolide-1"


def test_treatment_start_date_requires_reference():
    with pytest.raises(InvalidArgumentError):
        AdtStatusObservationBuilder().with_treatment_start_date(date(2024, 1, 15), "", "text")


def test_criteria_sets_method(patient_ref, device_ref, inference_config):
    """Criteria id becomes the method coding under the configured system"""
    obs = (
        AdtStatusObservationBuilder(inference_config)
        .with_patient(patient_ref)
        .with_device(device_ref)
        .with_status(True)
        .with_criteria("adt-status-v2", "ADT Status Criteria v2")
        .build()
    )

    assert obs.method.coding[0].system == inference_config.CRITERIA_SYSTEM
    assert obs.method.coding[0].code == "adt-status-v2"


def test_inference_id_and_security_label(patient_ref, device_ref):
    obs = (
        _builder(patient_ref, device_ref)
        .with_status(True)
        .with_inference_id("to.ai-inference-000001")
        .build()
    )

    assert obs.id == "to.ai-inference-000001"
    assert obs.meta.security[0].system == ACT_CODE_SYSTEM
    assert obs.meta.security[0].code == "AIAST"


def test_generated_inference_id(patient_ref, device_ref):
    obs = _builder(patient_ref, device_ref).with_status(True).build()

    assert obs.id.startswith("to.ai-inference-")


def test_notes_are_timestamped(patient_ref, device_ref):
    obs = (
        _builder(patient_ref, device_ref)
        .with_status(True)
        .add_note("Leuprolide every 3 months")
        .add_note("   ")
        .build()
    )

    assert len(obs.note) == 1
    assert obs.note[0].text == "Leuprolide every 3 months"
    assert obs.note[0].time is not None
