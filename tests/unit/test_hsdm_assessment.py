# ============================================================================
# FILE: tests/unit/test_hsdm_assessment.py
# ============================================================================
"""
Unit tests for the HSDM assessment Condition builder
"""

import pytest

from clinical_inference.constants.coding_systems import (
    ASSESSMENT_CRITERIA_URL,
    CLINICAL_FACT_URL,
    CONFIDENCE_EXTENSION_URL,
)
from clinical_inference.fhir_utils import HsdmAssessmentConditionBuilder
from clinical_inference.fhir_utils.hsdm_assessment import MCRPC, MCSPC, NM_CSPC_BIOCHEMICAL_RELAPSE
from clinical_inference.utils.exceptions import (
    ConfidenceRangeError,
    InvalidArgumentError,
    InvalidDeterminationError,
    InvalidReferenceError,
    MissingRequiredFieldError,
)


@pytest.fixture
def hsdm_builder(patient_ref, device_ref, condition_ref, supporting_fact):
    return (
        HsdmAssessmentConditionBuilder()
        .with_patient(patient_ref)
        .with_device(device_ref)
        .with_focus(condition_ref)
        .with_hsdm_result(MCSPC)
        .add_fact_evidence(supporting_fact)
        .with_summary("Metastatic disease on bone scan with PSA response to ADT")
    )


def test_mcspc_condition(hsdm_builder, patient_ref, device_ref):
    condition = hsdm_builder.with_confidence(0.88).build()

    assert condition.subject.reference == patient_ref
    assert condition.participant[0].actor.reference == device_ref
    assert [c.code for c in condition.code.coding] == ["1197209002", "Z19.1"]
    assert condition.code.text == "Castration-Sensitive Prostate Cancer (mCSPC)"
    assert condition.clinicalStatus.coding[0].code == "active"
    assert condition.meta.security[0].code == "AIAST"
    assert condition.note[0].text.startswith("Metastatic disease")


@pytest.mark.parametrize("result,codes", [
    (NM_CSPC_BIOCHEMICAL_RELAPSE, ["1197209002", "Z19.1", "R97.21"]),
    (MCRPC, ["445848006", "Z19.2"]),
])
def test_result_codes(hsdm_builder, result, codes):
    condition = hsdm_builder.with_hsdm_result(result).build()

    assert [c.code for c in condition.code.coding] == codes


def test_fact_evidence(hsdm_builder):
    condition = hsdm_builder.build()

    assert condition.evidence[0].reference.reference == "DocumentReference/ct-2024-03"
    assert condition.evidence[0].reference.display == "Fact evidence: imaging_finding"
    assert condition.extension[0].url == CLINICAL_FACT_URL


def test_confidence_and_criteria_extensions(hsdm_builder):
    condition = (
        hsdm_builder
        .with_confidence(0.75)
        .with_criteria("hsdm-v1", "HSDM Criteria", "Hormone sensitivity classification")
        .build()
    )

    by_url = {e.url: e for e in condition.extension}
    assert float(by_url[CONFIDENCE_EXTENSION_URL].valueDecimal) == 0.75

    criteria = {e.url: e.valueString for e in by_url[ASSESSMENT_CRITERIA_URL].extension}
    assert criteria == {
        "id": "hsdm-v1",
        "display": "HSDM Criteria",
        "description": "Hormone sensitivity classification",
    }


def test_summary_keeps_latest(hsdm_builder):
    condition = hsdm_builder.with_summary("Revised summary").build()

    assert len(condition.note) == 1
    assert condition.note[0].text == "Revised summary"


def test_invalid_result():
    with pytest.raises(InvalidDeterminationError):
        HsdmAssessmentConditionBuilder().with_hsdm_result("CRPC-ish")


def test_focus_must_be_condition():
    with pytest.raises(InvalidReferenceError):
        HsdmAssessmentConditionBuilder().with_focus("Observation/o1")


@pytest.mark.parametrize("value", [1.5, float("nan")])
def test_confidence_out_of_range(value):
    with pytest.raises(ConfidenceRangeError):
        HsdmAssessmentConditionBuilder().with_confidence(value)


def test_patient_reference_of_other_type_rejected():
    """A Device reference is not a Patient id to prefix"""
    with pytest.raises(InvalidReferenceError):
        HsdmAssessmentConditionBuilder().with_patient("Device/d1")


def test_fact_evidence_requires_facts():
    with pytest.raises(InvalidArgumentError):
        HsdmAssessmentConditionBuilder().add_fact_evidence()


def test_requires_summary(patient_ref, device_ref, condition_ref, supporting_fact):
    builder = (
        HsdmAssessmentConditionBuilder()
        .with_patient(patient_ref)
        .with_device(device_ref)
        .with_focus(condition_ref)
        .with_hsdm_result(MCRPC)
        .add_fact_evidence(supporting_fact)
    )

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_summary()" in str(exc_info.value)


def test_requires_focus(patient_ref, device_ref):
    builder = HsdmAssessmentConditionBuilder().with_patient(patient_ref).with_device(device_ref)

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_focus()" in str(exc_info.value)
