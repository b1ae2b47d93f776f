# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import json

import pytest

from clinical_inference.config import AiInferenceSettings
from clinical_inference.core import Fact
from clinical_inference.fhir_utils.ids import reset_sequence_counter


PATIENT_REF = "Patient/p1"
DEVICE_REF = "Device/d1"
CONDITION_REF = "Condition/prostate-cancer-1"


@pytest.fixture
def inference_config():
    """Inference settings with the organization attached"""
    return AiInferenceSettings.create_default()


@pytest.fixture
def patient_ref():
    return PATIENT_REF


@pytest.fixture
def device_ref():
    return DEVICE_REF


@pytest.fixture
def condition_ref():
    return CONDITION_REF


@pytest.fixture
def supporting_fact():
    """Fact pointing at a radiology report"""
    return Fact(
        fact_guid="f-001",
        fact_document_reference="DocumentReference/ct-2024-03",
        type="imaging_finding",
        fact="New sclerotic lesion in L3 vertebral body",
        ref=["page-2:line-14", "page-2:line-15"],
        time_ref="2024-03-10",
        relevance="New bone lesion supports progression",
    )


@pytest.fixture
def conflicting_fact():
    return Fact(
        fact_guid="f-002",
        fact_document_reference="DocumentReference/ct-2024-03",
        type="imaging_finding",
        fact="Lesion may represent degenerative change",
        ref=["page-3:line-2"],
    )


@pytest.fixture
def sample_facts_json(supporting_fact, conflicting_fact):
    """Facts in their wire form"""
    return json.dumps([supporting_fact.to_dict(), conflicting_fact.to_dict()])


@pytest.fixture(autouse=True)
def reset_id_sequence():
    """Reset the sequential id counter after each test"""
    yield
    reset_sequence_counter()
