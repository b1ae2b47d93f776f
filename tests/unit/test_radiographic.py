# ============================================================================
# FILE: tests/unit/test_radiographic.py
# ============================================================================
"""
Unit tests for the radiographic progression builders (RECIST / PCWG3 / Observed)
"""

import pytest
from fhir.resources.quantity import Quantity

from clinical_inference.constants.coding_systems import (
    CLINICAL_FACT_URL,
    CONFLICTING_FACT_URL,
    LOINC_SYSTEM,
    NCI_SYSTEM,
    PCWG3_COMPONENT_SYSTEM,
    RECIST_TIMEPOINTS_URL,
    SNOMED_SYSTEM,
)
from clinical_inference.fhir_utils import (
    Determination,
    ObservedRadiographicObservationBuilder,
    Pcwg3ProgressionObservationBuilder,
    RadiographicObservationBuilder,
    RadiographicStandard,
    RecistProgressionObservationBuilder,
)
from clinical_inference.utils.exceptions import (
    InvalidArgumentError,
    InvalidDeterminationError,
    MissingRequiredFieldError,
)


def _component(obs, code):
    for component in obs.component or []:
        if component.code.coding[0].code == code:
            return component
    return None


def _builder(standard, patient_ref="Patient/p1", device_ref="Device/d1"):
    return (
        RadiographicObservationBuilder(standard)
        .with_patient(patient_ref)
        .with_device(device_ref)
    )


@pytest.mark.parametrize("determination,code", [
    ("CR", "268910001"),
    ("PR", "268905007"),
    ("SD", "359746009"),
    ("PD", "277022003"),
    ("Baseline", "261935009"),
    ("Inconclusive", "419984006"),
])
def test_determination_codes(determination, code):
    """Each determination maps to its fixed SNOMED code"""
    obs = _builder(RadiographicStandard.RECIST_1_1).with_determination(determination).build()

    assert obs.valueCodeableConcept.coding[0].system == SNOMED_SYSTEM
    assert obs.valueCodeableConcept.coding[0].code == code
    assert _component(obs, "determination").valueString == determination


def test_invalid_determination_at_setter():
    with pytest.raises(InvalidDeterminationError):
        RadiographicObservationBuilder("PCWG3").with_determination("Progressing")


def test_invalid_determination_at_build():
    """A value assigned directly still fails when the resource is assembled"""
    builder = _builder(RadiographicStandard.PCWG3)
    builder.determination = "Worse"

    with pytest.raises(InvalidArgumentError) as exc_info:
        builder.build()

    assert "Invalid determination value: Worse" in str(exc_info.value)


def test_unsupported_standard():
    with pytest.raises(InvalidArgumentError):
        RadiographicObservationBuilder("WHO")


def test_requires_patient_and_device():
    with pytest.raises(MissingRequiredFieldError):
        RadiographicObservationBuilder(RadiographicStandard.OBSERVED).build()


def test_pcwg3_components_and_code():
    obs = (
        _builder(RadiographicStandard.PCWG3)
        .with_determination(Determination.PD)
        .with_confidence(0.82)
        .with_initial_lesions("2 new lesions in ribs")
        .with_confirmation_date("2024-04-12")
        .with_additional_lesions("1 new lesion in pelvis")
        .with_time_between_scans("8 weeks")
        .with_initial_scan_date("2024-02-16")
        .with_confirmation_lesions(None)
        .build()
    )

    assert obs.code.coding[0].system == LOINC_SYSTEM
    assert obs.code.coding[0].code == "44667-7"
    assert obs.method.coding[0].code == "pcwg3-bone-progression"
    assert obs.category[0].coding[0].code == "imaging"

    codes = [c.code.coding[0].code for c in obs.component]
    assert codes == [
        "LA11892-6",
        "determination",
        "initial-lesions",
        "confirmation-date",
        "additional-lesions",
        "time-between-scans",
        "initial-scan-date",
    ]
    assert _component(obs, "initial-lesions").code.coding[0].system == PCWG3_COMPONENT_SYSTEM


def test_recist_code_response_and_body_site():
    obs = (
        _builder(RadiographicStandard.RECIST_1_1)
        .with_recist_response("C35571", "Progressive Disease")
        .with_body_site("39607008", "Lung structure")
        .with_measurement_change("SLD increased 24% from nadir")
        .with_imaging_type("CT chest")
        .build()
    )

    assert [c.code for c in obs.code.coding] == ["21976-6", "C111544"]
    # No determination: the NCI response becomes the value
    assert obs.valueCodeableConcept.coding[0].system == NCI_SYSTEM
    assert obs.valueCodeableConcept.coding[0].code == "C35571"
    assert obs.bodySite.coding[0].code == "39607008"
    assert _component(obs, "measurement-change").valueString == "SLD increased 24% from nadir"
    assert _component(obs, "imaging-type").valueString == "CT chest"


def test_supporting_facts_become_extensions_and_evidence(supporting_fact, conflicting_fact):
    obs = (
        _builder(RadiographicStandard.PCWG3)
        .with_determination("PD")
        .with_supporting_facts(supporting_fact)
        .with_conflicting_facts(conflicting_fact)
        .build()
    )

    assert [e.url for e in obs.extension] == [CLINICAL_FACT_URL, CONFLICTING_FACT_URL]
    children = obs.extension[0].extension
    assert children[0].url == "factGuid"
    assert children[0].valueString == "f-001"
    assert len([c for c in children if c.url == "ref"]) == 2

    assert obs.derivedFrom[0].reference == "DocumentReference/ct-2024-03"
    assert obs.derivedFrom[0].display == "Supporting fact: imaging_finding"


def test_recist_facts_go_to_radiology_reports(supporting_fact):
    builder = _builder(RadiographicStandard.RECIST_1_1).with_supporting_facts(supporting_fact)

    assert builder.radiology_reports[0].reference == "DocumentReference/ct-2024-03"
    assert builder.evidence == []


def test_recist_timepoints_extension():
    obs = (
        _builder(RadiographicStandard.RECIST_1_1)
        .with_determination("SD")
        .with_recist_timepoints_json('[{"date": "2024-01-01", "sld": 42}]')
        .build()
    )

    timepoints = obs.extension[0]
    assert timepoints.url == RECIST_TIMEPOINTS_URL
    assert timepoints.extension[0].url == "timepointsJson"


def test_add_component_infers_code_system():
    obs = (
        _builder(RadiographicStandard.RECIST_1_1)
        .with_determination("PD")
        .add_component("33359-2", Quantity(value=24, unit="%"))
        .add_component("371508000", Quantity(value=52, unit="mm"))
        .add_component("new-lesions", True)
        .build()
    )

    first, second, third = obs.component[:3]
    assert first.code.coding[0].system == LOINC_SYSTEM
    assert first.code.coding[0].display == "Percent change"
    assert second.code.coding[0].system == SNOMED_SYSTEM
    assert third.code.coding[0].display == "New lesions detected"
    assert third.valueBoolean is True


def test_add_component_rejects_unsupported_value():
    with pytest.raises(InvalidArgumentError):
        RadiographicObservationBuilder("RECIST_1_1").add_component("x", "text")


def test_recist_variant_imaging_studies_first(supporting_fact):
    obs = (
        RecistProgressionObservationBuilder()
        .with_patient("p1")
        .with_device("d1")
        .with_determination("PR")
        .add_imaging_study("ct-1")
        .with_supporting_facts(supporting_fact)
        .add_derived_from("ImagingStudy/ct-1", "duplicate")
        .build()
    )

    assert [r.reference for r in obs.derivedFrom] == [
        "ImagingStudy/ct-1",
        "DocumentReference/ct-2024-03",
    ]



def test_shared_setters_return_variant():
    """Setters inherited from the unified builder hand back the variant itself"""
    builder = RecistProgressionObservationBuilder()

    chained = builder.with_determination("SD").with_summary("Stable").with_confidence(0.8)

    assert chained is builder
    assert isinstance(chained, RecistProgressionObservationBuilder)

@pytest.mark.parametrize("identified,code", [(True, "277022003"), (False, "359746009")])
def test_pcwg3_variant_identified(identified, code):
    obs = (
        Pcwg3ProgressionObservationBuilder()
        .with_patient("p1")
        .with_device("d1")
        .with_identified(identified)
        .build()
    )

    assert obs.valueCodeableConcept.coding[0].code == code


def test_pcwg3_variant_requires_identified():
    builder = Pcwg3ProgressionObservationBuilder().with_patient("p1").with_device("d1")

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_identified()" in str(exc_info.value)


@pytest.mark.parametrize("text,code", [
    ("Progression", "444391001"),
    ("stable", "713837000"),
    ("regression", "265743007"),
])
def test_observed_changes_mapping(text, code):
    obs = (
        ObservedRadiographicObservationBuilder()
        .with_patient("p1")
        .with_device("d1")
        .with_observed_changes(text)
        .build()
    )

    assert obs.valueCodeableConcept is None
    assert _component(obs, "observed-changes").valueCodeableConcept.coding[0].code == code


def test_observed_changes_free_text():
    obs = (
        ObservedRadiographicObservationBuilder()
        .with_patient("p1")
        .with_device("d1")
        .with_observed_changes("Mixed response")
        .build()
    )

    concept = _component(obs, "observed-changes").valueCodeableConcept
    assert concept.text == "Mixed response"
    assert not concept.coding


def test_criteria_overrides_default_method(inference_config):
    obs = (
        RadiographicObservationBuilder("Observed", inference_config)
        .with_patient("p1")
        .with_device("d1")
        .with_criteria("custom-imaging-v1", "Custom imaging criteria")
        .build()
    )

    assert obs.method.coding[0].code == "custom-imaging-v1"
