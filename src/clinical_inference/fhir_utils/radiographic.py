# ============================================================================
# FILE: src/clinical_inference/fhir_utils/radiographic.py
# ============================================================================
"""
Radiographic progression Observation builder.

One builder covers three assessment standards:
- RECIST 1.1: soft tissue response (measurement change, imaging type/date,
  NCI-coded response, body site, timepoints JSON)
- PCWG3: bone scan progression (initial / additional / confirmation lesions,
  scan dates)
- Observed: free-text radiographic changes mapped to SNOMED findings

The standard selects the Observation code, default method and component
system. Standard-pinned subclasses live at the bottom of the module.
"""

from collections import namedtuple
from enum import Enum
from typing import Dict, List, Optional, TypeVar, Union

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.observation import Observation, ObservationComponent
from fhir.resources.quantity import Quantity
from fhir.resources.reference import Reference

from ..constants import LOINC_CODES, NCI_CODES, SNOMED_CODES
from ..constants.coding_systems import (
    LOINC_SYSTEM,
    NCI_SYSTEM,
    PCWG3_COMPONENT_SYSTEM,
    RADIOGRAPHIC_COMPONENT_SYSTEM,
    RECIST_COMPONENT_SYSTEM,
)
from ..core.fact import Fact
from ..utils.exceptions import (
    InvalidArgumentError,
    InvalidDeterminationError,
    MissingRequiredFieldError,
)
from .base import (
    ComponentField,
    DateLike,
    ObservationBuilder,
    confidence_component,
    is_blank,
    make_component,
    observation_category,
)
from .coding import create_loinc_concept, create_nci_concept, create_snomed_concept, make_reference
from .extensions import (
    create_conflicting_fact_extensions,
    create_fact_extensions,
    create_recist_timepoints_extension,
)


class RadiographicStandard(str, Enum):
    RECIST_1_1 = "RECIST_1_1"
    PCWG3 = "PCWG3"
    OBSERVED = "Observed"


class Determination(str, Enum):
    CR = "CR"
    PR = "PR"
    SD = "SD"
    PD = "PD"
    BASELINE = "Baseline"
    INCONCLUSIVE = "Inconclusive"


DETERMINATION_VALUES = {
    Determination.CR: (SNOMED_CODES["COMPLETE_RESPONSE"], "Complete response"),
    Determination.PR: (SNOMED_CODES["PARTIAL_RESPONSE"], "Partial response"),
    Determination.SD: (SNOMED_CODES["STABLE_DISEASE"], "Stable disease"),
    Determination.PD: (SNOMED_CODES["PROGRESSIVE_DISEASE"], "Progressive disease"),
    Determination.BASELINE: (SNOMED_CODES["BASELINE"], "Baseline (qualifier value)"),
    Determination.INCONCLUSIVE: (SNOMED_CODES["INCONCLUSIVE"], "Inconclusive (qualifier value)"),
}

OBSERVED_CHANGE_VALUES = {
    "progression": (SNOMED_CODES["TUMOR_PROGRESSION"], "Malignant tumor progression (finding)"),
    "stable": (SNOMED_CODES["NEOPLASM_STABLE"], "Neoplasm stable (finding)"),
    "regression": (SNOMED_CODES["NEOPLASM_REGRESSION"], "Regression of neoplasm (finding)"),
}

StandardProfile = namedtuple(
    "StandardProfile", "codings code_text method_code method_display component_system"
)

STANDARD_PROFILES: Dict[RadiographicStandard, StandardProfile] = {
    RadiographicStandard.PCWG3: StandardProfile(
        codings=[(LOINC_SYSTEM, LOINC_CODES["BONE_SCAN_FINDINGS"], "Bone scan findings")],
        code_text="PCWG3 bone scan progression assessment",
        method_code="pcwg3-bone-progression",
        method_display="PCWG3 Bone Scan Progression Criteria",
        component_system=PCWG3_COMPONENT_SYSTEM,
    ),
    RadiographicStandard.RECIST_1_1: StandardProfile(
        codings=[
            (LOINC_SYSTEM, LOINC_CODES["TUMOR_RESPONSE"], "Cancer disease status"),
            (NCI_SYSTEM, NCI_CODES["RECIST_1_1"], "RECIST 1.1"),
        ],
        code_text="RECIST 1.1 progression assessment",
        method_code="recist-1.1",
        method_display="RECIST 1.1",
        component_system=RECIST_COMPONENT_SYSTEM,
    ),
    RadiographicStandard.OBSERVED: StandardProfile(
        codings=[(LOINC_SYSTEM, LOINC_CODES["IMAGING_OBSERVATIONS"], "Imaging study Observations")],
        code_text="Observed radiographic progression",
        method_code="observed-radiographic",
        method_display="Observed Radiographic Assessment",
        component_system=RADIOGRAPHIC_COMPONENT_SYSTEM,
    ),
}

_PCWG3_COMPONENTS = (
    ComponentField("initial_lesions", PCWG3_COMPONENT_SYSTEM, "initial-lesions", "Initial Lesions", "string"),
    ComponentField("confirmation_date", PCWG3_COMPONENT_SYSTEM, "confirmation-date", "Confirmation Date", "datetime"),
    ComponentField("additional_lesions", PCWG3_COMPONENT_SYSTEM, "additional-lesions", "Additional Lesions", "string"),
    ComponentField("time_between_scans", PCWG3_COMPONENT_SYSTEM, "time-between-scans", "Time Between Scans", "string"),
    ComponentField("initial_scan_date", PCWG3_COMPONENT_SYSTEM, "initial-scan-date", "Initial Scan Date", "datetime"),
    ComponentField("confirmation_lesions", PCWG3_COMPONENT_SYSTEM, "confirmation-lesions", "Confirmation Lesions", "string"),
)

_RECIST_COMPONENTS = (
    ComponentField("measurement_change", RECIST_COMPONENT_SYSTEM, "measurement-change", "Measurement Change", "string"),
    ComponentField("imaging_type", RECIST_COMPONENT_SYSTEM, "imaging-type", "Imaging Type", "string"),
    ComponentField("imaging_date", RECIST_COMPONENT_SYSTEM, "imaging-date", "Imaging Date", "datetime"),
)

# Displays for codes passed to add_component()
_LOINC_COMPONENT_DISPLAYS = {
    "33359-2": "Percent change",
    "33728-8": "Sum of longest diameters",
    "44666-9": "New lesions",
}
_SNOMED_COMPONENT_DISPLAYS = {
    "371508000": "Sum of longest diameters",
    "260405006": "Absolute change",
}
_CUSTOM_COMPONENT_DISPLAYS = {
    "nadir-sld": "Nadir sum of longest diameters",
    "new-lesions": "New lesions detected",
    "absolute-change": "Absolute change in SLD",
    "percent-change": "Percent change in SLD",
}


def parse_determination(value: Union[str, Determination]) -> Determination:
    try:
        return Determination(value)
    except ValueError as e:
        raise InvalidDeterminationError(str(value), [d.value for d in Determination]) from e


RadiographicT = TypeVar("RadiographicT", bound="RadiographicObservationBuilder")


class RadiographicObservationBuilder(ObservationBuilder):

    def __init__(self, standard: Union[RadiographicStandard, str], configuration=None):
        super().__init__(configuration)
        try:
            self.standard = RadiographicStandard(standard)
        except ValueError as e:
            raise InvalidArgumentError(f"Unsupported radiographic standard: {standard}") from e

        self.profile = STANDARD_PROFILES[self.standard]

        # Common
        self.determination: Optional[str] = None
        self.confidence_rationale: Optional[str] = None
        self.summary: Optional[str] = None
        self.confirmation_date: Optional[DateLike] = None
        self.supporting_facts: List[Fact] = []
        self.conflicting_facts: List[Fact] = []
        self.radiology_reports: List[Reference] = []
        self.extra_components: List[ObservationComponent] = []

        # PCWG3
        self.initial_lesions: Optional[str] = None
        self.additional_lesions: Optional[str] = None
        self.time_between_scans: Optional[str] = None
        self.initial_scan_date: Optional[DateLike] = None
        self.confirmation_lesions: Optional[str] = None

        # RECIST
        self.measurement_change: Optional[str] = None
        self.imaging_type: Optional[str] = None
        self.imaging_date: Optional[DateLike] = None
        self.recist_response: Optional[CodeableConcept] = None
        self.body_site: Optional[CodeableConcept] = None
        self.recist_timepoints_json: Optional[str] = None

        # Observed
        self.observed_changes: Optional[str] = None

    # ------------------------------------------------------------------
    # Common setters
    # ------------------------------------------------------------------

    def with_determination(self: RadiographicT, determination: Optional[Union[str, Determination]]) -> RadiographicT:
        if determination is not None:
            determination = parse_determination(determination).value
        self.determination = determination
        return self

    def with_confidence_rationale(self: RadiographicT, rationale: Optional[str]) -> RadiographicT:
        self.confidence_rationale = rationale
        return self

    def with_summary(self: RadiographicT, summary: Optional[str]) -> RadiographicT:
        self.summary = summary
        return self

    def with_confirmation_date(self: RadiographicT, confirmation_date: Optional[DateLike]) -> RadiographicT:
        self.confirmation_date = confirmation_date
        return self

    def with_supporting_facts(self: RadiographicT, *facts: Fact) -> RadiographicT:
        """
        Attach supporting facts.

        Each fact's source document becomes evidence (a radiology report
        for RECIST).
        """
        for fact in facts:
            if fact is None:
                continue
            self.supporting_facts.append(fact)
            if is_blank(fact.fact_document_reference):
                continue
            display = f"Supporting fact: {fact.type}"
            if self.standard == RadiographicStandard.RECIST_1_1:
                self.add_radiology_report(fact.fact_document_reference, display)
            else:
                self.add_evidence(fact.fact_document_reference, display)
        return self

    def with_conflicting_facts(self: RadiographicT, *facts: Fact) -> RadiographicT:
        self.conflicting_facts.extend(f for f in facts if f is not None)
        return self

    def add_radiology_report(
        self: RadiographicT,
        report: Union[str, Reference],
        display: Optional[str] = None
    ) -> RadiographicT:
        if report is None:
            raise InvalidArgumentError("Radiology report reference cannot be None")
        self.radiology_reports.append(make_reference(report, display=display))
        return self

    def add_component(
        self: RadiographicT,
        code: str,
        value: Union[Quantity, bool, CodeableConcept]
    ) -> RadiographicT:
        """Add a measurement component; the code system is inferred from the code shape."""
        if is_blank(code):
            raise InvalidArgumentError("Code cannot be empty")
        if value is None:
            raise InvalidArgumentError("Component value cannot be None")

        if isinstance(value, bool):
            kwargs = {"valueBoolean": value}
        elif isinstance(value, Quantity):
            kwargs = {"valueQuantity": value}
        elif isinstance(value, CodeableConcept):
            kwargs = {"valueCodeableConcept": value}
        else:
            raise InvalidArgumentError(f"Unsupported component value type: {type(value).__name__}")

        self.extra_components.append(
            ObservationComponent(code=self._component_code(code), **kwargs)
        )
        return self

    # ------------------------------------------------------------------
    # PCWG3 setters
    # ------------------------------------------------------------------

    def with_initial_lesions(self: RadiographicT, initial_lesions: Optional[str]) -> RadiographicT:
        self.initial_lesions = initial_lesions
        return self

    def with_additional_lesions(self: RadiographicT, additional_lesions: Optional[str]) -> RadiographicT:
        self.additional_lesions = additional_lesions
        return self

    def with_time_between_scans(self: RadiographicT, time_between_scans: Optional[str]) -> RadiographicT:
        self.time_between_scans = time_between_scans
        return self

    def with_initial_scan_date(self: RadiographicT, initial_scan_date: Optional[DateLike]) -> RadiographicT:
        self.initial_scan_date = initial_scan_date
        return self

    def with_confirmation_lesions(self: RadiographicT, confirmation_lesions: Optional[str]) -> RadiographicT:
        self.confirmation_lesions = confirmation_lesions
        return self

    # ------------------------------------------------------------------
    # RECIST setters
    # ------------------------------------------------------------------

    def with_measurement_change(self: RadiographicT, measurement_change: Optional[str]) -> RadiographicT:
        self.measurement_change = measurement_change
        return self

    def with_imaging_type(self: RadiographicT, imaging_type: Optional[str]) -> RadiographicT:
        self.imaging_type = imaging_type
        return self

    def with_imaging_date(self: RadiographicT, imaging_date: Optional[DateLike]) -> RadiographicT:
        self.imaging_date = imaging_date
        return self

    def with_recist_response(self: RadiographicT, nci_code: str, display: str) -> RadiographicT:
        if is_blank(nci_code):
            raise InvalidArgumentError("NCI code cannot be empty")
        if is_blank(display):
            raise InvalidArgumentError("Display cannot be empty")
        self.recist_response = create_nci_concept(nci_code, display)
        return self

    def with_body_site(self: RadiographicT, snomed_code: str, display: str) -> RadiographicT:
        if is_blank(snomed_code):
            raise InvalidArgumentError("SNOMED code cannot be empty")
        if is_blank(display):
            raise InvalidArgumentError("Display cannot be empty")
        self.body_site = create_snomed_concept(snomed_code, display)
        return self

    def with_recist_timepoints_json(self: RadiographicT, timepoints_json: Optional[str]) -> RadiographicT:
        self.recist_timepoints_json = timepoints_json
        return self

    # ------------------------------------------------------------------
    # Observed setters
    # ------------------------------------------------------------------

    def with_observed_changes(self: RadiographicT, observed_changes: Optional[str]) -> RadiographicT:
        self.observed_changes = observed_changes
        return self

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _observation_code(self) -> CodeableConcept:
        return CodeableConcept(
            coding=[
                Coding(system=system, code=code, display=display)
                for system, code, display in self.profile.codings
            ],
            text=self.profile.code_text
        )

    def _method(self) -> CodeableConcept:
        criteria_method = self._criteria_method()
        if criteria_method is not None:
            return criteria_method
        return CodeableConcept(
            coding=[
                Coding(
                    system=self.configuration.CRITERIA_SYSTEM,
                    code=self.profile.method_code,
                    display=self.profile.method_display
                )
            ],
            text=self.profile.method_display
        )

    def _value(self) -> Optional[CodeableConcept]:
        if is_blank(self.determination):
            if self.standard == RadiographicStandard.RECIST_1_1:
                return self.recist_response
            return None

        # The setter validates too, but the attribute may have been assigned directly
        code, display = DETERMINATION_VALUES[parse_determination(self.determination)]
        return create_snomed_concept(code, display)

    def _observed_changes_value(self) -> Optional[CodeableConcept]:
        if is_blank(self.observed_changes):
            return None
        mapped = OBSERVED_CHANGE_VALUES.get(self.observed_changes.strip().lower())
        if mapped is None:
            return CodeableConcept(text=self.observed_changes)
        return create_snomed_concept(*mapped)

    def _component_code(self, code: str) -> CodeableConcept:
        if code[0].isdigit() and "-" in code:
            return create_loinc_concept(code, _LOINC_COMPONENT_DISPLAYS.get(code, "RECIST measurement"))
        if code[0].isdigit():
            return create_snomed_concept(code, _SNOMED_COMPONENT_DISPLAYS.get(code, "RECIST measurement"))

        display = _CUSTOM_COMPONENT_DISPLAYS.get(code, code.replace("-", " ").replace("_", " "))
        return CodeableConcept(
            coding=[Coding(system=self.profile.component_system, code=code, display=display)]
        )

    def _common_components(self) -> List[ObservationComponent]:
        system = self.profile.component_system
        table = (
            ComponentField("determination", system, "determination", "Determination", "string"),
            ComponentField("confidence_rationale", system, "confidence-rationale", "Confidence Rationale", "string"),
            ComponentField("summary", system, "summary", "Assessment Summary", "string"),
        )
        components = []
        if self.confidence is not None:
            components.append(confidence_component(self.confidence))
        components.extend(self._table_components(table))
        return components

    def _standard_components(self) -> List[ObservationComponent]:
        if self.standard == RadiographicStandard.PCWG3:
            return self._table_components(_PCWG3_COMPONENTS)
        if self.standard == RadiographicStandard.RECIST_1_1:
            return self._table_components(_RECIST_COMPONENTS)

        observed = self._observed_changes_value()
        if observed is None:
            return []
        return [make_component(
            RADIOGRAPHIC_COMPONENT_SYSTEM, "observed-changes", "Observed Changes",
            observed, kind="concept"
        )]

    def _fact_extensions(self):
        extensions = []
        extensions.extend(create_fact_extensions(self.supporting_facts))
        extensions.extend(create_conflicting_fact_extensions(self.conflicting_facts))
        if not is_blank(self.recist_timepoints_json):
            extensions.append(create_recist_timepoints_extension(self.recist_timepoints_json))
        return extensions

    def _build_core(self) -> Observation:
        observation = self._new_observation(
            category=observation_category("imaging", "Imaging"),
            code=self._observation_code(),
            value=self._value()
        )

        if self.body_site is not None:
            observation.bodySite = self.body_site
        observation.method = self._method()

        components = (
            list(self.extra_components)
            + self._common_components()
            + self._standard_components()
        )

        extensions = self._fact_extensions()
        if extensions:
            observation.extension = extensions

        derived_from = self._derived_from_references(self._report_references())
        return self._finish(observation, components, derived_from)

    def _report_references(self) -> List[Reference]:
        return list(self.radiology_reports)


# ============================================================================
# STANDARD-PINNED VARIANTS
# ============================================================================

RecistT = TypeVar("RecistT", bound="RecistProgressionObservationBuilder")


class RecistProgressionObservationBuilder(RadiographicObservationBuilder):
    """RECIST 1.1 response assessment."""

    def __init__(self, configuration=None):
        super().__init__(RadiographicStandard.RECIST_1_1, configuration)
        self.imaging_studies: List[Reference] = []

    def add_imaging_study(self: RecistT, imaging_study: Union[str, Reference]) -> RecistT:
        if imaging_study is None:
            raise InvalidArgumentError("Imaging study reference cannot be None")
        self.imaging_studies.append(make_reference(imaging_study, "ImagingStudy"))
        return self

    def _report_references(self) -> List[Reference]:
        return list(self.imaging_studies) + list(self.radiology_reports)


Pcwg3T = TypeVar("Pcwg3T", bound="Pcwg3ProgressionObservationBuilder")


class Pcwg3ProgressionObservationBuilder(RadiographicObservationBuilder):
    """PCWG3 bone scan progression; identified progression maps to PD, otherwise SD."""

    def __init__(self, configuration=None):
        super().__init__(RadiographicStandard.PCWG3, configuration)
        self.identified: Optional[bool] = None

    def with_identified(self: Pcwg3T, identified: bool) -> Pcwg3T:
        self.identified = bool(identified)
        self.determination = Determination.PD.value if identified else Determination.SD.value
        return self

    def _validate(self) -> None:
        super()._validate()
        if self.identified is None:
            raise MissingRequiredFieldError("Identified status", "with_identified")


class ObservedRadiographicObservationBuilder(RadiographicObservationBuilder):
    """Free-text radiographic changes without a formal response standard."""

    def __init__(self, configuration=None):
        super().__init__(RadiographicStandard.OBSERVED, configuration)
