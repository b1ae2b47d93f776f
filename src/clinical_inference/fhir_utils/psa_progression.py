# ============================================================================
# FILE: src/clinical_inference/fhir_utils/psa_progression.py
# ============================================================================
"""
PSA progression Observation (and derived Condition).

Supports two assessment criteria:
- ThirdOpinion.io: change measured from the baseline PSA
- PCWG3: change measured from the nadir PSA, progression at >= 25% rise

PSA evidence is attached to derivedFrom with its role (baseline / nadir /
current) and value as extensions. When progression is positive a Condition
can be derived from the built Observation.
"""

from collections import namedtuple
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import List, Optional, Tuple, TypeVar, Union
import logging

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.codeablereference import CodeableReference
from fhir.resources.coding import Coding
from fhir.resources.condition import Condition, ConditionParticipant
from fhir.resources.extension import Extension
from fhir.resources.observation import Observation, ObservationComponent
from fhir.resources.period import Period
from fhir.resources.quantity import Quantity
from fhir.resources.reference import Reference

from ..constants import ICD10_CODES, LOINC_CODES, SNOMED_CODES
from ..constants.coding_systems import (
    AI_INFERRED_URL,
    ASSESSMENT_CRITERIA_URL,
    CONDITION_CATEGORY_SYSTEM,
    CONDITION_CLINICAL_SYSTEM,
    CONDITION_VERIFICATION_SYSTEM,
    CONFIDENCE_EXTENSION_URL,
    ICD10_CM_SYSTEM,
    LOINC_SYSTEM,
    PARTICIPATION_TYPE_SYSTEM,
    PSA_COMPONENT_SYSTEM,
    PSA_EVIDENCE_ROLE_URL,
    PSA_EVIDENCE_VALUE_URL,
    RESULT_CODE_SYSTEM,
    SNOMED_SYSTEM,
    SOURCE_OBSERVATION_URL,
    UCUM_SYSTEM,
)
from ..utils.exceptions import (
    InvalidArgumentError,
    InvalidDeterminationError,
    MissingRequiredFieldError,
)
from .base import (
    DateLike,
    ObservationBuilder,
    apply_aiast_security_label,
    build_notes,
    confidence_component,
    is_blank,
    make_component,
    observation_category,
    to_fhir_datetime,
    utc_now,
)
from .coding import create_snomed_concept, make_reference
from .ids import generate_inference_id

logger = logging.getLogger(__name__)

PCWG3_THRESHOLD_PERCENT = Decimal("25")

_TWO_PLACES = Decimal("0.01")

PsaEvidence = namedtuple("PsaEvidence", "reference role value unit")


class CriteriaType(str, Enum):
    THIRD_OPINION_IO = "ThirdOpinionIO"
    PCWG3 = "PCWG3"


# progression status -> SNOMED value
PROGRESSION_VALUES = {
    "true": (SNOMED_CODES["PROGRESSIVE_DISEASE"], "Progressive disease"),
    "false": (SNOMED_CODES["STABLE_DISEASE"], "Stable disease"),
    "unknown": (SNOMED_CODES["UNKNOWN"], "Unknown"),
}

_ROLE_FIELDS = {
    "baseline": "baseline_psa",
    "nadir": "nadir_psa",
    "current": "current_psa",
    "latest": "current_psa",
}


def _to_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def calculate_psa_change(
    reference_value: Optional[Decimal],
    current_value: Optional[Decimal]
) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Percentage and absolute change of the current PSA against a reference value.

    Returns:
        (percentage_change, absolute_change); percentage is None when the
        reference value is not positive, both are None when a value is missing
    """
    if reference_value is None or current_value is None:
        return None, None

    absolute = current_value - reference_value
    percentage = None
    if reference_value > 0:
        percentage = absolute / reference_value * 100
    return percentage, absolute


PsaProgressionT = TypeVar("PsaProgressionT", bound="PsaProgressionObservationBuilder")


class PsaProgressionObservationBuilder(ObservationBuilder):

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.criteria_type: Optional[CriteriaType] = None
        self.criteria_version: Optional[str] = None
        self.psa_evidence: List[PsaEvidence] = []
        self.progression_status: Optional[str] = None
        self.baseline_psa: Optional[Decimal] = None
        self.nadir_psa: Optional[Decimal] = None
        self.current_psa: Optional[Decimal] = None
        self.extra_components: List[ObservationComponent] = []

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def with_psa_criteria(
        self: PsaProgressionT,
        criteria_type: Union[CriteriaType, str],
        version: str
    ) -> PsaProgressionT:
        if is_blank(version):
            raise InvalidArgumentError("Version cannot be empty")
        try:
            self.criteria_type = CriteriaType(criteria_type)
        except ValueError as e:
            raise InvalidArgumentError(f"Unknown PSA criteria type: {criteria_type}") from e
        self.criteria_version = version
        return self

    def add_psa_evidence(
        self: PsaProgressionT,
        psa_observation: Union[str, Reference],
        role: str,
        value=None,
        unit: Optional[str] = "ng/mL"
    ) -> PsaProgressionT:
        """
        Add a PSA Observation used in the assessment.

        Args:
            psa_observation: Observation reference or id
            role: "baseline", "nadir", "current" / "latest" or any other label
            value: PSA value; feeds the change calculation for known roles
            unit: Unit of the value
        """
        if psa_observation is None:
            raise InvalidArgumentError("PSA observation reference cannot be None")
        if is_blank(role):
            raise InvalidArgumentError("Role cannot be empty")

        reference = make_reference(psa_observation, "Observation")
        psa_value = _to_decimal(value)
        self.psa_evidence.append(PsaEvidence(reference, role, psa_value, unit))

        field_name = _ROLE_FIELDS.get(role.lower())
        if field_name:
            setattr(self, field_name, psa_value)
        return self

    def with_progression(self: PsaProgressionT, progression_status: Union[str, bool]) -> PsaProgressionT:
        if isinstance(progression_status, bool):
            progression_status = "true" if progression_status else "false"
        if is_blank(progression_status):
            raise InvalidArgumentError("Progression status cannot be empty")

        normalized = progression_status.lower()
        if normalized not in PROGRESSION_VALUES:
            raise InvalidDeterminationError(progression_status, PROGRESSION_VALUES)
        self.progression_status = normalized
        return self

    def add_valid_until_component(self: PsaProgressionT, valid_until: DateLike) -> PsaProgressionT:
        self.extra_components.append(make_component(
            PSA_COMPONENT_SYSTEM, "valid-until", "Valid Until Date",
            Period(end=to_fhir_datetime(valid_until)), kind="period"
        ))
        return self

    def add_threshold_met_component(self: PsaProgressionT, threshold_met: bool) -> PsaProgressionT:
        self.extra_components.append(make_component(
            PSA_COMPONENT_SYSTEM, "threshold-met", "Progression Threshold Met",
            bool(threshold_met), kind="boolean"
        ))
        return self

    def add_detailed_analysis_note(self: PsaProgressionT, note: str) -> PsaProgressionT:
        if not is_blank(note):
            self.extra_components.append(make_component(
                PSA_COMPONENT_SYSTEM, "analysis-note", "Detailed Analysis Note", note
            ))
        return self

    def with_most_recent_psa_value(
        self: PsaProgressionT,
        most_recent_date: DateLike,
        value_text: str,
        source_observation: Union[str, Reference]
    ) -> PsaProgressionT:
        if is_blank(value_text):
            raise InvalidArgumentError("Most recent PSA value text cannot be empty")
        if source_observation is None:
            raise InvalidArgumentError("Most recent PSA observation cannot be None")

        source = make_reference(source_observation, "Observation")
        self.extra_components.append(make_component(
            RESULT_CODE_SYSTEM,
            "mostRecentMeasurement_v1",
            "The most recent measurement used in the analysis",
            most_recent_date,
            kind="datetime",
            text=value_text,
            extension=[
                Extension(
                    url=SOURCE_OBSERVATION_URL,
                    valueReference=Reference(
                        reference=source.reference,
                        display="The most recent result used in the analysis"
                    )
                )
            ]
        ))
        return self

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def psa_changes(self) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        """
        Unrounded (percentage, absolute) change for the configured criteria.

        PCWG3 measures from the nadir when nadir and current are known;
        otherwise the baseline is used when baseline and current are known.
        """
        if (self.criteria_type == CriteriaType.PCWG3
                and self.nadir_psa is not None and self.current_psa is not None):
            return calculate_psa_change(self.nadir_psa, self.current_psa)
        if self.baseline_psa is not None and self.current_psa is not None:
            return calculate_psa_change(self.baseline_psa, self.current_psa)
        return None, None

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        super()._validate()
        if is_blank(self.progression_status):
            raise MissingRequiredFieldError("Progression status", "with_progression")
        if not self.psa_evidence:
            raise MissingRequiredFieldError(
                "PSA evidence", "add_psa_evidence",
                "At least one PSA evidence reference is required. "
                "Call add_psa_evidence() before build()."
            )

    def _progression_value(self) -> CodeableConcept:
        code, display = PROGRESSION_VALUES[self.progression_status]
        return create_snomed_concept(code, display)

    def _criteria_type_method(self) -> CodeableConcept:
        if self.criteria_type == CriteriaType.PCWG3:
            code = f"psa-progression-pcwg3-{self.inference_id}-v{self.criteria_version}"
            display = f"PSA Progression PCWG3 Criteria v{self.criteria_version}"
        else:
            code = f"psa-progression-{self.inference_id}-v{self.criteria_version}"
            display = f"PSA Progression ThirdOpinion.io Criteria v{self.criteria_version}"

        return CodeableConcept(
            coding=[Coding(system=self.configuration.CRITERIA_SYSTEM, code=code, display=display)],
            text=display
        )

    def _evidence_reference(self, evidence: PsaEvidence) -> Reference:
        extensions = [Extension(url=PSA_EVIDENCE_ROLE_URL, valueString=evidence.role)]

        if evidence.value is not None:
            quantity = Quantity(value=evidence.value)
            if not is_blank(evidence.unit):
                quantity.unit = evidence.unit
                quantity.system = UCUM_SYSTEM
                quantity.code = evidence.unit
            extensions.append(Extension(url=PSA_EVIDENCE_VALUE_URL, valueQuantity=quantity))

        return Reference(
            reference=evidence.reference.reference,
            display=evidence.reference.display,
            extension=extensions
        )

    def _calculated_components(self) -> List[ObservationComponent]:
        components = []
        percentage, absolute = self.psa_changes()

        if percentage is not None:
            components.append(make_component(
                PSA_COMPONENT_SYSTEM, "percentage-change", "PSA Percentage Change",
                Quantity(
                    value=percentage.quantize(_TWO_PLACES, rounding=ROUND_HALF_EVEN),
                    unit="%", system=UCUM_SYSTEM, code="%"
                ),
                kind="quantity"
            ))

        if absolute is not None:
            components.append(make_component(
                PSA_COMPONENT_SYSTEM, "absolute-change", "PSA Absolute Change",
                Quantity(
                    value=absolute.quantize(_TWO_PLACES, rounding=ROUND_HALF_EVEN),
                    unit="ng/mL", system=UCUM_SYSTEM, code="ng/mL"
                ),
                kind="quantity"
            ))

        threshold_supplied = any(
            coding.code == "threshold-met"
            for component in self.extra_components
            for coding in (component.code.coding or [])
        )
        if (self.criteria_type == CriteriaType.PCWG3 and percentage is not None
                and not threshold_supplied):
            components.append(make_component(
                PSA_COMPONENT_SYSTEM, "threshold-met", "Progression Threshold Met",
                percentage >= PCWG3_THRESHOLD_PERCENT, kind="boolean"
            ))

        if self.confidence is not None:
            components.append(confidence_component(self.confidence))

        return components

    def _build_core(self) -> Observation:
        observation = self._new_observation(
            category=observation_category("laboratory", "Laboratory"),
            code=CodeableConcept(
                coding=[
                    Coding(
                        system=LOINC_SYSTEM,
                        code=LOINC_CODES["PSA_PROGRESSION"],
                        display="PSA progression"
                    )
                ],
                text="PSA progression assessment"
            ),
            value=self._progression_value()
        )

        if self.criteria_type is not None and not is_blank(self.criteria_version):
            observation.method = self._criteria_type_method()
        else:
            observation.method = self._criteria_method()

        evidence_refs = [self._evidence_reference(e) for e in self.psa_evidence]
        components = list(self.extra_components) + self._calculated_components()

        return self._finish(observation, components, self._derived_from_references(evidence_refs))

    # ------------------------------------------------------------------
    # Derived Condition
    # ------------------------------------------------------------------

    def _condition_code(self) -> CodeableConcept:
        return CodeableConcept(
            coding=[
                Coding(
                    system=SNOMED_SYSTEM,
                    code=SNOMED_CODES["PSA_PROGRESSION_ASSESSMENT"],
                    display="Procedure to assess prostate specific antigen progression"
                ),
                Coding(
                    system=ICD10_CM_SYSTEM,
                    code=ICD10_CODES["RISING_PSA"],
                    display="Rising PSA following treatment for malignant neoplasm of prostate"
                ),
            ],
            text="PSA Progression"
        )

    def _condition_extensions(self) -> List[Extension]:
        extensions = []
        if self.confidence is not None:
            extensions.append(Extension(
                url=CONFIDENCE_EXTENSION_URL,
                valueDecimal=Decimal(str(self.confidence))
            ))
        if not is_blank(self.criteria_id):
            extensions.append(Extension(
                url=ASSESSMENT_CRITERIA_URL,
                extension=[
                    Extension(url="id", valueString=self.criteria_id),
                    Extension(url="display", valueString=self.criteria_display or ""),
                ]
            ))
        extensions.append(Extension(url=AI_INFERRED_URL, valueBoolean=True))
        return extensions

    def build_condition(self, observation: Observation) -> Optional[Condition]:
        """
        Derive a PSA progression Condition from a built Observation.

        Returns:
            Condition, or None unless progression is "true"
        """
        if self.progression_status != "true":
            return None

        self._validate()

        condition = Condition(
            id=generate_inference_id(),
            clinicalStatus=CodeableConcept(
                coding=[Coding(system=CONDITION_CLINICAL_SYSTEM, code="active", display="Active")]
            ),
            verificationStatus=CodeableConcept(
                coding=[
                    Coding(system=CONDITION_VERIFICATION_SYSTEM, code="confirmed", display="Confirmed")
                ]
            ),
            category=[
                CodeableConcept(
                    coding=[
                        Coding(
                            system=CONDITION_CATEGORY_SYSTEM,
                            code="encounter-diagnosis",
                            display="Encounter Diagnosis"
                        )
                    ]
                )
            ],
            code=self._condition_code(),
            subject=self.patient,
            recordedDate=self.effective_date or to_fhir_datetime(utc_now()),
            participant=[
                ConditionParticipant(
                    function=CodeableConcept(
                        coding=[Coding(system=PARTICIPATION_TYPE_SYSTEM, code="author", display="Author")]
                    ),
                    actor=self.device
                )
            ],
            evidence=[
                CodeableReference(
                    reference=Reference(
                        reference=f"Observation/{observation.id}",
                        display="PSA Progression Assessment"
                    )
                )
            ],
            extension=self._condition_extensions()
        )

        if self.notes:
            condition.note = build_notes(self.notes)

        apply_aiast_security_label(condition)
        logger.debug(f"Derived Condition {condition.id} from Observation {observation.id}")
        return condition

    def build_with_condition(self) -> Tuple[Observation, Optional[Condition]]:
        observation = self.build()
        return observation, self.build_condition(observation)
