# ============================================================================
# src/clinical_inference/fhir_utils/hsdm_assessment.py
# ============================================================================
"""
Hormone sensitivity disease monitoring (HSDM) assessment Condition.

Classifies a prostate cancer patient as nmCSPC with biochemical relapse,
mCSPC or mCRPC from a set of extracted clinical facts.
"""

from decimal import Decimal
from typing import List, Optional, TypeVar, Union

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.codeablereference import CodeableReference
from fhir.resources.coding import Coding
from fhir.resources.condition import Condition, ConditionParticipant
from fhir.resources.extension import Extension
from fhir.resources.reference import Reference

from ..constants import ICD10_CODES, SNOMED_CODES
from ..constants.coding_systems import (
    ASSESSMENT_CRITERIA_URL,
    CONDITION_CATEGORY_SYSTEM,
    CONDITION_CLINICAL_SYSTEM,
    CONDITION_VERIFICATION_SYSTEM,
    CONFIDENCE_EXTENSION_URL,
    ICD10_CM_SYSTEM,
    PARTICIPATION_TYPE_SYSTEM,
    SNOMED_SYSTEM,
)
from ..core.fact import Fact
from ..utils.exceptions import InvalidArgumentError, InvalidDeterminationError, MissingRequiredFieldError
from .base import (
    AiResourceBuilder,
    DateLike,
    build_notes,
    is_blank,
    to_fhir_datetime,
    utc_now,
    validate_confidence,
)
from .coding import make_reference
from .cspc_assessment import require_condition_reference
from .extensions import create_fact_extensions

NM_CSPC_BIOCHEMICAL_RELAPSE = "nmCSPC_biochemical_relapse"
MCSPC = "mCSPC"
MCRPC = "mCRPC"

_SENSITIVE = (SNOMED_SYSTEM, SNOMED_CODES["CASTRATION_SENSITIVE"], "Castration-sensitive prostate cancer")
_HORMONE_SENSITIVE = (ICD10_CM_SYSTEM, ICD10_CODES["HORMONE_SENSITIVE"], "Hormone sensitive malignancy status")

HSDM_RESULT_CODES = {
    NM_CSPC_BIOCHEMICAL_RELAPSE: (
        [
            _SENSITIVE,
            _HORMONE_SENSITIVE,
            (ICD10_CM_SYSTEM, ICD10_CODES["RISING_PSA"],
             "Rising PSA following treatment for malignant neoplasm of prostate"),
        ],
        "Castration-Sensitive Prostate Cancer with Biochemical Relapse",
    ),
    MCSPC: (
        [_SENSITIVE, _HORMONE_SENSITIVE],
        "Castration-Sensitive Prostate Cancer (mCSPC)",
    ),
    MCRPC: (
        [
            (SNOMED_SYSTEM, SNOMED_CODES["CASTRATION_RESISTANT"], "Castration resistant prostate cancer"),
            (ICD10_CM_SYSTEM, ICD10_CODES["HORMONE_RESISTANT"], "Hormone resistant malignancy status"),
        ],
        "Castration-Resistant Prostate Cancer (mCRPC)",
    ),
}


HsdmAssessmentT = TypeVar("HsdmAssessmentT", bound="HsdmAssessmentConditionBuilder")


class HsdmAssessmentConditionBuilder(AiResourceBuilder):

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.patient: Optional[Reference] = None
        self.device: Optional[Reference] = None
        self.focus: List[Reference] = []
        self.evidence: List[Reference] = []
        self.facts: List[Fact] = []
        self.summary: Optional[str] = None
        self.hsdm_result: Optional[str] = None
        self.effective_date: Optional[str] = None
        self.confidence: Optional[float] = None
        self.criteria_description: Optional[str] = None

    def with_criteria(
        self: HsdmAssessmentT,
        criteria_id: str,
        display: str,
        description: Optional[str] = None,
        system: Optional[str] = None
    ) -> HsdmAssessmentT:
        super().with_criteria(criteria_id, display, system)
        self.criteria_description = description
        return self

    def with_patient(self: HsdmAssessmentT, patient: Union[str, Reference], display: Optional[str] = None) -> HsdmAssessmentT:
        self.patient = make_reference(patient, "Patient", display)
        return self

    def with_device(self: HsdmAssessmentT, device: Union[str, Reference], display: Optional[str] = None) -> HsdmAssessmentT:
        self.device = make_reference(device, "Device", display)
        return self

    def with_focus(self: HsdmAssessmentT, condition: Union[str, Reference], display: Optional[str] = None) -> HsdmAssessmentT:
        self.focus = [require_condition_reference(condition, display)]
        return self

    def add_focus(self: HsdmAssessmentT, condition: Union[str, Reference], display: Optional[str] = None) -> HsdmAssessmentT:
        self.focus.append(require_condition_reference(condition, display))
        return self

    def with_hsdm_result(self: HsdmAssessmentT, result: str) -> HsdmAssessmentT:
        if is_blank(result):
            raise InvalidArgumentError("HSDM result cannot be empty")
        if result not in HSDM_RESULT_CODES:
            raise InvalidDeterminationError(result, HSDM_RESULT_CODES)
        self.hsdm_result = result
        return self

    def add_evidence(self: HsdmAssessmentT, reference: Union[str, Reference], display: Optional[str] = None) -> HsdmAssessmentT:
        if isinstance(reference, Reference):
            if display and not reference.display:
                reference.display = display
            self.evidence.append(reference)
        elif not is_blank(reference):
            self.evidence.append(Reference(reference=reference, display=display))
        return self

    def add_fact_evidence(self: HsdmAssessmentT, *facts: Fact) -> HsdmAssessmentT:
        facts = [f for f in facts if f is not None]
        if not facts:
            raise InvalidArgumentError("At least one fact is required")

        self.facts.extend(facts)
        for fact in facts:
            if not is_blank(fact.fact_document_reference):
                self.add_evidence(fact.fact_document_reference, f"Fact evidence: {fact.type}")
        return self

    def with_effective_date(self: HsdmAssessmentT, effective: DateLike) -> HsdmAssessmentT:
        self.effective_date = to_fhir_datetime(effective)
        return self

    def with_confidence(self: HsdmAssessmentT, confidence: float) -> HsdmAssessmentT:
        self.confidence = validate_confidence(confidence)
        return self

    def with_summary(self: HsdmAssessmentT, summary: str) -> HsdmAssessmentT:
        """Set the summary note; only the latest summary is kept."""
        if is_blank(summary):
            raise InvalidArgumentError("Summary note text cannot be empty")
        self.summary = summary
        return self

    def _validate(self) -> None:
        if self.patient is None:
            raise MissingRequiredFieldError("Patient reference", "with_patient")
        if self.device is None:
            raise MissingRequiredFieldError("Device reference", "with_device")
        if not self.focus:
            raise MissingRequiredFieldError("Focus reference", "with_focus")
        if is_blank(self.hsdm_result):
            raise MissingRequiredFieldError("HSDM result", "with_hsdm_result")
        if not self.facts:
            raise MissingRequiredFieldError("Fact evidence", "add_fact_evidence")
        if is_blank(self.summary):
            raise MissingRequiredFieldError("Summary note", "with_summary")

    def _result_code(self) -> CodeableConcept:
        codings, text = HSDM_RESULT_CODES[self.hsdm_result]
        return CodeableConcept(
            coding=[Coding(system=system, code=code, display=display) for system, code, display in codings],
            text=text
        )

    def _extensions(self) -> List[Extension]:
        extensions = create_fact_extensions(self.facts)

        if self.confidence is not None:
            extensions.append(Extension(
                url=CONFIDENCE_EXTENSION_URL,
                valueDecimal=Decimal(str(self.confidence))
            ))

        if not is_blank(self.criteria_id):
            criteria = [
                Extension(url="id", valueString=self.criteria_id),
                Extension(url="display", valueString=self.criteria_display or ""),
            ]
            if not is_blank(self.criteria_description):
                criteria.append(Extension(url="description", valueString=self.criteria_description))
            extensions.append(Extension(url=ASSESSMENT_CRITERIA_URL, extension=criteria))

        return extensions

    def _build_core(self) -> Condition:
        evidence = [
            CodeableReference(reference=ref)
            for ref in list(self.evidence) + list(self.derived_from)
        ]

        return Condition(
            clinicalStatus=CodeableConcept(
                coding=[Coding(system=CONDITION_CLINICAL_SYSTEM, code="active", display="Active")]
            ),
            verificationStatus=CodeableConcept(
                coding=[Coding(system=CONDITION_VERIFICATION_SYSTEM, code="confirmed", display="Confirmed")]
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
            code=self._result_code(),
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
            evidence=evidence or None,
            note=build_notes([self.summary]),
            extension=self._extensions() or None
        )
