# ============================================================================
# src/clinical_inference/fhir_utils/cspc_assessment.py
# ============================================================================
"""
Castration sensitivity (CSPC / CRPC) assessment Observation.

The Observation always focuses on an existing prostate cancer Condition.
"""

from typing import Optional, TypeVar, Union

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.observation import Observation
from fhir.resources.reference import Reference

from ..constants import ICD10_CODES, LOINC_CODES, SNOMED_CODES
from ..constants.coding_systems import ICD10_CM_SYSTEM, LOINC_SYSTEM, SNOMED_SYSTEM
from ..utils.exceptions import InvalidReferenceError, MissingRequiredFieldError
from .base import ObservationBuilder, confidence_component, is_blank, observation_category
from .coding import make_reference

# sensitive flag -> (snomed code, snomed display, icd code, icd display)
_SENSITIVITY_VALUES = {
    True: (
        SNOMED_CODES["CASTRATION_SENSITIVE"], "Castration sensitive prostate cancer",
        ICD10_CODES["HORMONE_SENSITIVE"], "Hormone sensitive status",
    ),
    False: (
        SNOMED_CODES["CASTRATION_RESISTANT"], "Castration resistant prostate cancer",
        ICD10_CODES["HORMONE_RESISTANT"], "Hormone resistant status",
    ),
}


def require_condition_reference(
    condition: Union[str, Reference],
    display: Optional[str] = None
) -> Reference:
    """Turn a Condition id or reference into a Reference, rejecting other types."""
    reference = make_reference(condition, "Condition", display)
    if not is_blank(reference.reference) and not reference.reference.startswith("Condition/"):
        raise InvalidReferenceError(reference.reference, "Condition")
    return reference


CspcAssessmentT = TypeVar("CspcAssessmentT", bound="CspcAssessmentObservationBuilder")


class CspcAssessmentObservationBuilder(ObservationBuilder):

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.is_castration_sensitive: Optional[bool] = None
        self.interpretation: Optional[str] = None

    def with_focus(
        self: CspcAssessmentT,
        condition: Union[str, Reference],
        display: Optional[str] = None
    ) -> CspcAssessmentT:
        self.focus = [require_condition_reference(condition, display)]
        return self

    def with_castration_sensitive(self: CspcAssessmentT, is_sensitive: bool) -> CspcAssessmentT:
        self.is_castration_sensitive = bool(is_sensitive)
        return self

    def with_interpretation(self: CspcAssessmentT, interpretation: str) -> CspcAssessmentT:
        if not is_blank(interpretation):
            self.interpretation = interpretation
        return self

    def _validate(self) -> None:
        if not self.focus:
            raise MissingRequiredFieldError(
                "Focus reference", "with_focus",
                "CSPC assessment requires focus reference to existing Condition. "
                "Call with_focus() before build()."
            )
        super()._validate()
        if self.is_castration_sensitive is None:
            raise MissingRequiredFieldError(
                "Castration sensitivity status", "with_castration_sensitive"
            )

    def _sensitivity_value(self) -> CodeableConcept:
        snomed_code, snomed_display, icd_code, icd_display = \
            _SENSITIVITY_VALUES[self.is_castration_sensitive]
        return CodeableConcept(
            coding=[
                Coding(system=SNOMED_SYSTEM, code=snomed_code, display=snomed_display),
                Coding(system=ICD10_CM_SYSTEM, code=icd_code, display=icd_display),
            ],
            text=snomed_display
        )

    def _build_core(self) -> Observation:
        observation = self._new_observation(
            category=observation_category("exam", "Exam"),
            code=CodeableConcept(
                coding=[
                    Coding(
                        system=LOINC_SYSTEM,
                        code=LOINC_CODES["CANCER_DISEASE_STATUS"],
                        display="Cancer disease status"
                    )
                ],
                text="Cancer disease status"
            ),
            value=self._sensitivity_value()
        )

        if self.interpretation:
            observation.interpretation = [CodeableConcept(text=self.interpretation)]
        observation.method = self._criteria_method()

        components = []
        if self.confidence is not None:
            components.append(confidence_component(self.confidence))

        return self._finish(observation, components, self._derived_from_references())
