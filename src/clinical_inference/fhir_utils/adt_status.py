# ============================================================================
# src/clinical_inference/fhir_utils/adt_status.py
# ============================================================================
"""
Androgen deprivation therapy (ADT) status Observation.
"""

from typing import Optional, TypeVar

from fhir.resources.extension import Extension
from fhir.resources.observation import Observation
from fhir.resources.reference import Reference

from ..constants import SNOMED_CODES
from ..constants.coding_systems import RESULT_CODE_SYSTEM, SOURCE_MEDICATION_REFERENCE_URL
from ..utils.exceptions import InvalidArgumentError, MissingRequiredFieldError
from .base import (
    DateLike,
    ObservationBuilder,
    confidence_component,
    is_blank,
    make_component,
    observation_category,
)
from .coding import create_snomed_concept


AdtStatusT = TypeVar("AdtStatusT", bound="AdtStatusObservationBuilder")


class AdtStatusObservationBuilder(ObservationBuilder):
    """Records whether a patient is currently receiving ADT."""

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.is_receiving_adt: Optional[bool] = None
        self.treatment_start_date: Optional[DateLike] = None
        self.medication_reference_id: Optional[str] = None
        self.treatment_start_display: Optional[str] = None

    def with_status(self: AdtStatusT, is_receiving_adt: bool) -> AdtStatusT:
        self.is_receiving_adt = bool(is_receiving_adt)
        return self

    def with_treatment_start_date(
        self: AdtStatusT,
        treatment_start_date: DateLike,
        medication_reference_id: str,
        display_text: str
    ) -> AdtStatusT:
        if is_blank(medication_reference_id):
            raise InvalidArgumentError("Medication reference ID cannot be empty")
        if is_blank(display_text):
            raise InvalidArgumentError("Display text cannot be empty")

        self.treatment_start_date = treatment_start_date
        self.medication_reference_id = medication_reference_id
        self.treatment_start_display = display_text
        return self

    def _validate(self) -> None:
        super()._validate()
        if self.is_receiving_adt is None:
            raise MissingRequiredFieldError("ADT status", "with_status")

    def _status_value(self):
        if self.is_receiving_adt:
            return create_snomed_concept(SNOMED_CODES["ACTIVE_STATUS"], "Active")
        return create_snomed_concept(SNOMED_CODES["INACTIVE_STATUS"], "Inactive")

    def _build_core(self) -> Observation:
        observation = self._new_observation(
            category=observation_category("therapy", "Therapy"),
            code=create_snomed_concept(SNOMED_CODES["ADT_THERAPY"], "Androgen deprivation therapy"),
            value=self._status_value()
        )
        observation.method = self._criteria_method()

        components = []
        if self.confidence is not None:
            components.append(confidence_component(self.confidence))

        if self.treatment_start_date is not None:
            components.append(make_component(
                RESULT_CODE_SYSTEM,
                "treatmentStartDate_v1",
                "The date treatment started",
                self.treatment_start_date,
                kind="datetime",
                text=self.treatment_start_display,
                extension=[
                    Extension(
                        url=SOURCE_MEDICATION_REFERENCE_URL,
                        valueReference=Reference(
                            reference=self.medication_reference_id,
                            display="The MedicationReference used in the analysis."
                        )
                    )
                ]
            ))

        return self._finish(observation, components, self._derived_from_references())
