# ============================================================================
# FILE: src/clinical_inference/fhir_utils/base.py
# ============================================================================
"""
Base classes for AI inference resource builders.

Every builder follows the same lifecycle:
- chained with_*/add_* setters accumulate state and return the builder
- build() validates required fields, assigns an inference id, assembles the
  resource, stamps the AIAST security label and sets the resource id

Setters are typed against a TypeVar bound to the base class so a chain that
starts on a concrete builder keeps the concrete type all the way to build().
"""

from abc import ABC, abstractmethod
from collections import namedtuple
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Optional, TypeVar, Union
import logging

from fhir.resources.annotation import Annotation
from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.extension import Extension
from fhir.resources.meta import Meta
from fhir.resources.observation import Observation, ObservationComponent
from fhir.resources.quantity import Quantity
from fhir.resources.reference import Reference

from ..config.inference_config import AiInferenceSettings, ai_inference_settings
from ..constants.coding_systems import (
    ACT_CODE_SYSTEM,
    AIAST_CODE,
    AIAST_DISPLAY,
    LOINC_SYSTEM,
    OBSERVATION_CATEGORY_SYSTEM,
    UCUM_SYSTEM,
)
from ..utils.exceptions import (
    ConfidenceRangeError,
    InvalidArgumentError,
    MissingRequiredFieldError,
)
from .coding import make_reference
from .ids import generate_inference_id

logger = logging.getLogger(__name__)

BuilderT = TypeVar("BuilderT", bound="AiResourceBuilder")

DateLike = Union[datetime, date, str]

# One row of a declarative component table
ComponentField = namedtuple("ComponentField", "attr system code display kind")

_COMPONENT_VALUE_FIELDS = {
    "string": "valueString",
    "datetime": "valueDateTime",
    "boolean": "valueBoolean",
    "quantity": "valueQuantity",
    "concept": "valueCodeableConcept",
    "period": "valuePeriod",
}


# ============================================================================
# HELPERS
# ============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_fhir_datetime(value: DateLike) -> str:
    """
    Render a date/datetime as a FHIR dateTime string.

    Naive datetimes are treated as UTC; strings are passed through.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    raise InvalidArgumentError(f"Unsupported date value: {value!r}")


def is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def observation_category(code: str, display: str) -> List[CodeableConcept]:
    return [
        CodeableConcept(
            coding=[Coding(system=OBSERVATION_CATEGORY_SYSTEM, code=code, display=display)]
        )
    ]


def make_component(
    system: str,
    code: str,
    display: str,
    value: Any,
    kind: str = "string",
    text: Optional[str] = None,
    extension: Optional[List[Extension]] = None
) -> ObservationComponent:
    """Build an Observation component with a typed value."""
    if kind not in _COMPONENT_VALUE_FIELDS:
        raise InvalidArgumentError(f"Unsupported component value kind: {kind}")

    if kind == "datetime":
        value = to_fhir_datetime(value)

    return ObservationComponent(
        code=CodeableConcept(
            coding=[Coding(system=system, code=code, display=display)],
            text=text
        ),
        extension=extension,
        **{_COMPONENT_VALUE_FIELDS[kind]: value}
    )


def confidence_component(confidence: float) -> ObservationComponent:
    return ObservationComponent(
        code=CodeableConcept(
            coding=[Coding(system=LOINC_SYSTEM, code="LA11892-6", display="Probability")],
            text="AI Confidence Score"
        ),
        valueQuantity=Quantity(
            value=Decimal(str(confidence)),
            unit="probability",
            system=UCUM_SYSTEM,
            code="1"
        )
    )


def build_notes(notes: Iterable[str]) -> List[Annotation]:
    timestamp = to_fhir_datetime(utc_now())
    return [Annotation(text=note, time=timestamp) for note in notes]


def dedupe_references(references: Iterable[Reference]) -> List[Reference]:
    """Drop repeated reference strings, keeping the first occurrence."""
    seen = set()
    unique = []
    for ref in references:
        if ref.reference in seen:
            continue
        seen.add(ref.reference)
        unique.append(ref)
    return unique


def apply_aiast_security_label(resource) -> None:
    """Mark the resource as AI assisted (added once)."""
    if resource.meta is None:
        resource.meta = Meta()

    security = list(resource.meta.security or [])
    if any(s.system == ACT_CODE_SYSTEM and s.code == AIAST_CODE for s in security):
        return

    security.append(Coding(system=ACT_CODE_SYSTEM, code=AIAST_CODE, display=AIAST_DISPLAY))
    resource.meta.security = security


def validate_confidence(confidence: float) -> float:
    # NaN fails the chained comparison too
    if confidence is None or not 0.0 <= confidence <= 1.0:
        raise ConfidenceRangeError(confidence)
    return float(confidence)


# ============================================================================
# BASE BUILDER
# ============================================================================

class AiResourceBuilder(ABC):
    """
    Base class for builders of AI generated FHIR resources.
    """

    def __init__(self, configuration: Optional[AiInferenceSettings] = None):
        self.configuration = configuration or ai_inference_settings
        self.inference_id: Optional[str] = None
        self.criteria_id: Optional[str] = None
        self.criteria_display: Optional[str] = None
        self.criteria_system: Optional[str] = None
        self.derived_from: List[Reference] = []

    def with_inference_id(self: BuilderT, inference_id: str) -> BuilderT:
        self.inference_id = inference_id
        return self

    def with_criteria(
        self: BuilderT,
        criteria_id: str,
        display: str,
        system: Optional[str] = None
    ) -> BuilderT:
        self.criteria_id = criteria_id
        self.criteria_display = display
        self.criteria_system = system or self.configuration.CRITERIA_SYSTEM
        return self

    def add_derived_from(
        self: BuilderT,
        reference: Union[str, Reference],
        display: Optional[str] = None
    ) -> BuilderT:
        if isinstance(reference, Reference):
            self.derived_from.append(reference)
        elif not is_blank(reference):
            self.derived_from.append(Reference(reference=reference, display=display))
        return self

    def _validate(self) -> None:
        """Check required fields; subclasses extend."""
        pass

    @abstractmethod
    def _build_core(self):
        """Assemble the resource from the accumulated state."""
        raise NotImplementedError

    def _ensure_inference_id(self) -> None:
        if is_blank(self.inference_id):
            self.inference_id = generate_inference_id()

    def build(self):
        self._validate()
        self._ensure_inference_id()

        resource = self._build_core()
        apply_aiast_security_label(resource)
        if not resource.id:
            resource.id = self.inference_id

        logger.debug(f"Built {type(resource).__name__} {resource.id}")
        return resource


# ============================================================================
# OBSERVATION BUILDER
# ============================================================================

class ObservationBuilder(AiResourceBuilder):
    """
    Shared state and assembly for AI inference Observations.

    Holds the subject, device, focus, effective time, confidence, evidence and
    notes every inference Observation carries.
    """

    def __init__(self, configuration: Optional[AiInferenceSettings] = None):
        super().__init__(configuration)
        self.patient: Optional[Reference] = None
        self.device: Optional[Reference] = None
        self.focus: List[Reference] = []
        self.effective_date: Optional[str] = None
        self.confidence: Optional[float] = None
        self.evidence: List[Reference] = []
        self.notes: List[str] = []

    def with_patient(
        self: BuilderT,
        patient: Union[str, Reference],
        display: Optional[str] = None
    ) -> BuilderT:
        self.patient = make_reference(patient, "Patient", display)
        return self

    def with_device(
        self: BuilderT,
        device: Union[str, Reference],
        display: Optional[str] = None
    ) -> BuilderT:
        self.device = make_reference(device, "Device", display)
        return self

    def with_focus(self: BuilderT, *focus: Reference) -> BuilderT:
        refs = [f for f in focus if f is not None]
        if not refs:
            raise InvalidArgumentError("At least one focus reference is required")
        self.focus = [make_reference(f) for f in refs]
        return self

    def with_effective_date(self: BuilderT, effective: DateLike) -> BuilderT:
        self.effective_date = to_fhir_datetime(effective)
        return self

    def with_confidence(self: BuilderT, confidence: float) -> BuilderT:
        self.confidence = validate_confidence(confidence)
        return self

    def add_evidence(
        self: BuilderT,
        reference: Union[str, Reference],
        display: Optional[str] = None
    ) -> BuilderT:
        if isinstance(reference, Reference):
            if display and not reference.display:
                reference.display = display
            self.evidence.append(reference)
        elif not is_blank(reference):
            self.evidence.append(Reference(reference=reference, display=display))
        return self

    def add_note(self: BuilderT, text: str) -> BuilderT:
        if not is_blank(text):
            self.notes.append(text)
        return self

    def _validate(self) -> None:
        if self.patient is None:
            raise MissingRequiredFieldError("Patient reference", "with_patient")
        if self.device is None:
            raise MissingRequiredFieldError("Device reference", "with_device")

    # ------------------------------------------------------------------
    # Assembly helpers
    # ------------------------------------------------------------------

    def _new_observation(
        self,
        category: List[CodeableConcept],
        code: CodeableConcept,
        value: Optional[CodeableConcept] = None
    ) -> Observation:
        return Observation(
            status="final",
            category=category,
            code=code,
            focus=list(self.focus) or None,
            subject=self.patient,
            device=self.device,
            effectiveDateTime=self.effective_date or to_fhir_datetime(utc_now()),
            valueCodeableConcept=value
        )

    def _criteria_method(self) -> Optional[CodeableConcept]:
        if is_blank(self.criteria_id):
            return None
        return CodeableConcept(
            coding=[
                Coding(
                    system=self.criteria_system or self.configuration.CRITERIA_SYSTEM,
                    code=self.criteria_id,
                    display=self.criteria_display
                )
            ],
            text=self.criteria_display
        )

    def _derived_from_references(self, *extra: Iterable[Reference]) -> List[Reference]:
        """Evidence, then builder specific lists, then add_derived_from entries."""
        merged = list(self.evidence)
        for refs in extra:
            merged.extend(refs)
        merged.extend(self.derived_from)
        return dedupe_references(merged)

    def _table_components(self, table: Iterable[ComponentField]) -> List[ObservationComponent]:
        components = []
        for row in table:
            value = getattr(self, row.attr)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            components.append(make_component(row.system, row.code, row.display, value, row.kind))
        return components

    def _finish(
        self,
        observation: Observation,
        components: List[ObservationComponent],
        derived_from: List[Reference]
    ) -> Observation:
        if derived_from:
            observation.derivedFrom = derived_from
        if components:
            observation.component = components
        if self.notes:
            observation.note = build_notes(self.notes)
        return observation
