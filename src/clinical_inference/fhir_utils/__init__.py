# ============================================================================
# src/clinical_inference/fhir_utils/__init__.py
# ============================================================================
"""
FHIR builders for AI clinical inferences
"""

from .base import AiResourceBuilder, ObservationBuilder
from .adt_status import AdtStatusObservationBuilder
from .cspc_assessment import CspcAssessmentObservationBuilder
from .psa_progression import CriteriaType, PsaProgressionObservationBuilder
from .radiographic import (
    Determination,
    ObservedRadiographicObservationBuilder,
    Pcwg3ProgressionObservationBuilder,
    RadiographicObservationBuilder,
    RadiographicStandard,
    RecistProgressionObservationBuilder,
)
from .hsdm_assessment import HsdmAssessmentConditionBuilder
from .device import AiDeviceBuilder
from .provenance import AiProvenanceBuilder
from .document_reference import (
    AiDocumentReferenceBuilder,
    FactExtractionDocumentReferenceBuilder,
    OcrDocumentReferenceBuilder,
)
