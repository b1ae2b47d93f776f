# ============================================================================
# src/clinical_inference/config/inference_config.py
# ============================================================================
"""
AI Inference Settings
- Code system URIs for inferences, criteria, models, documents, provenance
- Default model version
- Owning organization
"""

from typing import Optional
from urllib.parse import urlparse

from fhir.resources.reference import Reference
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AiInferenceSettings(BaseSettings):
    INFERENCE_SYSTEM: str = Field(
        default="http://thirdopinion.ai/fhir/CodeSystem/inference",
        description="Identifier system for AI inference ids"
    )
    CRITERIA_SYSTEM: str = Field(
        default="http://thirdopinion.ai/fhir/CodeSystem/criteria",
        description="Base code system for assessment criteria (Observation.method)"
    )
    MODEL_SYSTEM: str = Field(
        default="http://thirdopinion.ai/fhir/CodeSystem/model",
        description="Identifier system for model versions"
    )
    DOCUMENT_TRACKING_SYSTEM: str = Field(
        default="http://thirdopinion.ai/fhir/CodeSystem/document-tracking",
        description="Identifier system for tracked source documents"
    )
    PROVENANCE_SYSTEM: str = Field(
        default="http://thirdopinion.ai/fhir/CodeSystem/provenance",
        description="Identifier system for provenance records"
    )
    DEFAULT_MODEL_VERSION: str = Field(
        default="v1.0",
        min_length=1,
        description="Model version stamped on AI devices"
    )
    ORGANIZATION_REFERENCE: Optional[str] = Field(
        default=None,
        description="Organization responsible for the inferences, e.g. Organization/acme"
    )
    ORGANIZATION_DISPLAY: Optional[str] = Field(
        default=None,
        description="Display text for the organization reference"
    )

    @field_validator(
        "INFERENCE_SYSTEM",
        "CRITERIA_SYSTEM",
        "MODEL_SYSTEM",
        "DOCUMENT_TRACKING_SYSTEM",
        "PROVENANCE_SYSTEM",
    )
    @classmethod
    def validate_absolute_uri(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("URI cannot be empty")
        parsed = urlparse(v)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"'{v}' is not a valid absolute URI")
        return v

    @classmethod
    def create_default(cls) -> "AiInferenceSettings":
        """Settings with the Third Opinion organization attached"""
        return cls(
            ORGANIZATION_REFERENCE="Organization/thirdopinion-ai",
            ORGANIZATION_DISPLAY="Third Opinion AI",
        )

    def organization_reference(self) -> Optional[Reference]:
        if not self.ORGANIZATION_REFERENCE:
            return None
        return Reference(
            reference=self.ORGANIZATION_REFERENCE,
            display=self.ORGANIZATION_DISPLAY
        )


# Global instance
ai_inference_settings = AiInferenceSettings()
