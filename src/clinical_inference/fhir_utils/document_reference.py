# ============================================================================
# src/clinical_inference/fhir_utils/document_reference.py
# ============================================================================
"""
DocumentReferences for documents produced by the AI pipeline.

- OCR: text extracted from an original scanned document
- Fact extraction: the structured facts pulled from an original / OCR document

Content is either inline (base64 encoded) or a list of URLs, never both.
Each produced document "transforms" the documents it was derived from.
"""

import base64
import json
from typing import List, Optional, TypeVar, Union

from fhir.resources.attachment import Attachment
from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.documentreference import (
    DocumentReference,
    DocumentReferenceContent,
    DocumentReferenceRelatesTo,
)
from fhir.resources.identifier import Identifier
from fhir.resources.reference import Reference

from ..constants import LOINC_CODES
from ..constants.coding_systems import DOCUMENT_RELATIONSHIP_SYSTEM, LOINC_SYSTEM
from ..core.fact import Fact
from ..utils.exceptions import FactParseError, InvalidArgumentError, MissingRequiredFieldError
from .base import AiResourceBuilder, is_blank, to_fhir_datetime, utc_now
from .coding import make_reference
from .ids import generate_document_id

INLINE = "inline"
URL = "url"


DocumentT = TypeVar("DocumentT", bound="AiDocumentReferenceBuilder")


class AiDocumentReferenceBuilder(AiResourceBuilder):
    """
    Shared state and assembly for AI produced DocumentReferences.

    Subclasses set the document type coding and the name of their device
    setter, and add the setters for their own content.
    """

    document_type = "document"
    type_code: Optional[str] = None
    type_display: Optional[str] = None
    type_text: Optional[str] = None
    device_setter = "with_device"

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.patient: Optional[Reference] = None
        self.device: Optional[Reference] = None
        self.original_document: Optional[Reference] = None
        self.contents: List[DocumentReferenceContent] = []
        self.content_mode: Optional[str] = None

    def with_patient(
        self: DocumentT,
        patient: Union[str, Reference],
        display: Optional[str] = None
    ) -> DocumentT:
        self.patient = make_reference(patient, "Patient", display)
        return self

    def with_original_document(
        self: DocumentT,
        document: Union[str, Reference],
        display: Optional[str] = None
    ) -> DocumentT:
        self.original_document = make_reference(document, "DocumentReference", display)
        return self

    def _set_device(self, device: Union[str, Reference], display: Optional[str] = None) -> None:
        self.device = make_reference(device, "Device", display)

    def _add_content(self, mode: str, attachment: Attachment) -> None:
        if self.content_mode is not None and self.content_mode != mode:
            other = URL if mode == INLINE else INLINE
            raise InvalidArgumentError(
                f"Cannot add {mode} content when {other} content has already been set. "
                "Use either inline OR URL content, not both."
            )
        self.contents.append(DocumentReferenceContent(attachment=attachment))
        self.content_mode = mode

    def _add_inline(self, data: str, content_type: str, title: str) -> None:
        encoded = base64.b64encode(data.encode("utf-8")).decode("ascii")
        self._add_content(INLINE, Attachment(contentType=content_type, data=encoded, title=title))

    def _add_url(self, url: str, content_type: str, title: str) -> None:
        if is_blank(url):
            raise InvalidArgumentError("Content URL cannot be empty")
        self._add_content(URL, Attachment(contentType=content_type, url=url, title=title))

    def _related_documents(self) -> List[Reference]:
        return [self.original_document] if self.original_document else []

    def _ensure_inference_id(self) -> None:
        if is_blank(self.inference_id):
            self.inference_id = generate_document_id(self.document_type)

    def _validate(self) -> None:
        if self.patient is None:
            raise MissingRequiredFieldError("Patient reference", "with_patient")
        if self.device is None:
            raise MissingRequiredFieldError("Device reference", self.device_setter)

    def _validate_content(self, setters: str) -> None:
        if not self.contents:
            raise MissingRequiredFieldError(
                "Content", setters,
                f"At least one content attachment is required. Call {setters} before build()."
            )

    def _build_core(self) -> DocumentReference:
        document = DocumentReference(
            identifier=[Identifier(
                system=self.configuration.DOCUMENT_TRACKING_SYSTEM,
                value=self.inference_id
            )],
            status="current",
            type=CodeableConcept(
                coding=[Coding(system=LOINC_SYSTEM, code=self.type_code, display=self.type_display)],
                text=self.type_text
            ),
            subject=self.patient,
            date=to_fhir_datetime(utc_now()),
            author=[self.device],
            content=list(self.contents)
        )

        related = self._related_documents()
        if related:
            document.relatesTo = [
                DocumentReferenceRelatesTo(
                    code=CodeableConcept(
                        coding=[Coding(system=DOCUMENT_RELATIONSHIP_SYSTEM, code="transforms", display="Transforms")]
                    ),
                    target=target
                )
                for target in related
            ]

        return document


# ============================================================================
# OCR
# ============================================================================

OcrDocumentT = TypeVar("OcrDocumentT", bound="OcrDocumentReferenceBuilder")


class OcrDocumentReferenceBuilder(AiDocumentReferenceBuilder):
    """Text extracted by OCR, plus the raw and simplified Textract output."""

    document_type = "ocr"
    type_code = LOINC_CODES["DISCHARGE_SUMMARY"]
    type_display = "Discharge summary"
    type_text = "OCR Extracted Text Document"
    device_setter = "with_ocr_device"

    def with_ocr_device(
        self: OcrDocumentT,
        device: Union[str, Reference],
        display: Optional[str] = None
    ) -> OcrDocumentT:
        self._set_device(device, display)
        return self

    def with_extracted_text(self: OcrDocumentT, text: str, title: Optional[str] = None) -> OcrDocumentT:
        if not text:
            raise InvalidArgumentError("Text content cannot be empty")
        self._add_inline(text, "text/plain", title or "OCR Extracted Text")
        return self

    def with_extracted_text_url(self: OcrDocumentT, url: str, title: Optional[str] = None) -> OcrDocumentT:
        self._add_url(url, "text/plain", title or "OCR Extracted Text")
        return self

    def with_textract_raw_url(self: OcrDocumentT, url: str, title: Optional[str] = None) -> OcrDocumentT:
        self._add_url(url, "application/json", title or "Textract Raw Output")
        return self

    def with_textract_simple_url(self: OcrDocumentT, url: str, title: Optional[str] = None) -> OcrDocumentT:
        self._add_url(url, "application/json", title or "Textract Simplified Output")
        return self

    def _validate(self) -> None:
        super()._validate()
        if self.original_document is None:
            raise MissingRequiredFieldError("Original document reference", "with_original_document")
        self._validate_content(
            "with_extracted_text(), with_extracted_text_url(), "
            "with_textract_raw_url() or with_textract_simple_url()"
        )


# ============================================================================
# FACT EXTRACTION
# ============================================================================

FactDocumentT = TypeVar("FactDocumentT", bound="FactExtractionDocumentReferenceBuilder")


def facts_to_json(facts) -> str:
    """
    Render facts as an indented JSON document.

    A string must already be valid JSON and is kept as is; Fact objects are
    written in their wire form.
    """
    if isinstance(facts, str):
        if is_blank(facts):
            raise InvalidArgumentError("Facts JSON cannot be empty")
        try:
            json.loads(facts)
        except json.JSONDecodeError as e:
            raise FactParseError(f"Invalid facts JSON: {e}") from e
        return facts

    if isinstance(facts, Fact):
        payload = facts.to_dict()
    elif isinstance(facts, (list, tuple)):
        payload = [f.to_dict() if isinstance(f, Fact) else f for f in facts]
    else:
        payload = facts

    try:
        return json.dumps(payload, indent=2)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Failed to serialize facts to JSON: {e}") from e


class FactExtractionDocumentReferenceBuilder(AiDocumentReferenceBuilder):
    """Structured facts extracted from an original document and its OCR text."""

    document_type = "fact-extraction"
    type_code = LOINC_CODES["PROGRESS_NOTE"]
    type_display = "Progress note"
    type_text = "Fact Extraction Results Document"
    device_setter = "with_extraction_device"

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.ocr_document: Optional[Reference] = None

    def with_extraction_device(
        self: FactDocumentT,
        device: Union[str, Reference],
        display: Optional[str] = None
    ) -> FactDocumentT:
        self._set_device(device, display)
        return self

    def with_ocr_document(
        self: FactDocumentT,
        document: Union[str, Reference],
        display: Optional[str] = None
    ) -> FactDocumentT:
        self.ocr_document = make_reference(document, "DocumentReference", display)
        return self

    def with_facts_json(self: FactDocumentT, facts, title: Optional[str] = None) -> FactDocumentT:
        """
        Add the facts inline.

        Args:
            facts: JSON text, a Fact, a list of Facts / dicts, or any JSON serializable object
            title: Attachment title
        """
        if facts is None:
            raise InvalidArgumentError("Facts cannot be None")
        self._add_inline(facts_to_json(facts), "application/json", title or "Extracted Facts")
        return self

    def with_facts_json_url(self: FactDocumentT, url: str, title: Optional[str] = None) -> FactDocumentT:
        self._add_url(url, "application/json", title or "Extracted Facts")
        return self

    def _related_documents(self) -> List[Reference]:
        related = super()._related_documents()
        if self.ocr_document:
            related.append(self.ocr_document)
        return related

    def _validate(self) -> None:
        super()._validate()
        self._validate_content("with_facts_json() or with_facts_json_url()")
