# ============================================================================
# FILE: tests/unit/test_document_reference.py
# ============================================================================
"""
Unit tests for the OCR and fact extraction DocumentReference builders
"""

import base64
import json

import pytest

from clinical_inference.fhir_utils import (
    FactExtractionDocumentReferenceBuilder,
    OcrDocumentReferenceBuilder,
)
from clinical_inference.utils.exceptions import (
    FactParseError,
    InvalidArgumentError,
    MissingRequiredFieldError,
)


def _decoded(attachment) -> str:
    data = attachment.data
    if isinstance(data, str):
        data = data.encode("ascii")
    return base64.b64decode(data).decode("utf-8")


@pytest.fixture
def ocr_builder(inference_config, patient_ref):
    return (
        OcrDocumentReferenceBuilder(inference_config)
        .with_patient(patient_ref)
        .with_ocr_device("textract-1", "AWS Textract")
        .with_original_document("scan-2024-03")
    )


@pytest.fixture
def facts_builder(inference_config, patient_ref):
    return (
        FactExtractionDocumentReferenceBuilder(inference_config)
        .with_patient(patient_ref)
        .with_extraction_device("Device/fact-extractor")
    )


# ============================================================================
# OCR
# ============================================================================

def test_ocr_inline_text(ocr_builder, inference_config, patient_ref):
    document = ocr_builder.with_extracted_text("PSA 4.5 ng/mL on 2024-03-10").build()

    assert document.id.startswith("to.ai-document-ocr-")
    assert document.identifier[0].system == inference_config.DOCUMENT_TRACKING_SYSTEM
    assert document.identifier[0].value == document.id
    assert document.status == "current"
    assert document.type.coding[0].code == "18842-5"
    assert document.type.text == "OCR Extracted Text Document"
    assert document.subject.reference == patient_ref
    assert document.author[0].reference == "Device/textract-1"
    assert document.author[0].display == "AWS Textract"
    assert document.date is not None
    assert document.meta.security[0].code == "AIAST"

    attachment = document.content[0].attachment
    assert attachment.contentType == "text/plain"
    assert attachment.title == "OCR Extracted Text"
    assert _decoded(attachment) == "PSA 4.5 ng/mL on 2024-03-10"


def test_ocr_transforms_original(ocr_builder):
    document = ocr_builder.with_extracted_text("text").build()

    relates_to = document.relatesTo[0]
    assert relates_to.code.coding[0].code == "transforms"
    assert relates_to.target.reference == "DocumentReference/scan-2024-03"


def test_ocr_url_content(ocr_builder):
    document = (
        ocr_builder
        .with_extracted_text_url("s3://ocr/scan-2024-03.txt")
        .with_textract_raw_url("s3://ocr/scan-2024-03.raw.json")
        .with_textract_simple_url("s3://ocr/scan-2024-03.simple.json")
        .build()
    )

    attachments = [c.attachment for c in document.content]
    assert [a.title for a in attachments] == [
        "OCR Extracted Text",
        "Textract Raw Output",
        "Textract Simplified Output",
    ]
    assert [a.contentType for a in attachments] == ["text/plain", "application/json", "application/json"]
    assert attachments[1].url == "s3://ocr/scan-2024-03.raw.json"
    assert not attachments[0].data


def test_inline_after_url_rejected(ocr_builder):
    ocr_builder.with_textract_raw_url("s3://ocr/raw.json")

    with pytest.raises(InvalidArgumentError) as exc_info:
        ocr_builder.with_extracted_text("text")

    assert "not both" in str(exc_info.value)


def test_url_after_inline_rejected(ocr_builder):
    ocr_builder.with_extracted_text("text")

    with pytest.raises(InvalidArgumentError):
        ocr_builder.with_extracted_text_url("s3://ocr/text.txt")


def test_ocr_requires_original_document(inference_config, patient_ref):
    builder = (
        OcrDocumentReferenceBuilder(inference_config)
        .with_patient(patient_ref)
        .with_ocr_device("textract-1")
        .with_extracted_text("text")
    )

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_original_document()" in str(exc_info.value)


def test_ocr_requires_device(patient_ref):
    builder = OcrDocumentReferenceBuilder().with_patient(patient_ref)

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_ocr_device()" in str(exc_info.value)


def test_ocr_requires_content(ocr_builder):
    with pytest.raises(MissingRequiredFieldError):
        ocr_builder.build()


def test_empty_extracted_text(ocr_builder):
    with pytest.raises(InvalidArgumentError):
        ocr_builder.with_extracted_text("")


# ============================================================================
# FACT EXTRACTION
# ============================================================================

def test_facts_from_fact_objects(facts_builder, supporting_fact, conflicting_fact):
    document = facts_builder.with_facts_json([supporting_fact, conflicting_fact]).build()

    assert document.id.startswith("to.ai-document-fact-extraction-")
    assert document.type.coding[0].code == "11506-3"
    assert document.type.text == "Fact Extraction Results Document"
    assert document.author[0].reference == "Device/fact-extractor"

    attachment = document.content[0].attachment
    assert attachment.contentType == "application/json"
    assert attachment.title == "Extracted Facts"
    payload = json.loads(_decoded(attachment))
    assert [f["factGuid"] for f in payload] == ["f-001", "f-002"]


def test_facts_from_json_text(facts_builder, sample_facts_json):
    document = facts_builder.with_facts_json(sample_facts_json, "Facts v2").build()

    attachment = document.content[0].attachment
    assert attachment.title == "Facts v2"
    assert _decoded(attachment) == sample_facts_json


def test_invalid_facts_json(facts_builder):
    with pytest.raises(FactParseError):
        facts_builder.with_facts_json("[{not json")


def test_unserializable_facts(facts_builder):
    with pytest.raises(InvalidArgumentError):
        facts_builder.with_facts_json({"value": object()})


def test_facts_relate_to_original_and_ocr(facts_builder):
    document = (
        facts_builder
        .with_original_document("scan-2024-03")
        .with_ocr_document("DocumentReference/ocr-2024-03")
        .with_facts_json_url("s3://facts/scan-2024-03.json")
        .build()
    )

    targets = [r.target.reference for r in document.relatesTo]
    assert targets == ["DocumentReference/scan-2024-03", "DocumentReference/ocr-2024-03"]
    assert all(r.code.coding[0].code == "transforms" for r in document.relatesTo)
    assert document.content[0].attachment.url == "s3://facts/scan-2024-03.json"


def test_facts_without_related_documents(facts_builder):
    document = facts_builder.with_facts_json_url("s3://facts/f.json").build()

    assert not document.relatesTo


def test_facts_require_device(patient_ref):
    builder = FactExtractionDocumentReferenceBuilder().with_patient(patient_ref)

    with pytest.raises(MissingRequiredFieldError) as exc_info:
        builder.build()

    assert "with_extraction_device()" in str(exc_info.value)


def test_facts_require_content(facts_builder):
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        facts_builder.build()

    assert "with_facts_json()" in str(exc_info.value)


def test_explicit_document_id(facts_builder):
    document = facts_builder.with_inference_id("doc-7").with_facts_json_url("s3://facts/f.json").build()

    assert document.id == "doc-7"
    assert document.identifier[0].value == "doc-7"
