# ============================================================================
# src/clinical_inference/constants/coding_systems.py
# ============================================================================
"""
Coding system URIs and proprietary component / extension URLs
"""

# Standard terminologies
SNOMED_SYSTEM = "http://snomed.info/sct"
ICD10_SYSTEM = "http://hl7.org/fhir/sid/icd-10"
ICD10_CM_SYSTEM = "http://hl7.org/fhir/sid/icd-10-cm"
LOINC_SYSTEM = "http://loinc.org"
NCI_SYSTEM = "http://ncicb.nci.nih.gov/xml/owl/EVS/Thesaurus.owl"
UCUM_SYSTEM = "http://unitsofmeasure.org"

# HL7 terminology
OBSERVATION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/observation-category"
CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_VERIFICATION_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-ver-status"
CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
ACT_CODE_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
PARTICIPATION_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/provenance-participant-type"
DOCUMENT_RELATIONSHIP_SYSTEM = "http://hl7.org/fhir/document-relationship-type"

# Component code systems
RESULT_CODE_SYSTEM = "https://thirdopinion.io/result-code"
PSA_COMPONENT_SYSTEM = "http://thirdopinion.ai/fhir/CodeSystem/psa-components"
PCWG3_COMPONENT_SYSTEM = "http://thirdopinion.ai/fhir/CodeSystem/pcwg3-components"
RECIST_COMPONENT_SYSTEM = "http://thirdopinion.ai/fhir/CodeSystem/recist-components"
RADIOGRAPHIC_COMPONENT_SYSTEM = "http://thirdopinion.ai/fhir/CodeSystem/radiographic-components"

# Extension URLs
SOURCE_MEDICATION_REFERENCE_URL = (
    "https://thirdopinion.io/fhir/StructureDefinition/source-medication-reference"
)
SOURCE_OBSERVATION_URL = "https://thirdopinion.io/fhir/StructureDefinition/source-observation"
PSA_EVIDENCE_ROLE_URL = "http://thirdopinion.ai/fhir/StructureDefinition/psa-evidence-role"
PSA_EVIDENCE_VALUE_URL = "http://thirdopinion.ai/fhir/StructureDefinition/psa-evidence-value"
CONFIDENCE_EXTENSION_URL = "http://thirdopinion.ai/fhir/StructureDefinition/confidence"
ASSESSMENT_CRITERIA_URL = "http://thirdopinion.ai/fhir/StructureDefinition/assessment-criteria"
AI_INFERRED_URL = "http://thirdopinion.ai/fhir/StructureDefinition/ai-inferred"
CLINICAL_FACT_URL = "https://thirdopinion.io/clinical-fact"
CONFLICTING_FACT_URL = "https://thirdopinion.io/conflicting-fact"
RECIST_TIMEPOINTS_URL = "https://thirdopinion.io/recist-timepoints"
S3_LOG_FILE_URL = "http://thirdopinion.ai/fhir/StructureDefinition/s3-log-file"
SOFTWARE_VERSION_URL = "http://hl7.org/fhir/StructureDefinition/device-softwareVersion"

# Security label applied to every AI-generated resource
AIAST_CODE = "AIAST"
AIAST_DISPLAY = "AI Assisted"
