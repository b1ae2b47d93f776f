# ============================================================================
# src/clinical_inference/constants/clinical_codes.py
# ============================================================================
"""
Clinical code tables
- SNOMED CT, ICD-10, LOINC and NCI Thesaurus codes used by the builders
- Keyed by constant name so callers can look codes up symbolically
"""

SNOMED_CODES = {
    "ADT_THERAPY": "413712001",
    "CASTRATION_SENSITIVE": "1197209002",
    "CASTRATION_RESISTANT": "445848006",
    "AI_ALGORITHM": "706689003",
    "ORGANIZATION": "385437003",
    "ACTIVE_STATUS": "385654001",
    "INACTIVE_STATUS": "385655000",
    "PROSTATE_CANCER": "399068003",
    "CLINICAL_FINDING": "404684003",
    "PROCEDURE": "71388002",
    "PSA_PROGRESSION_ASSESSMENT": "428119001",
    "COMPLETE_RESPONSE": "268910001",
    "PARTIAL_RESPONSE": "268905007",
    "STABLE_DISEASE": "359746009",
    "PROGRESSIVE_DISEASE": "277022003",
    "BASELINE": "261935009",
    "INCONCLUSIVE": "419984006",
    "UNKNOWN": "261665006",
    "TUMOR_PROGRESSION": "444391001",
    "NEOPLASM_STABLE": "713837000",
    "NEOPLASM_REGRESSION": "265743007",
}

ICD10_CODES = {
    "PROSTATE_CANCER": "C61",
    "HORMONE_SENSITIVE": "Z19.1",
    "HORMONE_RESISTANT": "Z19.2",
    "RISING_PSA": "R97.21",
    "BREAST_CANCER": "C50",
    "LUNG_CANCER": "C78.0",
}

LOINC_CODES = {
    "CANCER_DISEASE_STATUS": "21889-1",
    "PSA_TOTAL": "2857-1",
    "PSA_FREE": "19201-3",
    "PSA_PROGRESSION": "97509-4",
    "TESTOSTERONE": "2986-8",
    "GLEASON_SCORE": "35266-6",
    "CLINICAL_STAGE_TNM": "21902-2",
    "PATHOLOGIC_STAGE_TNM": "21899-0",
    "ALKALINE_PHOSPHATASE": "6768-6",
    "LACTATE_DEHYDROGENASE": "14804-9",
    "BONE_SCAN_FINDINGS": "44667-7",
    "TUMOR_RESPONSE": "21976-6",
    "IMAGING_OBSERVATIONS": "59462-2",
    "PROBABILITY": "LA11892-6",
    "DISCHARGE_SUMMARY": "18842-5",
    "PROGRESS_NOTE": "11506-3",
}

NCI_CODES = {
    "PROSTATE_CANCER": "C7378",
    "CRPC": "C130234",
    "MCRPC": "C132881",
    "ADT": "C15667",
    "PSA": "C25638",
    "RECIST_1_1": "C111544",
    "COMPLETE_RESPONSE": "C4870",
    "PARTIAL_RESPONSE": "C18058",
    "STABLE_DISEASE": "C18213",
    "PROGRESSIVE_DISEASE": "C35571",
}
