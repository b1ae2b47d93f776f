# ============================================================================
# src/clinical_inference/constants/__init__.py
# ============================================================================
"""
Convenient imports for all constants
"""

from .clinical_codes import SNOMED_CODES, ICD10_CODES, LOINC_CODES, NCI_CODES
from . import coding_systems
