# ============================================================================
# src/clinical_inference/__init__.py
# ============================================================================
"""
Clinical Inference FHIR

Fluent builders that turn AI clinical inferences (ADT status, castration
sensitivity, PSA progression, radiographic progression, HSDM assessment)
into FHIR R5 Observation, Condition and Device resources.
"""

__version__ = "0.1.0"
