# ============================================================================
# src/clinical_inference/core/__init__.py
# ============================================================================
from .fact import Fact
