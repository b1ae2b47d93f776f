# ============================================================================
# src/clinical_inference/config/__init__.py
# ============================================================================
"""
Convenient imports for all settings
"""

from .inference_config import AiInferenceSettings, ai_inference_settings
from .logging_config import LoggingSettings, logging_settings
