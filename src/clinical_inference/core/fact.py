# ============================================================================
# src/clinical_inference/core/fact.py
# ============================================================================
"""
Structured clinical fact
- One statement extracted from a source document
- Carries provenance (document reference, source locations, time reference)
- Parsed from the JSON arrays produced by the fact extraction step
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..utils.exceptions import FactParseError, InvalidArgumentError


@dataclass
class Fact:
    fact_guid: str = ""
    fact_document_reference: str = ""
    type: str = ""
    fact: str = ""
    ref: List[str] = field(default_factory=list)
    time_ref: str = ""
    relevance: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fact":
        """Build a Fact from its wire form (camelCase keys)."""
        refs = data.get("ref") or []
        if isinstance(refs, str):
            refs = [refs]
        return cls(
            fact_guid=data.get("factGuid") or "",
            fact_document_reference=data.get("factDocumentReference") or "",
            type=data.get("type") or "",
            fact=data.get("fact") or "",
            ref=[str(r) for r in refs],
            time_ref=data.get("timeRef") or "",
            relevance=data.get("relevance") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "factGuid": self.fact_guid,
            "factDocumentReference": self.fact_document_reference,
            "type": self.type,
            "fact": self.fact,
            "ref": list(self.ref),
            "timeRef": self.time_ref,
            "relevance": self.relevance,
        }

    @classmethod
    def from_json_array(cls, facts_json: str) -> List["Fact"]:
        """
        Parse a JSON array of facts.

        Raises:
            InvalidArgumentError: if the text is empty
            FactParseError: if the text is not a JSON array of objects
        """
        if not facts_json or not facts_json.strip():
            raise InvalidArgumentError("Facts JSON cannot be empty")

        try:
            payload = json.loads(facts_json)
        except json.JSONDecodeError as e:
            raise FactParseError(f"Failed to deserialize facts JSON: {e}") from e

        if payload is None:
            return []
        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise FactParseError("Facts JSON must be an array of objects")

        return [cls.from_dict(item) for item in payload]
