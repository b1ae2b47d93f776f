# ============================================================================
# src/clinical_inference/fhir_utils/extensions.py
# ============================================================================
"""
Extensions carrying structured clinical facts and RECIST timepoints.

A fact is first flattened into an ordered list of (key, value) pairs and then
rendered as an Extension with one valueString child per pair.
"""

from typing import Iterable, List, Optional, Tuple

from fhir.resources.extension import Extension

from ..constants.coding_systems import (
    CLINICAL_FACT_URL,
    CONFLICTING_FACT_URL,
    RECIST_TIMEPOINTS_URL,
)
from ..core.fact import Fact
from ..utils.exceptions import InvalidArgumentError


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def fact_to_tree(fact: Fact) -> List[Tuple[str, str]]:
    """
    Flatten a fact into ordered (key, value) pairs, skipping empty attributes.

    Every non-blank source location becomes its own "ref" entry.
    """
    tree = []
    for key, value in (
        ("factGuid", fact.fact_guid),
        ("factDocumentReference", fact.fact_document_reference),
        ("type", fact.type),
        ("fact", fact.fact),
    ):
        if _present(value):
            tree.append((key, value))

    for ref in fact.ref or []:
        if _present(ref):
            tree.append(("ref", ref))

    for key, value in (("timeRef", fact.time_ref), ("relevance", fact.relevance)):
        if _present(value):
            tree.append((key, value))

    return tree


def create_fact_extension(fact: Fact, url: str = CLINICAL_FACT_URL) -> Extension:
    if fact is None:
        raise InvalidArgumentError("Fact cannot be None")

    children = [Extension(url=key, valueString=value) for key, value in fact_to_tree(fact)]
    return Extension(url=url, extension=children or None)


def create_fact_extensions(
    facts: Optional[Iterable[Fact]],
    url: str = CLINICAL_FACT_URL
) -> List[Extension]:
    if not facts:
        return []
    return [create_fact_extension(fact, url) for fact in facts if fact is not None]


def create_conflicting_fact_extensions(facts: Optional[Iterable[Fact]]) -> List[Extension]:
    return create_fact_extensions(facts, CONFLICTING_FACT_URL)


def create_recist_timepoints_extension(timepoints_json: str) -> Extension:
    """Wrap the raw RECIST timepoints JSON in a single-child extension."""
    if timepoints_json is None or not timepoints_json.strip():
        raise InvalidArgumentError("RECIST timepoints JSON cannot be empty or whitespace")

    return Extension(
        url=RECIST_TIMEPOINTS_URL,
        extension=[Extension(url="timepointsJson", valueString=timepoints_json)]
    )
