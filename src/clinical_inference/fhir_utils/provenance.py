# ============================================================================
# src/clinical_inference/fhir_utils/provenance.py
# ============================================================================
"""
Provenance record for AI generated resources.

Ties one or more target resources to the AI algorithm (and organization)
that produced them and to the source resources they were derived from.
"""

from typing import List, Optional, TypeVar, Union

from fhir.resources.coding import Coding
from fhir.resources.extension import Extension
from fhir.resources.meta import Meta
from fhir.resources.provenance import Provenance, ProvenanceAgent, ProvenanceEntity
from fhir.resources.reference import Reference

from ..constants import SNOMED_CODES
from ..constants.coding_systems import S3_LOG_FILE_URL, SOFTWARE_VERSION_URL
from ..utils.exceptions import InvalidArgumentError, MissingRequiredFieldError
from .base import AiResourceBuilder, DateLike, is_blank, to_fhir_datetime, utc_now
from .coding import create_snomed_concept, make_reference
from .ids import generate_provenance_id

_LOG_URL_SCHEMES = ("s3://", "https://")


ProvenanceT = TypeVar("ProvenanceT", bound="AiProvenanceBuilder")


class AiProvenanceBuilder(AiResourceBuilder):

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.targets: List[Reference] = []
        self.occurred: Optional[DateLike] = None
        self.recorded: Optional[DateLike] = None
        self.reasons: List[str] = []
        self.agents: List[ProvenanceAgent] = []
        self.entities: List[ProvenanceEntity] = []
        self.s3_log_file_url: Optional[str] = None
        self._has_organization = False

    def with_provenance_id(self: ProvenanceT, provenance_id: str) -> ProvenanceT:
        if is_blank(provenance_id):
            raise InvalidArgumentError("Provenance ID cannot be empty")
        self.inference_id = provenance_id
        return self

    def for_target(
        self: ProvenanceT,
        target: Union[str, Reference],
        resource_id: Optional[str] = None
    ) -> ProvenanceT:
        """
        Add a resource this provenance describes.

        Accepts a Reference, a typed reference string ("Observation/o1"),
        or a resource type together with its id ("Observation", "o1").
        """
        if target is None:
            raise InvalidArgumentError("Target cannot be None")
        if resource_id is not None:
            if is_blank(target) or is_blank(resource_id):
                raise InvalidArgumentError("Target resource type and id cannot be empty")
            self.targets.append(make_reference(resource_id, target))
        else:
            self.targets.append(make_reference(target))
        return self

    def with_occurred_date_time(self: ProvenanceT, occurred: DateLike) -> ProvenanceT:
        self.occurred = occurred
        return self

    def with_recorded_date_time(self: ProvenanceT, recorded: DateLike) -> ProvenanceT:
        self.recorded = recorded
        return self

    def with_reason(self: ProvenanceT, reason: str) -> ProvenanceT:
        if is_blank(reason):
            raise InvalidArgumentError("Reason cannot be empty")
        self.reasons.append(reason)
        return self

    def with_agent(
        self: ProvenanceT,
        agent_type: str,
        agent_name: str,
        agent_version: Optional[str] = None
    ) -> ProvenanceT:
        """
        Add the AI algorithm that produced the targets.

        The agent is typed as SNOMED "AI Algorithm"; a version is carried as a
        device-softwareVersion extension on the agent reference.
        """
        if is_blank(agent_type) or is_blank(agent_name):
            raise InvalidArgumentError("Agent type and name cannot be empty")

        who = Reference(display=agent_name)
        if not is_blank(agent_version):
            who.extension = [Extension(url=SOFTWARE_VERSION_URL, valueString=agent_version)]

        self.agents.append(ProvenanceAgent(
            type=create_snomed_concept(SNOMED_CODES["AI_ALGORITHM"], "AI Algorithm"),
            who=who
        ))
        return self

    def with_organization(
        self: ProvenanceT,
        organization_name: str,
        organization_id: Optional[str] = None
    ) -> ProvenanceT:
        if is_blank(organization_name):
            raise InvalidArgumentError("Organization name cannot be empty")

        who = Reference(display=organization_name)
        if not is_blank(organization_id):
            who = make_reference(organization_id, "Organization", organization_name)
        self._add_organization_agent(who)
        return self

    def with_source_entity(
        self: ProvenanceT,
        source: Union[str, Reference],
        resource_id: Optional[str] = None
    ) -> ProvenanceT:
        if source is None:
            raise InvalidArgumentError("Source entity cannot be None")
        if resource_id is not None:
            if is_blank(source) or is_blank(resource_id):
                raise InvalidArgumentError("Source resource type and id cannot be empty")
            reference = make_reference(resource_id, source)
        else:
            reference = make_reference(source)

        self.entities.append(ProvenanceEntity(role="source", what=reference))
        return self

    def with_s3_log_file(self: ProvenanceT, url: str) -> ProvenanceT:
        if is_blank(url):
            raise InvalidArgumentError("S3 log file URL cannot be empty")
        if not url.startswith(_LOG_URL_SCHEMES):
            raise InvalidArgumentError("S3 URL must start with 's3://' or 'https://'")
        self.s3_log_file_url = url
        return self

    def _add_organization_agent(self, who: Reference) -> None:
        self.agents.append(ProvenanceAgent(
            type=create_snomed_concept(SNOMED_CODES["ORGANIZATION"], "Organization"),
            who=who
        ))
        self._has_organization = True

    def _ensure_inference_id(self) -> None:
        if is_blank(self.inference_id):
            self.inference_id = generate_provenance_id()

    def _validate(self) -> None:
        if not self.targets:
            raise MissingRequiredFieldError("Target", "for_target")
        if not self.agents:
            raise MissingRequiredFieldError("Agent", "with_agent")

    def _build_core(self) -> Provenance:
        # Configured organization is attributed unless one was named explicitly
        organization = self.configuration.organization_reference()
        if organization is not None and not self._has_organization:
            self._add_organization_agent(organization)

        provenance = Provenance(
            target=list(self.targets),
            recorded=to_fhir_datetime(self.recorded or utc_now()),
            agent=list(self.agents),
            meta=Meta(tag=[Coding(system=self.configuration.PROVENANCE_SYSTEM, code=self.inference_id)])
        )

        if self.occurred is not None:
            provenance.occurredDateTime = to_fhir_datetime(self.occurred)
        if self.reasons:
            provenance.reason = [
                create_snomed_concept(SNOMED_CODES["AI_ALGORITHM"], reason) for reason in self.reasons
            ]
        if self.entities:
            provenance.entity = list(self.entities)
        if self.s3_log_file_url:
            provenance.extension = [Extension(url=S3_LOG_FILE_URL, valueUri=self.s3_log_file_url)]

        return provenance
