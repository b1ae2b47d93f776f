# ============================================================================
# src/clinical_inference/fhir_utils/device.py
# ============================================================================
"""
Device resource describing the AI model that produced an inference.
"""

from decimal import Decimal
from typing import List, Optional, TypeVar

from fhir.resources.codeableconcept import CodeableConcept
from fhir.resources.coding import Coding
from fhir.resources.device import Device, DeviceName, DeviceProperty, DeviceVersion
from fhir.resources.identifier import Identifier
from fhir.resources.quantity import Quantity

from ..constants import SNOMED_CODES
from ..constants.coding_systems import UCUM_SYSTEM
from ..utils.exceptions import InvalidArgumentError
from .base import AiResourceBuilder, is_blank
from .coding import create_snomed_concept

# Caller name types -> FHIR R5 device-nametype codes
DEVICE_NAME_TYPES = {
    "registered": "registered-name",
    "manufacturer": "registered-name",
    "model": "registered-name",
    "user-friendly": "user-friendly-name",
    "patient-reported": "patient-reported-name",
}


AiDeviceT = TypeVar("AiDeviceT", bound="AiDeviceBuilder")


class AiDeviceBuilder(AiResourceBuilder):

    def __init__(self, configuration=None):
        super().__init__(configuration)
        self.model_name: Optional[str] = None
        self.name_type: Optional[str] = None
        self.manufacturer: Optional[str] = None
        self.versions: List[str] = []
        self.properties: List[DeviceProperty] = []

    def with_model_name(self: AiDeviceT, name: str, name_type: Optional[str] = None) -> AiDeviceT:
        if is_blank(name):
            raise InvalidArgumentError("Model name cannot be empty")
        self.model_name = name
        self.name_type = name_type
        return self

    def with_manufacturer(self: AiDeviceT, manufacturer: str) -> AiDeviceT:
        if is_blank(manufacturer):
            raise InvalidArgumentError("Manufacturer cannot be empty")
        self.manufacturer = manufacturer
        return self

    def with_version(self: AiDeviceT, version: str) -> AiDeviceT:
        if not is_blank(version):
            self.versions.append(version)
        return self

    def add_property(self: AiDeviceT, name: str, value, unit: Optional[str] = None) -> AiDeviceT:
        """
        Add a quantitative property, e.g. ("accuracy", 0.92, "1").

        Args:
            name: Property name
            value: Quantity, or a number together with its UCUM unit
            unit: Unit when value is a number
        """
        if is_blank(name):
            raise InvalidArgumentError("Property name cannot be empty")
        if value is None:
            raise InvalidArgumentError("Property value cannot be None")

        if not isinstance(value, Quantity):
            if is_blank(unit):
                raise InvalidArgumentError("Unit cannot be empty")
            value = Quantity(value=Decimal(str(value)), unit=unit, system=UCUM_SYSTEM, code=unit)

        self.properties.append(DeviceProperty(
            type=CodeableConcept(coding=[Coding(display=name)], text=name),
            valueQuantity=value
        ))
        return self

    def _identifiers(self) -> List[Identifier]:
        identifiers = []
        if not is_blank(self.configuration.DEFAULT_MODEL_VERSION):
            identifiers.append(Identifier(
                system=self.configuration.MODEL_SYSTEM,
                value=self.configuration.DEFAULT_MODEL_VERSION
            ))
        if not is_blank(self.inference_id):
            identifiers.append(Identifier(
                system=self.configuration.INFERENCE_SYSTEM,
                value=self.inference_id
            ))
        return identifiers

    def _build_core(self) -> Device:
        device = Device(
            status="active",
            type=[create_snomed_concept(SNOMED_CODES["AI_ALGORITHM"], "Artificial intelligence algorithm")],
            identifier=self._identifiers() or None
        )

        if self.model_name:
            device.displayName = self.model_name
            device.name = [
                DeviceName(
                    value=self.model_name,
                    type=DEVICE_NAME_TYPES.get(self.name_type or "model", "registered-name")
                )
            ]
        if self.manufacturer:
            device.manufacturer = self.manufacturer
        if self.versions:
            device.version = [DeviceVersion(value=v) for v in self.versions]
        if self.properties:
            device.property = list(self.properties)

        return device
