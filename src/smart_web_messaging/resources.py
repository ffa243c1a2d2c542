"""
Resource codec: encode/decode of embedded FHIR resources.

The handler only needs ``encode``/``decode``; plug in any FHIR model library
by implementing :class:`ResourceCodec`.
"""

from typing import Any, Optional, Protocol

from pydantic import BaseModel, ValidationError

from smart_web_messaging.errors import ResourceCodecError
from smart_web_messaging.models.resource import Resource


class ResourceCodec(Protocol):
    def encode(self, resource: Any) -> dict[str, Any]: ...

    def decode(self, data: Any, expected_kind: Optional[str] = None) -> Any: ...


class JsonResourceCodec:
    """Maps resources to and from the generic :class:`Resource` model."""

    def encode(self, resource: Any) -> dict[str, Any]:
        if isinstance(resource, BaseModel):
            return resource.model_dump(mode="json", by_alias=True, exclude_none=True)
        if isinstance(resource, dict):
            return dict(resource)
        raise ResourceCodecError(f"Cannot encode {type(resource).__name__} as a resource")

    def decode(self, data: Any, expected_kind: Optional[str] = None) -> Resource:
        if not isinstance(data, dict):
            raise ResourceCodecError(f"Resource must be a JSON object, got {type(data).__name__}")
        resource_type = data.get("resourceType")
        if not resource_type:
            raise ResourceCodecError("Resource is missing resourceType")
        if expected_kind and resource_type != expected_kind:
            raise ResourceCodecError(f"Expected {expected_kind} resource, got {resource_type}")
        try:
            return Resource.model_validate(data)
        except ValidationError as e:
            raise ResourceCodecError(f"Invalid {resource_type} resource: {e}")
