"""
Opaque FHIR resource and reference models.

The messaging layer never looks inside a resource beyond ``resourceType``;
everything else is kept as extra fields and written back unchanged.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Resource(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    resource_type: str
    id: Optional[str] = None


class Reference(BaseModel):
    model_config = ConfigDict(extra="allow")

    reference: Optional[str] = None
    type: Optional[str] = None
    display: Optional[str] = None
