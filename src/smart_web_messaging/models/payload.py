"""
Request and response payload variants.

Every payload accepts fields it does not know about and writes them back on
serialization, so newer documents and hosts can add fields without breaking
older ones. Embedded resources are typed ``Any``: they are whatever the
configured resource codec produces.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from smart_web_messaging.models.resource import Reference

_PAYLOAD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


def _coerce_reference(value: Any) -> Any:
    if isinstance(value, str):
        return Reference(reference=value)
    return value


class RequestPayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ResponsePayload(BaseModel):
    model_config = _PAYLOAD_CONFIG

    @property
    def extra_fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ErrorResponse(ResponsePayload):
    error_message: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def from_exception(cls, error: BaseException) -> "ErrorResponse":
        error_type = getattr(error, "error_type", None) or type(error).__name__
        return cls(error_message=str(error), error_type=error_type)


class FormSubmit(RequestPayload):
    """form.submitted: ``response`` is required, ``outcome`` is optional."""
    response: Any
    outcome: Any = None


class SdcConfigure(RequestPayload):
    terminology_server: Optional[str] = None
    data_server: Optional[str] = None
    configuration: Any = None


class LaunchContext(BaseModel):
    """A named piece of launch context, given as a reference or an embedded resource."""
    model_config = _PAYLOAD_CONFIG

    name: str
    content_reference: Optional[Reference] = None
    content_resource: Any = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("LaunchContext name is required")
        return value

    @field_validator("content_reference", mode="before")
    @classmethod
    def _reference(cls, value: Any) -> Any:
        return _coerce_reference(value)


class _ContextFields(BaseModel):
    model_config = _PAYLOAD_CONFIG

    subject: Optional[Reference] = None
    author: Optional[Reference] = None
    encounter: Optional[Reference] = None
    launch_context: list[LaunchContext] = Field(default_factory=list)

    @field_validator("subject", "author", "encounter", mode="before")
    @classmethod
    def _reference(cls, value: Any) -> Any:
        return _coerce_reference(value)

    @field_validator("launch_context", mode="before")
    @classmethod
    def _launch_context(cls, value: Any) -> Any:
        return [] if value is None else value


class SdcConfigureContext(_ContextFields, RequestPayload):
    pass


class SdcDisplayQuestionnaireContext(_ContextFields):
    pass


class SdcDisplayQuestionnaire(RequestPayload):
    # Canonical URL string, Reference, or embedded Questionnaire resource.
    questionnaire: Any
    questionnaire_response: Any = None
    context: Optional[SdcDisplayQuestionnaireContext] = None


def build_launch_context(patient: Any = None, encounter: Any = None, user: Any = None) -> list[LaunchContext]:
    """Standard launch context entries for embedded patient/encounter/user resources.

    ``None`` arguments are skipped; the order is always patient, encounter, user.
    """
    entries = []
    for name, resource in (("patient", patient), ("encounter", encounter), ("user", user)):
        if resource is not None:
            entries.append(LaunchContext(name=name, content_resource=resource))
    return entries
