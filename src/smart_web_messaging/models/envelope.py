"""
SMART Web Messaging envelopes.

Request:  {"messageId", "messagingHandle", "messageType", "payload"}
Response: {"messageId", "responseToMessageId", "additionalResponsesExpected", "payload"}
"""

import uuid
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from smart_web_messaging.models.payload import ErrorResponse, ResponsePayload

MESSAGING_HANDLE = "smart-web-messaging"


def new_message_id() -> str:
    return str(uuid.uuid4())


class SmartMessageBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message_id: str


class SmartMessageRequest(SmartMessageBase):
    messaging_handle: str
    message_type: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("payload", mode="before")
    @classmethod
    def _empty_payload(cls, value: Any) -> Any:
        return {} if value is None else value


class SmartMessageResponse(SmartMessageBase):
    response_to_message_id: Optional[str] = None
    additional_responses_expected: bool = False
    payload: Optional[Union[ErrorResponse, ResponsePayload]] = None

    @field_validator("payload", mode="before")
    @classmethod
    def _deduce_payload(cls, value: Any) -> Any:
        """Pick the payload class from the fields present, like the wire does."""
        if isinstance(value, dict):
            if "errorMessage" in value or "errorType" in value:
                return ErrorResponse.model_validate(value)
            return ResponsePayload.model_validate(value)
        return value

    @property
    def is_error(self) -> bool:
        return isinstance(self.payload, ErrorResponse)

    @classmethod
    def create_response(
        cls,
        response_to_message_id: Optional[str],
        payload: Optional[ResponsePayload] = None,
        additional_responses_expected: bool = False,
    ) -> "SmartMessageResponse":
        return cls(
            message_id=new_message_id(),
            response_to_message_id=response_to_message_id,
            additional_responses_expected=additional_responses_expected,
            payload=payload if payload is not None else ResponsePayload(),
        )

    @classmethod
    def create_error_response(
        cls, response_to_message_id: Optional[str], error: ErrorResponse,
    ) -> "SmartMessageResponse":
        return cls.create_response(response_to_message_id, error)
