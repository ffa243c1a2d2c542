"""
Envelope construction and parsing.

Requests and responses share no type tag on the wire: a message is a response
if and only if its text mentions ``"responseToMessageId"``.
"""

import json
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError

from smart_web_messaging.errors import MalformedEnvelopeError
from smart_web_messaging.models.envelope import (
    MESSAGING_HANDLE,
    SmartMessageRequest,
    SmartMessageResponse,
)
from smart_web_messaging.models.events import InboundMessageType, OutboundMessageType
from smart_web_messaging.models.payload import (
    FormSubmit,
    LaunchContext,
    RequestPayload,
    SdcConfigure,
    SdcConfigureContext,
    SdcDisplayQuestionnaire,
    SdcDisplayQuestionnaireContext,
)
from smart_web_messaging.models.resource import Reference
from smart_web_messaging.resources import JsonResourceCodec, ResourceCodec

SmartMessage = Union[SmartMessageRequest, SmartMessageResponse]

RESPONSE_MARKER = '"responseToMessageId"'
MESSAGE_ID_PATTERN = re.compile(r'"messageId"\s*:\s*"([^"]+)"', re.IGNORECASE)
MESSAGE_TYPE_PATTERN = re.compile(r'"messageType"\s*:\s*"([^"]+)"', re.IGNORECASE)


def is_response(raw: str) -> bool:
    return RESPONSE_MARKER in raw


def get_message_id_from_json(raw: str) -> Optional[str]:
    """Best-effort messageId lookup for text that may not even be JSON."""
    match = MESSAGE_ID_PATTERN.search(raw)
    return match.group(1) if match else None


def get_message_type_from_json(raw: str) -> str:
    match = MESSAGE_TYPE_PATTERN.search(raw)
    if match:
        return match.group(1)
    return "response" if is_response(raw) else "unknown"


def parse_message(raw: str) -> SmartMessage:
    """Parse an inbound message. Raises MalformedEnvelopeError if invalid."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        raise MalformedEnvelopeError(f"Message must be a JSON object, got {type(data).__name__}")

    model = SmartMessageResponse if is_response(raw) else SmartMessageRequest
    try:
        return model.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise MalformedEnvelopeError(
            f"Invalid {model.__name__}: {', '.join(missing)}", details={"errors": e.errors(include_url=False)},
        )


def serialize_response(response: SmartMessageResponse) -> str:
    node: dict[str, Any] = {
        "messageId": response.message_id,
        "responseToMessageId": response.response_to_message_id,
        "additionalResponsesExpected": response.additional_responses_expected,
    }
    if response.payload is not None:
        node["payload"] = response.payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(node)


class PayloadCodec:
    """Typed request payloads <-> wire dicts; embedded resources go through the resource codec."""

    def __init__(self, resource_codec: Optional[ResourceCodec] = None):
        self.resource_codec: ResourceCodec = resource_codec or JsonResourceCodec()

    # -- outbound --

    def serialize_request(self, message_id: str, message_type: str, payload: Optional[RequestPayload]) -> str:
        return json.dumps({
            "messageId": message_id,
            "messagingHandle": MESSAGING_HANDLE,
            "messageType": message_type,
            "payload": self.encode_payload(payload),
        })

    def encode_payload(self, payload: Optional[RequestPayload]) -> dict[str, Any]:
        if payload is None:
            return {}
        node = payload.extra_fields
        if isinstance(payload, SdcDisplayQuestionnaire):
            node.update(self._encode_display_questionnaire(payload))
        elif isinstance(payload, SdcConfigureContext):
            node.update(self._encode_context(payload))
        elif isinstance(payload, FormSubmit):
            node["response"] = self.resource_codec.encode(payload.response)
            if payload.outcome is not None:
                node["outcome"] = self.resource_codec.encode(payload.outcome)
        else:
            node.update(payload.model_dump(mode="json", by_alias=True, exclude_none=True))
        return node

    def encode_reference(self, reference: Any) -> dict[str, Any]:
        if isinstance(reference, str):
            return {"reference": reference}
        if isinstance(reference, BaseModel):
            return reference.model_dump(mode="json", exclude_none=True)
        return dict(reference)

    def encode_launch_context(self, entry: LaunchContext) -> dict[str, Any]:
        node: dict[str, Any] = dict(entry.model_extra or {})
        node["name"] = entry.name
        if entry.content_reference is not None:
            node["contentReference"] = self.encode_reference(entry.content_reference)
        if entry.content_resource is not None:
            node["contentResource"] = self.resource_codec.encode(entry.content_resource)
        return node

    def _encode_context(self, context: Union[SdcConfigureContext, SdcDisplayQuestionnaireContext]) -> dict[str, Any]:
        node: dict[str, Any] = {}
        for key in ("subject", "author", "encounter"):
            value = getattr(context, key)
            if value is not None:
                node[key] = self.encode_reference(value)
        if context.launch_context:
            node["launchContext"] = [self.encode_launch_context(lc) for lc in context.launch_context]
        return node

    def _encode_display_questionnaire(self, payload: SdcDisplayQuestionnaire) -> dict[str, Any]:
        node: dict[str, Any] = {}
        questionnaire = payload.questionnaire
        if isinstance(questionnaire, str):
            node["questionnaire"] = questionnaire
        elif isinstance(questionnaire, Reference):
            node["questionnaire"] = self.encode_reference(questionnaire)
        elif questionnaire is not None:
            node["questionnaire"] = self.resource_codec.encode(questionnaire)

        if payload.questionnaire_response is not None:
            node["questionnaireResponse"] = self.resource_codec.encode(payload.questionnaire_response)
        if payload.context is not None:
            context = dict(payload.context.model_extra or {})
            context.update(self._encode_context(payload.context))
            node["context"] = context
        return node

    # -- inbound --

    def decode_payload(self, message_type: str, data: Optional[dict[str, Any]]) -> RequestPayload:
        data = dict(data or {})
        if message_type == InboundMessageType.FORM_SUBMITTED:
            return self._decode_form_submit(data)
        if message_type == OutboundMessageType.SDC_CONFIGURE:
            return SdcConfigure.model_validate(data)
        if message_type == OutboundMessageType.SDC_CONFIGURE_CONTEXT:
            return SdcConfigureContext(**self._decode_context(data))
        if message_type == OutboundMessageType.SDC_DISPLAY_QUESTIONNAIRE:
            return self._decode_display_questionnaire(data)
        return RequestPayload(**data)

    def decode_resource(self, data: Any, expected_kind: Optional[str] = None) -> Any:
        return self.resource_codec.decode(data, expected_kind)

    def _decode_form_submit(self, data: dict[str, Any]) -> FormSubmit:
        response = data.pop("response", None)
        if response is None:
            raise MalformedEnvelopeError("response is required in payload")
        outcome = data.pop("outcome", None)
        return FormSubmit(
            response=self.decode_resource(response, "QuestionnaireResponse"),
            outcome=self.decode_resource(outcome, "OperationOutcome") if outcome is not None else None,
            **data,
        )

    def _decode_launch_context(self, data: dict[str, Any]) -> LaunchContext:
        data = dict(data)
        resource = data.pop("contentResource", None)
        if resource is not None:
            data["contentResource"] = self.decode_resource(resource)
        return LaunchContext.model_validate(data)

    def _decode_context(self, data: dict[str, Any]) -> dict[str, Any]:
        fields = dict(data)
        entries = fields.pop("launchContext", None) or []
        fields["launchContext"] = [self._decode_launch_context(e) for e in entries]
        return fields

    def _decode_display_questionnaire(self, data: dict[str, Any]) -> SdcDisplayQuestionnaire:
        questionnaire = data.pop("questionnaire", None)
        if isinstance(questionnaire, dict):
            if "resourceType" in questionnaire:
                questionnaire = self.decode_resource(questionnaire, "Questionnaire")
            else:
                questionnaire = Reference.model_validate(questionnaire)
        questionnaire_response = data.pop("questionnaireResponse", None)
        if questionnaire_response is not None:
            questionnaire_response = self.decode_resource(questionnaire_response, "QuestionnaireResponse")
        context = data.pop("context", None)
        return SdcDisplayQuestionnaire(
            questionnaire=questionnaire,
            questionnaire_response=questionnaire_response,
            context=SdcDisplayQuestionnaireContext(**self._decode_context(context)) if context else None,
            **data,
        )
