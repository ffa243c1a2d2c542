"""
FormFiller configuration.

Either point at your own page with ``target_url`` or let the library render
a default page around ``sdc_endpoint_address``.
"""

import json
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, model_validator

from smart_web_messaging.page import DEFAULT_SDK_URL, create_page

DEFAULT_HANDSHAKE_TIMEOUT_S = 30.0


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class FormFillerConfig(BaseModel):
    target_url: Optional[str] = None
    sdc_endpoint_address: Optional[str] = None
    data_endpoint_address: Optional[str] = None
    sdk_url: str = DEFAULT_SDK_URL
    handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT_S

    @model_validator(mode="after")
    def _check_target(self) -> "FormFillerConfig":
        if _blank(self.target_url) and _blank(self.sdc_endpoint_address):
            raise ValueError("Either target_url or sdc_endpoint_address is required")
        if self.handshake_timeout <= 0:
            raise ValueError("handshake_timeout must be positive")
        return self

    def resolve_url(self) -> str:
        """URL to load: the target URL, or the generated default page."""
        if not _blank(self.target_url):
            return self.target_url  # type: ignore[return-value]
        return create_page(self.sdc_endpoint_address, self.data_endpoint_address, self.sdk_url)  # type: ignore[arg-type]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FormFillerConfig":
        return cls.model_validate(json.loads(Path(path).read_text()))
