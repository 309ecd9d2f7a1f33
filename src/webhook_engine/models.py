from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReceivedData(_CamelModel):
    received: bool = True
    event_id: str
    processed: bool


class WebhookReceivedResponse(_CamelModel):
    data: ReceivedData


class ErrorResponse(_CamelModel):
    code: str
    message: str
    request_id: str
    details: list[dict[str, Any]] | None = None

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
