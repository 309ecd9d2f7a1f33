import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from webhook_engine.errors import PayloadError
from webhook_engine.verification import VerifiedEvent


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    created: int | None = None
    data: dict[str, Any]


def validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    # input values are left out so payload contents never reach the response
    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


def parse(verified: VerifiedEvent, model: type[BaseEvent] = BaseEvent) -> BaseEvent:
    try:
        document = json.loads(verified.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise PayloadError("Webhook body is not valid JSON") from None
    if not isinstance(document, dict):
        raise PayloadError("Webhook body must be a JSON object")
    try:
        return model.model_validate(document)
    except ValidationError as exc:
        raise PayloadError("Webhook envelope is invalid", details=validation_details(exc)) from None
