from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _InputBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_session: str | None = Field(None, alias="userSession")

    def log_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ChatInput(_InputBase):
    type: Literal["chat"] = "chat"
    message: str | None = None
    from_: str | None = Field(None, alias="from")


class EmailInput(_InputBase):
    type: Literal["email"] = "email"
    from_: str | None = Field(None, alias="from")
    to: str | list[str] | None = None
    subject: str | None = None
    body: str | None = None
    html: str | None = None
    attachments: list[Any] = []


class WebhookInput(_InputBase):
    type: Literal["webhook"] = "webhook"
    payload: Any = None
    timestamp: str | None = None


class SlackInput(_InputBase):
    type: Literal["slack"] = "slack"
    from_: str | None = Field(None, alias="from")
    to: str | None = None
    message: str | None = None


class SmsInput(_InputBase):
    type: Literal["sms"] = "sms"
    from_: str | None = Field(None, alias="from")
    to: str | None = None
    message: str | None = None


AgentInput = Annotated[
    Union[ChatInput, EmailInput, WebhookInput, SlackInput, SmsInput],
    Field(discriminator="type"),
]

_agent_input_adapter: TypeAdapter = TypeAdapter(AgentInput)


def parse_agent_input(data: dict[str, Any]) -> ChatInput | EmailInput | WebhookInput | SlackInput | SmsInput:
    return _agent_input_adapter.validate_python(data)


class AgentConfig(BaseModel):
    """The `agents.config` JSON blob. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow", protected_namespaces=())

    model: str = "gemini-2.0-flash"
    tone: str = "professional"
    instructions: str = ""
    integration_ids: list[str] | None = None
    lead_collection: dict[str, Any] | None = None

    @classmethod
    def from_row(cls, config: dict[str, Any] | None) -> "AgentConfig":
        # null values in stored JSON fall back to defaults
        return cls.model_validate({k: v for k, v in (config or {}).items() if v is not None})


class AgentOutput(BaseModel):
    message: str
    actions: list[dict[str, Any]] = []
    sources: list[str] | None = None
    metadata: dict[str, Any] | None = None


class ChatRequest(BaseModel):
    message: str
    session_id: str | None = None
    history: list[dict[str, str]] = []


class ChatResponse(BaseModel):
    message: str
    session_id: str
    sources: list[str] | None = None
