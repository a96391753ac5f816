from typing import Literal

from pydantic import BaseModel, Field

from app.gateway.types import ChatRequest, HistoryTurn, Mode, Role, Tone

# "bot" is what the mobile client calls the assistant
_ROLE_ALIASES = {"bot": Role.ASSISTANT}


class HistoryTurnIn(BaseModel):
    role: Literal["user", "assistant", "bot", "system"] | None = None
    content: str | None = None
    mode: Mode | None = None
    tone: Tone | None = None

    def to_turn(self) -> HistoryTurn:
        role = _ROLE_ALIASES.get(self.role) or Role(self.role or Role.USER)
        return HistoryTurn(content=self.content or "", role=role, mode=self.mode, tone=self.tone)


class ChatRequestIn(BaseModel):
    user_input: str = Field(alias="userInput", min_length=1)
    mode: Mode | None = None
    tone: Tone | None = None
    history: list[HistoryTurnIn] | None = None

    model_config = {"populate_by_name": True}

    def to_chat_request(self) -> ChatRequest:
        return ChatRequest(
            user_input=self.user_input,
            mode=self.mode or Mode.INFORMATIONAL,
            tone=self.tone or Tone.TRAINING,
            history=[turn.to_turn() for turn in self.history or []],
        )


class ChatResponse(BaseModel):
    content: str


class HealthResponse(BaseModel):
    status: str
    message: str
