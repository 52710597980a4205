"""
Inbound Z-API webhook payload
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# tipos de evento que carregam mensagem do usuário
USER_MESSAGE_TYPES = frozenset({"text", "ReceivedCallback"})


class TextContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: str | None = None


class ButtonResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    button_id: str | None = Field(default=None, alias="buttonId")


class ListResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    selected_row_id: str | None = Field(default=None, alias="selectedRowId")


class InboundMessage(BaseModel):
    """One gateway event; unknown fields (status, senderName...) are kept"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    phone: str | None = None
    type: str | None = None
    from_me: bool = Field(default=False, alias="fromMe")
    message_id: str | None = Field(default=None, alias="messageId")
    id: str | None = None
    message: Any = None
    text: TextContent | None = None
    button_response: ButtonResponse | None = Field(default=None, alias="buttonResponseMessage")
    list_response: ListResponse | None = Field(default=None, alias="listResponseMessage")

    @property
    def delivery_id(self) -> str | None:
        return self.message_id or self.id

    @property
    def content(self) -> str:
        """
        The user's input, by precedence: list row id, button id, text body,
        ``message.conversation``, then ``message`` itself when it is a string.
        """
        if self.list_response and self.list_response.selected_row_id:
            return self.list_response.selected_row_id
        if self.button_response and self.button_response.button_id:
            return self.button_response.button_id
        if self.text and self.text.message:
            return self.text.message
        if isinstance(self.message, dict):
            conversation = self.message.get("conversation")
            if isinstance(conversation, str) and conversation:
                return conversation
        if isinstance(self.message, str):
            return self.message
        return ""

    @property
    def is_user_message(self) -> bool:
        if self.list_response is not None or self.button_response is not None:
            return True
        if self.type == "text":
            return bool(self.message or self.text)
        return self.type in USER_MESSAGE_TYPES
