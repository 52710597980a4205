"""
Engine output types.

A ``ConversationStep`` is what a handler returns: the next step, the text to
send, at most one interactive presentation and the partial session update
the orchestrator persists through the session store.
"""
from dataclasses import dataclass, field
from typing import Any

from app.state_machine.steps import Step


@dataclass
class Option:
    id: str
    title: str
    description: str = ""

    def to_payload(self) -> dict[str, str]:
        payload = {"id": self.id, "title": self.title}
        if self.description:
            payload["description"] = self.description
        return payload


@dataclass
class OptionList:
    """Z-API ``optionList`` (a single-section list picker)"""

    title: str
    button_label: str
    options: list[Option]

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "buttonLabel": self.button_label,
            "options": [option.to_payload() for option in self.options],
        }


@dataclass
class Button:
    id: str
    label: str

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "label": self.label}


@dataclass
class ListSection:
    title: str
    rows: list[Option]

    def to_payload(self) -> dict[str, Any]:
        return {"title": self.title, "rows": [row.to_payload() for row in self.rows]}


@dataclass
class ListMessage:
    """Z-API ``list`` with sections"""

    button_text: str
    sections: list[ListSection]

    def to_payload(self) -> dict[str, Any]:
        return {
            "buttonText": self.button_text,
            "sections": [section.to_payload() for section in self.sections],
        }


@dataclass
class ConversationStep:
    step: Step
    message: str
    buttons: list[Button] | None = None
    list: ListMessage | None = None
    option_list: OptionList | None = None
    data_update: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        presentations = [p for p in (self.buttons, self.list, self.option_list) if p]
        if len(presentations) > 1:
            raise ValueError("ConversationStep accepts at most one of buttons, list, option_list")

    @property
    def shape(self) -> str:
        """Wire shape the dispatcher will use"""
        if self.option_list:
            return "option_list"
        if self.list:
            return "list"
        if self.buttons:
            return "buttons"
        return "text"
