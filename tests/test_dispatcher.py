"""
OutboundDispatcher: one gateway call per step, failures reported not raised
"""
import pytest

from app.state_machine.steps import Step
from app.state_machine.types import (
    Button,
    ConversationStep,
    ListMessage,
    ListSection,
    Option,
    OptionList,
)

PHONE = "5571999990000"

OPTIONS = OptionList(title="Menu", button_label="Ver opções", options=[Option("1", "Contratar")])
BUTTONS = [Button("sim", "Sim"), Button("nao", "Não")]
LIST = ListMessage(button_text="Itens", sections=[ListSection("Pacote", [Option("1", "Álbum", "R$ 10.00")])])


class TestShape:

    @pytest.mark.unit
    @pytest.mark.parametrize("kwargs,expected", [
        ({}, "text"),
        ({"buttons": BUTTONS}, "buttons"),
        ({"list": LIST}, "list"),
        ({"option_list": OPTIONS}, "option_list"),
    ])
    def test_shape(self, kwargs: dict, expected: str):
        assert ConversationStep(Step.MAIN_MENU, "msg", **kwargs).shape == expected

    @pytest.mark.unit
    def test_two_presentations_rejected(self):
        with pytest.raises(ValueError):
            ConversationStep(Step.MAIN_MENU, "msg", buttons=BUTTONS, option_list=OPTIONS)


class TestSend:

    @pytest.mark.unit
    async def test_option_list(self, dispatcher, fake_provider):
        assert await dispatcher.send(PHONE, ConversationStep(Step.MAIN_MENU, "Menu", option_list=OPTIONS)) is True

        kind, phone, message, payload = fake_provider.sent[0]
        assert (kind, phone, message) == ("option_list", PHONE, "Menu")
        assert payload == {"title": "Menu", "buttonLabel": "Ver opções", "options": [{"id": "1", "title": "Contratar"}]}

    @pytest.mark.unit
    async def test_list_rows_keep_description(self, dispatcher, fake_provider):
        await dispatcher.send(PHONE, ConversationStep(Step.PACKAGE_SELECTION, "Itens", list=LIST))

        kind, _, _, payload = fake_provider.sent[0]
        assert kind == "list"
        assert payload["sections"][0]["rows"] == [{"id": "1", "title": "Álbum", "description": "R$ 10.00"}]

    @pytest.mark.unit
    async def test_buttons(self, dispatcher, fake_provider):
        await dispatcher.send(PHONE, ConversationStep(Step.PACKAGE_CONFIRMATION, "Confirma?", buttons=BUTTONS))

        assert fake_provider.sent[0][3] == [{"id": "sim", "label": "Sim"}, {"id": "nao", "label": "Não"}]

    @pytest.mark.unit
    async def test_plain_text(self, dispatcher, fake_provider):
        await dispatcher.send(PHONE, ConversationStep(Step.CONTRACT_NAME, "Qual seu nome?"))

        assert fake_provider.sent == [("text", PHONE, "Qual seu nome?", None)]

    @pytest.mark.unit
    async def test_failure_returns_false(self, dispatcher, fake_provider, message_log):
        fake_provider.fail = True

        assert await dispatcher.send(PHONE, ConversationStep(Step.CONTRACT_NAME, "Qual seu nome?")) is False
        assert await message_log.recent(PHONE) == []

    @pytest.mark.unit
    async def test_success_is_logged_with_step(self, dispatcher, message_log):
        await dispatcher.send(PHONE, ConversationStep(Step.MAIN_MENU, "Menu", option_list=OPTIONS))

        [log] = await message_log.recent(PHONE)
        assert log.direction == "outgoing"
        assert log.message_type == "option_list"
        assert log.meta == {"step": "main_menu"}


class TestNotify:

    @pytest.mark.unit
    async def test_notify_sends_text(self, dispatcher, fake_provider, message_log):
        assert await dispatcher.notify(PHONE, "Sua cobrança vence amanhã", metadata={"cobrancaId": "c-1"}) is True

        assert fake_provider.sent == [("text", PHONE, "Sua cobrança vence amanhã", None)]
        [log] = await message_log.recent(PHONE)
        assert log.message_type == "notification"

    @pytest.mark.unit
    async def test_notify_failure(self, dispatcher, fake_provider):
        fake_provider.fail = True

        assert await dispatcher.notify(PHONE, "aviso") is False
