"""
Conversation Engine - computes the next step for an inbound message.

Each ``Step`` maps to one handler ``(text, session) -> ConversationStep | None``.
Handlers never persist anything: the partial session update travels in
``ConversationStep.data_update`` and the caller applies it through the
session store. ``None`` means "no reply, no state change".
"""
import re
import unicodedata
from datetime import date, timedelta
from typing import Awaitable, Callable

from app.core.config import settings
from app.core.exceptions import ExternalServiceException, MissingSessionDataError
from app.core.logging import get_logger
from app.core.validation import (
    AddressValidator,
    DocumentValidator,
    EmailValidator,
    NameValidator,
    PhoneNumberValidator,
    PostalCodeValidator,
    StateValidator,
    only_digits,
)
from app.domain.services.partner.base import ExternalDataGateway
from app.domain.services.partner.models import CatalogItem, ChargeSummary, NewCustomer
from app.domain.services.payment.base import PaymentBackend, format_package_description
from app.domain.session import Session
from app.state_machine import messages
from app.state_machine.steps import Step, is_valid_transition
from app.state_machine.types import ConversationStep

logger = get_logger(__name__)

Handler = Callable[[str, Session], Awaitable[ConversationStep | None]]

# ids do menu principal e palavras-chave canônicas
MAIN_MENU_ROUTES = {
    "1": "contract", "contract": "contract",
    "2": "billing", "billing": "billing",
    "3": "editing", "editing": "editing",
    "4": "admin", "admin": "admin",
    "5": "quote", "quote": "quote",
    "6": "meeting", "meeting": "meeting",
    "7": "support", "support": "support",
}
SUPPORT_WORDS = re.compile(r"\b(atendente|suporte|support)\b")

CONFIRM_WORDS = frozenset({"sim", "confirmo", "confirmar"})
EDIT_WORDS = frozenset({"nao", "não", "alterar", "editar"})

# parseInt: dígitos iniciais, o resto do token é ignorado
_LEADING_INT = re.compile(r"^[+-]?\d+")


def normalize_input(text: str | None) -> str:
    return unicodedata.normalize("NFC", text or "").strip()


def parse_leading_int(token: str) -> int | None:
    match = _LEADING_INT.match(token.strip())
    return int(match.group()) if match else None


def parse_selection(text: str) -> list[int]:
    """"1, 3,5" -> [1, 3, 5]; tokens without a leading number are skipped"""
    compact = re.sub(r"\s", "", text)
    numbers = (parse_leading_int(token) for token in compact.split(","))
    return [n for n in numbers if n is not None]


class ConversationEngine:

    def __init__(
        self,
        gateway: ExternalDataGateway,
        payments: PaymentBackend,
        *,
        max_class_code_attempts: int | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.gateway = gateway
        self.payments = payments
        self.max_class_code_attempts = max_class_code_attempts or settings.MAX_CLASS_CODE_ATTEMPTS
        self._today = today
        self._handlers: dict[Step, Handler] = {
            Step.WELCOME: self._handle_welcome,
            Step.MAIN_MENU: self._handle_main_menu,
            Step.SUPPORT: self._handle_support,

            # Identificação
            Step.CONTRACT_CPF: self._handle_contract_cpf,
            Step.EXISTING_CLIENT_MENU: self._handle_existing_client_menu,
            Step.CONTRACT_EXISTING_CLIENT: self._handle_legacy_existing_client,
            Step.CONTRACT_CLASS_CODE: self._handle_class_code,

            # Cadastro
            Step.CONTRACT_NAME: self._handle_name,
            Step.CONTRACT_EMAIL: self._handle_email,
            Step.CONTRACT_CEP: self._handle_cep,
            Step.CONTRACT_ADDRESS: self._handle_address,
            Step.CONTRACT_NEIGHBORHOOD: self._handle_neighborhood,
            Step.CONTRACT_CITY: self._handle_city,
            Step.CONTRACT_STATE: self._handle_state,
            Step.CONTRACT_CONFIRMED: self._handle_contract_confirmed,

            # Pacote e pagamento
            Step.PACKAGE_SELECTION: self._handle_package_selection,
            Step.PACKAGE_CONFIRMATION: self._handle_package_confirmation,
            Step.PAYMENT_METHOD: self._handle_payment_method,
            Step.CARNE_PARCELAS: self._handle_carne_parcelas,

            Step.BILLING_CPF: self._handle_billing_cpf,
        }

    @property
    def registered_steps(self) -> set[Step]:
        return set(self._handlers)

    async def process(self, text: str, session: Session) -> ConversationStep | None:
        step = Step.parse(session.current_step)
        handler = self._handlers.get(step) if step else None
        if handler is None:
            logger.info(
                "No handler for current step, ignoring message",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), "step": session.current_step},
            )
            return None

        try:
            result = await handler(normalize_input(text), session)
        except MissingSessionDataError as e:
            logger.warning(
                "Session is missing data for this step",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), **e.details},
            )
            return self._to_menu(messages.DATA_MISSING)
        except ExternalServiceException as e:
            logger.error(
                "External service failed during turn",
                extra_data={
                    "phone": PhoneNumberValidator.mask(session.phone),
                    "step": step.value,
                    "service": e.service_name,
                    "error_code": e.error_code.value,
                    "error": e.message,
                },
            )
            return self._to_menu(messages.SERVICE_UNAVAILABLE)

        if result is not None:
            if not is_valid_transition(step, result.step):
                logger.warning(
                    "Unexpected step transition",
                    extra_data={"from_step": step.value, "to_step": result.step.value},
                )
            logger.info(
                "Step computed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(session.phone),
                    "from_step": step.value,
                    "to_step": result.step.value,
                    "shape": result.shape,
                },
            )
        return result

    # ==================== Helpers ====================

    @staticmethod
    def _to_menu(message: str, data_update: dict | None = None) -> ConversationStep:
        return ConversationStep(
            step=Step.MAIN_MENU,
            message=message,
            option_list=messages.main_menu(),
            data_update=data_update or {},
        )

    def _welcome(self) -> ConversationStep:
        return self._to_menu(messages.WELCOME)

    def _support_handoff(self, data_update: dict | None = None) -> ConversationStep:
        return ConversationStep(
            step=Step.SUPPORT,
            message=messages.SUPPORT_HANDOFF,
            data_update=data_update or {},
        )

    # ==================== Entry & menus ====================

    async def _handle_welcome(self, text: str, session: Session) -> ConversationStep | None:
        return self._welcome()

    async def _handle_main_menu(self, text: str, session: Session) -> ConversationStep | None:
        """Strict: only menu ids and canonical keywords; option 7 also by word"""
        choice = text.lower()
        route = MAIN_MENU_ROUTES.get(choice)
        if route is None and SUPPORT_WORDS.search(choice):
            route = "support"

        if route == "contract":
            return ConversationStep(
                step=Step.CONTRACT_CPF,
                message=messages.CONTRACT_CPF_PROMPT,
                data_update={"tentativasTurma": 0},
            )
        if route == "billing":
            return ConversationStep(step=Step.BILLING_CPF, message=messages.BILLING_CPF_PROMPT)
        if route in messages.DEPARTMENT_HANDOFFS:
            return self._to_menu(messages.DEPARTMENT_HANDOFFS[route])
        if route == "support":
            return self._support_handoff()
        return None

    async def _handle_support(self, text: str, session: Session) -> ConversationStep | None:
        return self._to_menu(messages.SUPPORT_FOLLOW_UP)

    async def _handle_existing_client_menu(self, text: str, session: Session) -> ConversationStep | None:
        choice = text.lower()
        if choice in ("2", "billing"):
            return ConversationStep(step=Step.BILLING_CPF, message=messages.BILLING_CPF_PROMPT)
        if choice == "7":
            return self._to_menu(messages.SUPPORT_FOLLOW_UP)
        if choice == "menu":
            return self._welcome()
        return None

    async def _handle_legacy_existing_client(self, text: str, session: Session) -> ConversationStep | None:
        if text == "1":
            return ConversationStep(step=Step.CONTRACT_CLASS_CODE, message=messages.LEGACY_JOIN_COHORT)
        if text == "2":
            return self._to_menu(messages.LEGACY_CUSTOMER_MENU)
        return ConversationStep(
            step=Step.CONTRACT_EXISTING_CLIENT,
            message=messages.LEGACY_CHOOSE_OPTION,
            option_list=messages.legacy_existing_client_menu(),
        )

    # ==================== Identification ====================

    async def _handle_contract_cpf(self, text: str, session: Session) -> ConversationStep | None:
        digits = only_digits(text)
        if not digits:
            return ConversationStep(step=Step.CONTRACT_CPF, message=messages.CPF_EMPTY)
        if len(digits) != DocumentValidator.CPF_LENGTH:
            return ConversationStep(step=Step.CONTRACT_CPF, message=messages.cpf_wrong_length(len(digits)))
        if not DocumentValidator.is_valid_cpf(digits):
            return ConversationStep(step=Step.CONTRACT_CPF, message=messages.CPF_INVALID)

        update = session.data.cliente_update(cpf=digits)
        customer = await self.gateway.find_customer_by_document(digits)
        if customer is not None:
            return ConversationStep(
                step=Step.EXISTING_CLIENT_MENU,
                message=messages.existing_customer(customer),
                option_list=messages.existing_client_menu(),
                data_update=update,
            )
        return ConversationStep(
            step=Step.CONTRACT_CLASS_CODE,
            message=messages.CPF_OK_NEW_CUSTOMER,
            data_update=update,
        )

    async def _handle_class_code(self, text: str, session: Session) -> ConversationStep | None:
        code = text.strip()
        if not code:
            return ConversationStep(step=Step.CONTRACT_CLASS_CODE, message=messages.CLASS_CODE_EMPTY)

        attempts = session.data.tentativas_turma
        if attempts >= self.max_class_code_attempts:
            # limite já atingido: não consulta o backend de novo
            return self._support_handoff()

        cohort = await self.gateway.find_cohort_by_code(code)
        if cohort is not None:
            return ConversationStep(
                step=Step.CONTRACT_NAME,
                message=messages.cohort_found(cohort),
                data_update={**session.data.cliente_update(turmaId=cohort.id), "tentativasTurma": 0},
            )

        attempts += 1
        logger.info(
            "Class code not found",
            extra_data={
                "phone": PhoneNumberValidator.mask(session.phone),
                "attempt": attempts,
                "max_attempts": self.max_class_code_attempts,
            },
        )
        if attempts >= self.max_class_code_attempts:
            return self._support_handoff({"tentativasTurma": attempts})
        return ConversationStep(
            step=Step.CONTRACT_CLASS_CODE,
            message=messages.CLASS_CODE_NOT_FOUND,
            data_update={"tentativasTurma": attempts},
        )

    # ==================== Customer record ====================

    async def _handle_name(self, text: str, session: Session) -> ConversationStep | None:
        name = NameValidator.normalize(text)
        if name is None:
            return ConversationStep(step=Step.CONTRACT_NAME, message=messages.NAME_INVALID)
        return ConversationStep(
            step=Step.CONTRACT_EMAIL,
            message=messages.name_saved(name),
            data_update=session.data.cliente_update(nomeCompleto=name),
        )

    async def _handle_email(self, text: str, session: Session) -> ConversationStep | None:
        email = EmailValidator.normalize(text)
        if email is None:
            return ConversationStep(step=Step.CONTRACT_EMAIL, message=messages.EMAIL_INVALID)
        return ConversationStep(
            step=Step.CONTRACT_CEP,
            message=messages.email_saved(email),
            data_update=session.data.cliente_update(email=email),
        )

    async def _handle_cep(self, text: str, session: Session) -> ConversationStep | None:
        cep = PostalCodeValidator.normalize(text)
        if cep is None:
            return ConversationStep(
                step=Step.CONTRACT_CEP,
                message=messages.cep_wrong_length(len(only_digits(text))),
            )
        return ConversationStep(
            step=Step.CONTRACT_ADDRESS,
            message=messages.cep_saved(cep),
            data_update=session.data.cliente_update(cep=cep),
        )

    async def _handle_address(self, text: str, session: Session) -> ConversationStep | None:
        address = AddressValidator.normalize(text)
        if address is None:
            return ConversationStep(step=Step.CONTRACT_ADDRESS, message=messages.ADDRESS_INVALID)
        return ConversationStep(
            step=Step.CONTRACT_NEIGHBORHOOD,
            message=messages.address_saved(address),
            data_update=session.data.cliente_update(endereco=address),
        )

    async def _handle_neighborhood(self, text: str, session: Session) -> ConversationStep | None:
        neighborhood = NameValidator.normalize(text)
        if neighborhood is None:
            return ConversationStep(step=Step.CONTRACT_NEIGHBORHOOD, message=messages.NEIGHBORHOOD_INVALID)
        return ConversationStep(
            step=Step.CONTRACT_CITY,
            message=messages.neighborhood_saved(neighborhood),
            data_update=session.data.cliente_update(bairro=neighborhood),
        )

    async def _handle_city(self, text: str, session: Session) -> ConversationStep | None:
        city = NameValidator.normalize(text)
        if city is None:
            return ConversationStep(step=Step.CONTRACT_CITY, message=messages.CITY_INVALID)
        return ConversationStep(
            step=Step.CONTRACT_STATE,
            message=messages.city_saved(city),
            option_list=messages.state_menu(),
            data_update=session.data.cliente_update(cidade=city),
        )

    async def _handle_state(self, text: str, session: Session) -> ConversationStep | None:
        uf = StateValidator.normalize(text)
        if uf is None:
            return ConversationStep(
                step=Step.CONTRACT_STATE,
                message=messages.STATE_INVALID,
                option_list=messages.state_menu(),
            )
        return await self._create_customer(session, uf)

    async def _create_customer(self, session: Session, uf: str) -> ConversationStep:
        cliente = session.data.cliente
        if not cliente.cpf or cliente.turmaId is None or not cliente.nomeCompleto:
            return self._to_menu(messages.CUSTOMER_DATA_MISSING)

        street, number = AddressValidator.split(cliente.endereco or "")
        new_customer = NewCustomer(
            cpf=cliente.cpf,
            telefone=session.phone,
            cep=cliente.cep or "",
            rua=street,
            numero=number,
            bairro=cliente.bairro or "",
            cidade=cliente.cidade or "",
            uf=uf,
            email=cliente.email or "",
            nomeCompleto=cliente.nomeCompleto,
            turmaId=cliente.turmaId,
        )
        try:
            created = await self.gateway.create_customer(new_customer)
        except ExternalServiceException as e:
            logger.error(
                "Customer creation failed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(session.phone),
                    "cpf": DocumentValidator.mask(cliente.cpf),
                    "error": e.message,
                },
            )
            return self._to_menu(messages.CUSTOMER_CREATE_FAILED)

        customer_update = session.data.cliente_update(uf=uf, id=created.id)
        try:
            catalog = await self._catalog_step(session, cliente.turmaId)
        except ExternalServiceException as e:
            # o cliente já existe no backend: o id precisa ficar salvo mesmo assim
            logger.error(
                "Catalog unavailable after customer creation",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), "error": e.message},
            )
            return self._to_menu(messages.SERVICE_UNAVAILABLE, customer_update)

        catalog.data_update = {**customer_update, **catalog.data_update}
        return catalog

    # ==================== Package ====================

    async def _catalog_step(self, session: Session, cohort_id: int | str | None) -> ConversationStep:
        if cohort_id is None:
            return self._to_menu(messages.COHORT_MISSING)

        pricing = await self.gateway.get_cohort_pricing(cohort_id)
        if pricing is None:
            return self._to_menu(messages.PRICING_MISSING)

        items = await self.gateway.get_custom_items(cohort_id)
        if not items:
            return self._to_menu(messages.CATALOG_EMPTY)

        return ConversationStep(
            step=Step.PACKAGE_SELECTION,
            message=messages.catalog(items),
            data_update=session.data.pacote_update(
                configuracaoTurmaId=pricing.id,
                itensSelecionados=[],
                valorTotal=None,
                metodoPagamento=None,
                parcelas=None,
            ),
        )

    async def _handle_contract_confirmed(self, text: str, session: Session) -> ConversationStep | None:
        return await self._catalog_step(session, session.data.cliente.turmaId)

    def _require_package_context(self, step: Step, session: Session) -> int | str:
        """Cohort id of a session that has been through the catalog"""
        cohort_id = session.data.cliente.turmaId
        if cohort_id is None:
            raise MissingSessionDataError(step.value, "clienteData.turmaId")
        if session.data.pacote.configuracaoTurmaId is None:
            raise MissingSessionDataError(step.value, "pacoteData.configuracaoTurmaId")
        return cohort_id

    async def _handle_package_selection(self, text: str, session: Session) -> ConversationStep | None:
        cohort_id = self._require_package_context(Step.PACKAGE_SELECTION, session)

        items = await self.gateway.get_custom_items(cohort_id)
        if not items:
            return self._to_menu(messages.CATALOG_EMPTY)

        numbers = parse_selection(text)
        if not numbers:
            return ConversationStep(step=Step.PACKAGE_SELECTION, message=messages.SELECTION_EMPTY)

        invalid = [n for n in numbers if n < 1 or n > len(items)]
        if invalid:
            return ConversationStep(
                step=Step.PACKAGE_SELECTION,
                message=messages.selection_out_of_range(invalid, len(items)),
            )

        selected = [items[n - 1] for n in numbers]
        total = round(sum(item.valor or 0 for item in selected), 2)
        return ConversationStep(
            step=Step.PACKAGE_CONFIRMATION,
            message=messages.package_summary(selected, total),
            option_list=messages.package_confirmation_menu(),
            data_update=session.data.pacote_update(
                itensSelecionados=[item.model_dump() for item in selected],
                valorTotal=total,
            ),
        )

    async def _handle_package_confirmation(self, text: str, session: Session) -> ConversationStep | None:
        choice = text.lower()
        if choice in CONFIRM_WORDS:
            return await self._payment_method_step(session)
        if choice in EDIT_WORDS:
            return await self._catalog_step(session, session.data.cliente.turmaId)

        pacote = session.data.pacote
        if not pacote.itensSelecionados:
            raise MissingSessionDataError(Step.PACKAGE_CONFIRMATION.value, "pacoteData.itensSelecionados")
        selected = [CatalogItem.model_validate(item) for item in pacote.itensSelecionados]
        total = pacote.valorTotal if pacote.valorTotal is not None else sum(i.valor or 0 for i in selected)
        return ConversationStep(
            step=Step.PACKAGE_CONFIRMATION,
            message=messages.package_summary(selected, total),
            option_list=messages.package_confirmation_menu(),
        )

    # ==================== Payment ====================

    async def _max_installments(self, cohort_id: int | str) -> int | None:
        pricing = await self.gateway.get_cohort_pricing(cohort_id)
        return pricing.max_installments if pricing else None

    async def _payment_method_step(self, session: Session) -> ConversationStep:
        cohort_id = session.data.cliente.turmaId
        if cohort_id is None:
            return self._to_menu(messages.CUSTOMER_DATA_MISSING)
        max_installments = await self._max_installments(cohort_id)
        if max_installments is None:
            return self._to_menu(messages.PRICING_MISSING)
        return ConversationStep(
            step=Step.PAYMENT_METHOD,
            message=messages.PAYMENT_METHOD_PROMPT,
            option_list=messages.payment_method_menu(max_installments),
        )

    async def _handle_payment_method(self, text: str, session: Session) -> ConversationStep | None:
        cohort_id = self._require_package_context(Step.PAYMENT_METHOD, session)
        max_installments = await self._max_installments(cohort_id)
        if max_installments is None:
            return self._to_menu(messages.PRICING_MISSING)

        choice = text.lower()
        if choice == "boleto_pix":
            return await self._generate_invoice(session)
        if choice == "carne":
            return ConversationStep(
                step=Step.CARNE_PARCELAS,
                message=messages.installments_prompt(max_installments),
                option_list=messages.installments_menu(max_installments),
                data_update=session.data.pacote_update(metodoPagamento="carne"),
            )
        return ConversationStep(
            step=Step.PAYMENT_METHOD,
            message=messages.PAYMENT_METHOD_INVALID,
            option_list=messages.payment_method_menu(max_installments),
        )

    async def _handle_carne_parcelas(self, text: str, session: Session) -> ConversationStep | None:
        cohort_id = self._require_package_context(Step.CARNE_PARCELAS, session)
        max_installments = await self._max_installments(cohort_id)
        if max_installments is None:
            return self._to_menu(messages.PRICING_MISSING)

        installments = parse_leading_int(text)
        if installments is None or not 1 <= installments <= max_installments:
            return ConversationStep(
                step=Step.CARNE_PARCELAS,
                message=messages.INSTALLMENTS_INVALID,
                option_list=messages.installments_menu(max_installments),
            )
        return await self._generate_installment_plan(session, installments)

    def _charge_request(self, step: Step, session: Session) -> tuple[int | str, float, str]:
        cliente, pacote = session.data.cliente, session.data.pacote
        if cliente.id is None:
            raise MissingSessionDataError(step.value, "clienteData.id")
        total = pacote.valorTotal or 0.0
        description = f"{format_package_description(pacote.itensSelecionados)} - {cliente.nomeCompleto or ''}"
        return cliente.id, total, description

    async def _generate_invoice(self, session: Session) -> ConversationStep:
        customer_id, total, description = self._charge_request(Step.PAYMENT_METHOD, session)
        update = session.data.pacote_update(metodoPagamento="boleto_pix")
        try:
            invoice = await self.payments.generate_invoice(customer_id, total, description)
        except ExternalServiceException as e:
            logger.error(
                "Invoice generation failed",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), "error": e.message},
            )
            return self._to_menu(messages.payment_failed(messages.INVOICE_FAILED), update)
        return self._to_menu(messages.invoice_created(invoice, total), update)

    async def _generate_installment_plan(self, session: Session, installments: int) -> ConversationStep:
        customer_id, total, description = self._charge_request(Step.CARNE_PARCELAS, session)
        update = session.data.pacote_update(metodoPagamento="carne", parcelas=installments)
        first_due_date = self._today() + timedelta(days=settings.PAYMENT_DEFAULT_DUE_DAYS)
        try:
            plan = await self.payments.generate_installment_plan(
                customer_id, total, description, installments, first_due_date,
            )
        except ExternalServiceException as e:
            logger.error(
                "Installment plan generation failed",
                extra_data={"phone": PhoneNumberValidator.mask(session.phone), "error": e.message},
            )
            return self._to_menu(messages.payment_failed(messages.INSTALLMENT_PLAN_FAILED), update)
        return self._to_menu(
            messages.installment_plan_created(plan, total, installments, first_due_date),
            update,
        )

    # ==================== Billing ====================

    async def _handle_billing_cpf(self, text: str, session: Session) -> ConversationStep | None:
        cpf = only_digits(text)
        if len(cpf) != DocumentValidator.CPF_LENGTH:
            stored = only_digits(session.data.cliente.cpf)
            if len(stored) == DocumentValidator.CPF_LENGTH:
                cpf = stored
        if not DocumentValidator.is_valid_cpf(cpf):
            return ConversationStep(step=Step.BILLING_CPF, message=messages.BILLING_CPF_INVALID)

        customer = await self.gateway.find_customer_by_document(cpf)
        if customer is None:
            return self._to_menu(messages.BILLING_CPF_NOT_FOUND)

        charges = await self.gateway.list_customer_charges(customer.id)
        return self._to_menu(messages.billing_summary(customer, ChargeSummary.from_charges(charges)))
