"""
Customer-facing texts and menus (pt-BR).
"""
from datetime import date

from app.core.validation import BRAZILIAN_STATES
from app.domain.services.partner.models import CatalogItem, ChargeSummary, Cohort, Customer
from app.domain.services.payment.base import InstallmentPlan, Invoice
from app.state_machine.types import Option, OptionList

CPF_EXAMPLE = "👉 Exemplo: 00516400320"

WELCOME = (
    "Bem-vindo(a) ao Metta Studio!\n"
    "Aqui, cada clique é pensado para eternizar emoções e transformar momentos em arte. 💫"
)

# ── menu principal ──

CONTRACT_CPF_PROMPT = (
    "Para darmos continuidade, por favor informe o seu CPF. "
    f"Digite apenas números, sem pontos nem traços.\n{CPF_EXAMPLE}"
)
BILLING_CPF_PROMPT = (
    "Para consultar suas cobranças e pagamentos, por favor informe seu CPF (apenas números)."
)
SUPPORT_HANDOFF = "Você será direcionado para nossa equipe de atendimento. Aguarde um momento..."
SUPPORT_FOLLOW_UP = (
    "Um atendente irá entrar em contato em breve para dar continuidade ao seu atendimento. "
    "Obrigado pelo contato!"
)

DEPARTMENT_HANDOFFS = {
    "editing": (
        "Você foi direcionado para nossa equipe de pós-produção. Eles entrarão em contato "
        "para resolver suas solicitações sobre edição, revisões e prazos."
    ),
    "admin": (
        "Você foi direcionado para nossa equipe administrativa. Eles entrarão em contato "
        "para resolver suas questões administrativas e documentos."
    ),
    "quote": (
        "Você foi direcionado para nossa equipe comercial. Eles entrarão em contato "
        "para criar um orçamento personalizado para você."
    ),
    "meeting": (
        "Você foi direcionado para nosso sistema de agendamento. Nossa equipe entrará em "
        "contato para agendar uma reunião com você."
    ),
}


def main_menu() -> OptionList:
    return OptionList(
        title="Opções disponíveis",
        button_label="Abrir lista de opções",
        options=[
            Option("1", "Assinar meu contrato", "Assine aqui seu contrato"),
            Option("2", "Pagamentos", "Verificar pagamentos"),
            Option("3", "Edição de Fotos ou Álbum", "Solicitar revisões, prazos ou acompanhar andamento."),
            Option("4", "Administrativo", "Questões internas ou documentos administrativos."),
            Option("5", "Solicitar um Orçamento", "Monte seu pacote personalizado com nossa equipe."),
            Option("6", "Faço parte da comissão (Agendar reunião)", "Agendar uma reunião com a equipe responsável."),
            Option("7", "Falar com um atendente", "Conversar diretamente com nossa equipe de suporte."),
        ],
    )


# ── identificação (CPF) ──

CPF_EMPTY = f"Por favor, digite seu CPF com apenas números.\n\n{CPF_EXAMPLE}"
CPF_INVALID = (
    "❌ CPF inválido. Por favor, verifique os números digitados e tente novamente.\n\n"
    f"{CPF_EXAMPLE}"
)
CPF_OK_NEW_CUSTOMER = "✅ CPF válido!\n\nDigite o código da sua turma:"


def cpf_wrong_length(count: int) -> str:
    return (
        f"❌ CPF deve ter exatamente 11 dígitos. Você digitou {count} números.\n\n"
        f"Por favor, digite apenas números, sem pontos nem traços.\n{CPF_EXAMPLE}"
    )


def existing_customer(customer: Customer) -> str:
    return (
        "CPF válido e já cadastrado.\n\n"
        f"Nome: {customer.nomeCompleto}\n"
        f"Código da Turma: {customer.turmaId}\n\n"
        "Como podemos ajudar agora?"
    )


def existing_client_menu() -> OptionList:
    return OptionList(
        title="Opções disponíveis",
        button_label="Abrir opções",
        options=[
            Option("2", "Cobrança ou Pagamentos", "Consultar boletos/PIX ou carnês."),
            Option("7", "Falar com um atendente", "Nossa equipe entrará em contato."),
            Option("menu", "Voltar ao menu inicial", "Retornar ao início."),
        ],
    )


# menu antigo de cliente existente, ainda alcançável por sessões gravadas
LEGACY_JOIN_COHORT = (
    "Perfeito! Vamos cadastrar você em uma nova turma.\n\n"
    "Digite o código da turma que deseja aderir:"
)
LEGACY_CUSTOMER_MENU = (
    "Bem-vindo ao seu menu de cliente! Aqui você pode acessar todas as suas informações e serviços."
)
LEGACY_CHOOSE_OPTION = "Por favor, escolha uma das opções disponíveis."


def legacy_existing_client_menu() -> OptionList:
    return OptionList(
        title="Opções disponíveis",
        button_label="Abrir lista de opções",
        options=[
            Option("1", "Aderir a uma nova turma", "Cadastrar-se em uma nova turma."),
            Option("2", "Acessar o menu do cliente", "Acessar suas informações e serviços."),
        ],
    )


# ── turma ──

CLASS_CODE_EMPTY = "Por favor, digite o código da sua turma."
CLASS_CODE_NOT_FOUND = (
    "❌ Código da turma não encontrado. Verifique o código e tente novamente.\n\n"
    "Digite o código da sua turma:"
)


def cohort_found(cohort: Cohort) -> str:
    return (
        "✅ Turma encontrada!\n\n"
        f"Turma: {cohort.nomeTurma}\n"
        f"Universidade: {cohort.universidade}\n"
        f"Curso: {cohort.curso}\n\n"
        "Agora vamos coletar seus dados pessoais.\n\n"
        "Digite seu nome completo:"
    )


# ── dados do cliente ──

NAME_INVALID = "Por favor, digite seu nome completo (mínimo 2 caracteres)."
EMAIL_INVALID = "Por favor, digite um e-mail válido.\n\nExemplo: usuario@email.com"
ADDRESS_INVALID = (
    "Por favor, digite sua rua e número separados por vírgula.\n\n👉 Exemplo: Rua das Flores, 123"
)
NEIGHBORHOOD_INVALID = "Por favor, digite seu bairro (mínimo 2 caracteres)."
CITY_INVALID = "Por favor, digite sua cidade (mínimo 2 caracteres)."
STATE_INVALID = "Por favor, selecione um estado válido da lista."


def name_saved(name: str) -> str:
    return f"✅ Nome registrado: {name}\n\nAgora digite seu e-mail:"


def email_saved(email: str) -> str:
    return (
        f"✅ E-mail registrado: {email}\n\n"
        "Agora digite seu CEP (apenas números):\n\n👉 Exemplo: 65000000"
    )


def cep_wrong_length(count: int) -> str:
    return (
        f"❌ CEP deve ter exatamente 8 dígitos. Você digitou {count} números.\n\n"
        "Digite apenas números do CEP.\n👉 Exemplo: 65000000"
    )


def cep_saved(cep: str) -> str:
    return (
        f"✅ CEP registrado: {cep}\n\n"
        "Agora digite sua rua e número da casa (separados por vírgula):\n\n"
        "👉 Exemplo: Rua das Flores, 123"
    )


def address_saved(address: str) -> str:
    return f"✅ Endereço registrado: {address}\n\nAgora digite seu bairro:"


def neighborhood_saved(neighborhood: str) -> str:
    return f"✅ Bairro registrado: {neighborhood}\n\nAgora digite sua cidade:"


def city_saved(city: str) -> str:
    return f"✅ Cidade registrada: {city}\n\nAgora selecione seu estado:"


def state_menu() -> OptionList:
    return OptionList(
        title="Estados brasileiros",
        button_label="Selecionar estado",
        options=[Option(uf, name, uf) for uf, name in BRAZILIAN_STATES.items()],
    )


# ── erros que voltam ao menu ──

CUSTOMER_DATA_MISSING = "❌ Erro: Dados do cliente não encontrados. Retornando ao menu principal."
CUSTOMER_CREATE_FAILED = "❌ Erro ao criar cliente no banco de dados. Retornando ao menu principal."
COHORT_MISSING = "❌ Erro: Turma não encontrada. Retornando ao menu principal."
PRICING_MISSING = "❌ Erro: Configuração da turma não encontrada. Retornando ao menu principal."
CATALOG_EMPTY = "❌ Erro: Nenhum item disponível para esta turma. Retornando ao menu principal."
DATA_MISSING = "❌ Erro: Dados não encontrados. Retornando ao menu principal."
SERVICE_UNAVAILABLE = (
    "😔 Desculpe, não conseguimos concluir sua solicitação agora. "
    "Por favor, tente novamente em alguns minutos.\n\nRetornando ao menu principal."
)

# ── catálogo e pacote ──

SELECTION_EMPTY = "❌ Por favor, digite os números dos itens separados por vírgula.\n\n📝 Exemplo: 1, 2, 3"


def _item_lines(items: list[CatalogItem]) -> str:
    return "".join(
        f"{index}. {item.nome} - {item.price_label()}\n\n"
        for index, item in enumerate(items, start=1)
    )


def catalog(items: list[CatalogItem]) -> str:
    return (
        "🎉 Cliente cadastrado com sucesso!\n\n"
        "Agora vamos escolher seu pacote personalizado.\n\n"
        "📦 **Itens Disponíveis:**\n\n"
        f"{_item_lines(items)}"
        "💡 **Como selecionar:**\n"
        "Digite os números dos itens que deseja, separados por vírgula.\n"
        "📝 Exemplo: 1, 3, 5\n\n"
        "Você pode escolher quantos itens quiser!"
    )


def selection_out_of_range(invalid: list[int], total: int) -> str:
    listed = ", ".join(str(n) for n in invalid)
    return (
        f"❌ Número(s) inválido(s): {listed}\n\n"
        f"Por favor, escolha números entre 1 e {total}."
    )


def package_summary(items: list[CatalogItem], total: float) -> str:
    return (
        "📋 **RESUMO DO SEU PACOTE:**\n\n"
        "📦 **Itens selecionados:**\n\n"
        f"{_item_lines(items)}"
        f"💰 **VALOR TOTAL: R$ {total:.2f}**\n\n"
        "✅ Confirma este pacote?"
    )


def package_confirmation_menu() -> OptionList:
    return OptionList(
        title="Confirmar Pacote",
        button_label="Confirmar",
        options=[
            Option("sim", "Sim, confirmar", "Prosseguir com este pacote"),
            Option("nao", "Não, alterar", "Refazer as escolhas"),
        ],
    )


# ── pagamento ──

PAYMENT_METHOD_PROMPT = "💳 **Escolha o método de pagamento:**"
PAYMENT_METHOD_INVALID = "❌ Opção inválida. Por favor, escolha uma das opções disponíveis."
INSTALLMENTS_INVALID = "❌ Número de parcelas inválido. Por favor, escolha uma opção válida."
INVOICE_FAILED = "Erro ao gerar boleto. Por favor, tente novamente."
INSTALLMENT_PLAN_FAILED = "Erro ao gerar carnê. Por favor, tente novamente."


def payment_method_menu(max_installments: int) -> OptionList:
    return OptionList(
        title="Métodos de Pagamento",
        button_label="Escolher método",
        options=[
            Option("boleto_pix", "Boleto/PIX", "Pagamento à vista"),
            Option("carne", f"Carnê (em até {max_installments}x)", f"Parcelamento em até {max_installments}x"),
        ],
    )


def installments_prompt(max_installments: int) -> str:
    return (
        "💳 **Escolha a quantidade de parcelas:**\n\n"
        f"Você pode parcelar em até {max_installments}x."
    )


def installments_menu(max_installments: int) -> OptionList:
    return OptionList(
        title="Quantidade de Parcelas",
        button_label="Escolher parcelas",
        options=[
            Option(str(i), f"{i}x", "À vista" if i == 1 else f"Parcelamento em {i} vezes")
            for i in range(1, max_installments + 1)
        ],
    )


def invoice_created(invoice: Invoice, total: float) -> str:
    text = (
        "💳 **BOLEPIX (Boleto + PIX)**\n\n"
        f"💰 Valor Total: R$ {total:.2f}\n\n"
        "📋 **Pagamento disponível em boleto e PIX no mesmo título:**\n\n"
        "**📄 BOLETO**\n"
        f"🔗 Link: {invoice.link}\n"
        f"📱 Código de Barras:\n{invoice.barcode}\n\n"
    )
    if invoice.pix_qrcode:
        text += "**🔵 PIX (No mesmo boleto)**\n🧾 QR Code (imagem): disponível no link do boleto\n"
    return text + "✅ Seu pedido foi registrado com sucesso!\n\nRetornando ao menu principal."


def format_br_date(value: str | date | None) -> str:
    """2025-03-10 -> 10/03/2025; anything unparseable is returned as-is"""
    if value is None:
        return "-"
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    try:
        return date.fromisoformat(value[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return value


def installment_plan_created(
    plan: InstallmentPlan,
    total: float,
    installments: int,
    first_due_date: date,
) -> str:
    per_installment = total / installments
    first = plan.first
    first_value = first.valor if first and first.valor is not None else per_installment
    due = first.vencimento if first and first.vencimento else first_due_date
    return (
        f"💳 **PAGAMENTO PARCELADO (Carnê {installments}x)**\n\n"
        f"💰 Valor Total: R$ {total:.2f}\n"
        f"📅 Valor da Parcela: R$ {per_installment:.2f}\n\n"
        "📋 **1ª Parcela:**\n"
        f"📅 Vencimento: {format_br_date(due)}\n"
        f"💵 Valor: R$ {first_value:.2f}\n\n"
        "**📄 BOLETO**\n"
        f"🔗 Link: {first.link if first else ''}\n"
        f"📱 Código de Barras:\n{first.barcode if first else ''}\n\n"
        "✅ Seu pedido foi registrado com sucesso!\n"
        "📬 As demais parcelas serão enviadas nos próximos meses.\n\n"
        "Retornando ao menu principal."
    )


def payment_failed(reason: str) -> str:
    return (
        "❌ **Erro ao gerar pagamento**\n\n"
        f"{reason}\n\n"
        "Por favor, entre em contato com o suporte.\n\n"
        "Retornando ao menu principal."
    )


# ── cobrança ──

BILLING_CPF_INVALID = "Por favor, informe um CPF válido com 11 dígitos (apenas números)."
BILLING_CPF_NOT_FOUND = "CPF não encontrado. Retornando ao menu principal."


def billing_summary(customer: Customer, summary: ChargeSummary) -> str:
    return (
        f"Aluno: {customer.nomeCompleto} (Turma {customer.turmaId})\n\n"
        "Resumo financeiro:\n"
        f"- Boletos/PIX pendentes: {summary.pending_invoices}\n"
        f"- Carnês pendentes: {summary.pending_installment_plans}"
    )
