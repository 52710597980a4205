"""
Step Definitions for the studio conversation flow
"""
from enum import Enum


class Step(str, Enum):
    """Named nodes of the conversation; values are what the session stores"""

    # Entry
    WELCOME = "welcome"
    MAIN_MENU = "main_menu"

    # Contract flow - identification
    CONTRACT_CPF = "contract_cpf"
    EXISTING_CLIENT_MENU = "existing_client_menu"
    CONTRACT_EXISTING_CLIENT = "contract_existing_client"  # legacy menu, sessões antigas
    CONTRACT_CLASS_CODE = "contract_class_code"

    # Contract flow - customer record
    CONTRACT_NAME = "contract_name"
    CONTRACT_EMAIL = "contract_email"
    CONTRACT_CEP = "contract_cep"
    CONTRACT_ADDRESS = "contract_address"
    CONTRACT_NEIGHBORHOOD = "contract_neighborhood"
    CONTRACT_CITY = "contract_city"
    CONTRACT_STATE = "contract_state"
    CONTRACT_CONFIRMED = "contract_confirmed"

    # Package and payment
    PACKAGE_SELECTION = "package_selection"
    PACKAGE_CONFIRMATION = "package_confirmation"
    PAYMENT_METHOD = "payment_method"
    CARNE_PARCELAS = "carne_parcelas"

    # Billing and support
    BILLING_CPF = "billing_cpf"
    SUPPORT = "support"

    @classmethod
    def parse(cls, value: str | None) -> "Step | None":
        """Stored step name -> Step, None when unknown"""
        try:
            return cls(value)
        except ValueError:
            return None


TRANSITIONS: dict[Step, list[Step]] = {
    Step.WELCOME: [Step.MAIN_MENU],
    Step.MAIN_MENU: [Step.CONTRACT_CPF, Step.BILLING_CPF, Step.SUPPORT, Step.MAIN_MENU],

    # Identification
    Step.CONTRACT_CPF: [
        Step.CONTRACT_CPF,
        Step.EXISTING_CLIENT_MENU,
        Step.CONTRACT_CLASS_CODE,
        Step.MAIN_MENU,
    ],
    Step.EXISTING_CLIENT_MENU: [Step.BILLING_CPF, Step.MAIN_MENU, Step.WELCOME],
    Step.CONTRACT_EXISTING_CLIENT: [
        Step.CONTRACT_CLASS_CODE,
        Step.MAIN_MENU,
        Step.CONTRACT_EXISTING_CLIENT,
    ],
    Step.CONTRACT_CLASS_CODE: [
        Step.CONTRACT_CLASS_CODE,
        Step.CONTRACT_NAME,
        Step.SUPPORT,
        Step.MAIN_MENU,
    ],

    # Customer record wizard
    Step.CONTRACT_NAME: [Step.CONTRACT_NAME, Step.CONTRACT_EMAIL],
    Step.CONTRACT_EMAIL: [Step.CONTRACT_EMAIL, Step.CONTRACT_CEP],
    Step.CONTRACT_CEP: [Step.CONTRACT_CEP, Step.CONTRACT_ADDRESS],
    Step.CONTRACT_ADDRESS: [Step.CONTRACT_ADDRESS, Step.CONTRACT_NEIGHBORHOOD],
    Step.CONTRACT_NEIGHBORHOOD: [Step.CONTRACT_NEIGHBORHOOD, Step.CONTRACT_CITY],
    Step.CONTRACT_CITY: [Step.CONTRACT_CITY, Step.CONTRACT_STATE],
    Step.CONTRACT_STATE: [Step.CONTRACT_STATE, Step.PACKAGE_SELECTION, Step.MAIN_MENU],
    Step.CONTRACT_CONFIRMED: [Step.PACKAGE_SELECTION, Step.MAIN_MENU],

    # Package and payment
    Step.PACKAGE_SELECTION: [Step.PACKAGE_SELECTION, Step.PACKAGE_CONFIRMATION, Step.MAIN_MENU],
    Step.PACKAGE_CONFIRMATION: [
        Step.PACKAGE_CONFIRMATION,
        Step.PAYMENT_METHOD,
        Step.PACKAGE_SELECTION,
        Step.MAIN_MENU,
    ],
    Step.PAYMENT_METHOD: [Step.PAYMENT_METHOD, Step.CARNE_PARCELAS, Step.MAIN_MENU],
    Step.CARNE_PARCELAS: [Step.CARNE_PARCELAS, Step.MAIN_MENU],

    # Billing and support
    Step.BILLING_CPF: [Step.BILLING_CPF, Step.MAIN_MENU],
    Step.SUPPORT: [Step.MAIN_MENU],
}


def is_valid_transition(current: Step, target: Step) -> bool:
    return target in TRANSITIONS.get(current, [])
