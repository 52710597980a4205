"""
Input Validation Utilities

Validators for what customers type into the chat:
- CPF (Brazilian taxpayer id) with checksum
- CEP (postal code)
- e-mail, UF (state code), names and street addresses
- phone numbers as delivered by the gateway
"""
import re
import unicodedata


class ValidationPatterns:
    """Regex patterns for validation"""

    NON_DIGIT = re.compile(r"\D")

    # Telefones chegam do gateway só com dígitos, DDI incluso (5511999998888)
    PHONE_DIGITS = re.compile(r"^\d{10,15}$")

    EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

    CEP = re.compile(r"^\d{8}$")

    MULTI_SPACE = re.compile(r"\s+")


# Unidades federativas (código -> nome)
BRAZILIAN_STATES: dict[str, str] = {
    "AC": "Acre",
    "AL": "Alagoas",
    "AP": "Amapá",
    "AM": "Amazonas",
    "BA": "Bahia",
    "CE": "Ceará",
    "DF": "Distrito Federal",
    "ES": "Espírito Santo",
    "GO": "Goiás",
    "MA": "Maranhão",
    "MT": "Mato Grosso",
    "MS": "Mato Grosso do Sul",
    "MG": "Minas Gerais",
    "PA": "Pará",
    "PB": "Paraíba",
    "PR": "Paraná",
    "PE": "Pernambuco",
    "PI": "Piauí",
    "RJ": "Rio de Janeiro",
    "RN": "Rio Grande do Norte",
    "RS": "Rio Grande do Sul",
    "RO": "Rondônia",
    "RR": "Roraima",
    "SC": "Santa Catarina",
    "SP": "São Paulo",
    "SE": "Sergipe",
    "TO": "Tocantins",
}


def only_digits(value: str | None) -> str:
    if not value:
        return ""
    return ValidationPatterns.NON_DIGIT.sub("", value)


class PhoneNumberValidator:
    """Phone numbers in the gateway's digits-only format"""

    @staticmethod
    def validate(phone: str) -> bool:
        if not phone:
            return False
        return bool(ValidationPatterns.PHONE_DIGITS.match(only_digits(phone)))

    @staticmethod
    def normalize(phone: str) -> str:
        return only_digits(phone)

    @staticmethod
    def mask(phone: str) -> str:
        """
        Mask phone number for logging (privacy).

        Returns:
            Masked phone number (e.g., 5511999****)
        """
        if not phone or len(phone) < 4:
            return "****"
        return phone[:-4] + "****"


class DocumentValidator:
    """CPF validation"""

    CPF_LENGTH = 11

    @staticmethod
    def _check_digit(digits: str, first_weight: int) -> int:
        total = sum(int(d) * w for d, w in zip(digits, range(first_weight, 1, -1)))
        remainder = total % 11
        return 0 if remainder < 2 else 11 - remainder

    @classmethod
    def is_valid_cpf(cls, cpf: str | None) -> bool:
        """
        Validate a CPF by its two check digits.

        Punctuation is ignored. Sequences of one repeated digit
        (000.000.000-00, 111.111.111-11, ...) pass the checksum but are
        never issued, so they are rejected.
        """
        digits = only_digits(cpf)
        if len(digits) != cls.CPF_LENGTH:
            return False
        if digits == digits[0] * cls.CPF_LENGTH:
            return False

        first = cls._check_digit(digits[:9], 10)
        if first != int(digits[9]):
            return False
        second = cls._check_digit(digits[:10], 11)
        return second == int(digits[10])

    @staticmethod
    def mask(cpf: str) -> str:
        """***.***.***-25 style mask for logs"""
        digits = only_digits(cpf)
        if len(digits) < 2:
            return "***"
        return "***.***.***-" + digits[-2:]


class PostalCodeValidator:
    """CEP: 8 digits, stored as NNNNN-NNN"""

    @staticmethod
    def normalize(cep: str | None) -> str | None:
        """Formatted CEP, or None when the input is not 8 digits"""
        digits = only_digits(cep)
        if not ValidationPatterns.CEP.match(digits):
            return None
        return f"{digits[:5]}-{digits[5:]}"


class EmailValidator:

    @staticmethod
    def normalize(email: str | None) -> str | None:
        """Lower-cased address, or None when it does not look like local@domain.tld"""
        if not email:
            return None
        candidate = email.strip().lower()
        if not ValidationPatterns.EMAIL.match(candidate):
            return None
        return candidate


class StateValidator:

    @staticmethod
    def normalize(uf: str | None) -> str | None:
        if not uf:
            return None
        code = uf.strip().upper()
        return code if code in BRAZILIAN_STATES else None

    @staticmethod
    def name(uf: str) -> str:
        return BRAZILIAN_STATES[uf]


class TextSanitizer:
    """Normalization applied to free text before it is stored"""

    @staticmethod
    def normalize(text: str | None, max_length: int = 500) -> str:
        """
        NFC-normalize, drop control characters, collapse whitespace and trim.

        WhatsApp clients send decomposed accents now and then ("José");
        NFC keeps "José" comparable with what the partner backend stores.
        """
        if not text:
            return ""
        cleaned = unicodedata.normalize("NFC", text)
        cleaned = "".join(ch for ch in cleaned if ch >= " " or ch in "\n\t")
        cleaned = ValidationPatterns.MULTI_SPACE.sub(" ", cleaned).strip()
        return cleaned[:max_length]


class NameValidator:
    MIN_LENGTH = 2
    MAX_LENGTH = 120

    @classmethod
    def normalize(cls, name: str | None) -> str | None:
        cleaned = TextSanitizer.normalize(name, cls.MAX_LENGTH)
        if len(cleaned) < cls.MIN_LENGTH:
            return None
        return cleaned


class AddressValidator:
    """Street address typed as "Rua das Flores, 123" """

    @staticmethod
    def normalize(address: str | None) -> str | None:
        cleaned = TextSanitizer.normalize(address)
        if "," not in cleaned:
            return None
        street, number = AddressValidator.split(cleaned)
        if not street or not number:
            return None
        return cleaned

    @staticmethod
    def split(address: str) -> tuple[str, str]:
        """Split on the first comma into (street, number)"""
        street, _, number = address.partition(",")
        return street.strip(), number.strip()


def phone_validator(v: str | None) -> str | None:
    """Pydantic field validator for phone numbers"""
    if v is None:
        return None
    if not PhoneNumberValidator.validate(v):
        raise ValueError("Telefone deve ter entre 10 e 15 dígitos")
    return PhoneNumberValidator.normalize(v)
