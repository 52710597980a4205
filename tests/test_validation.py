"""
Tests for Input Validation Utilities
"""
import pytest
from hypothesis import given, strategies as st

from app.core.validation import (
    AddressValidator,
    DocumentValidator,
    EmailValidator,
    NameValidator,
    PhoneNumberValidator,
    PostalCodeValidator,
    StateValidator,
    TextSanitizer,
    only_digits,
    phone_validator,
)


class TestDocumentValidator:
    """CPF check digits"""

    @pytest.mark.unit
    @pytest.mark.parametrize("cpf,expected", [
        ("52998224725", True),
        ("529.982.247-25", True),
        ("11144477735", True),
        ("52998224724", False),  # segundo dígito errado
        ("52998224715", False),  # primeiro dígito errado
        ("11111111111", False),  # sequência repetida
        ("00000000000", False),
        ("5299822472", False),   # 10 dígitos
        ("529982247255", False),  # 12 dígitos
        ("", False),
        (None, False),
    ])
    def test_is_valid_cpf(self, cpf, expected: bool):
        assert DocumentValidator.is_valid_cpf(cpf) is expected

    @pytest.mark.unit
    @given(st.sampled_from("0123456789"))
    def test_repeated_digit_never_valid(self, digit: str):
        assert not DocumentValidator.is_valid_cpf(digit * 11)

    @pytest.mark.unit
    def test_mask_keeps_only_check_digits(self):
        assert DocumentValidator.mask("52998224725") == "***.***.***-25"
        assert DocumentValidator.mask("") == "***"


class TestPhoneNumberValidator:

    @pytest.mark.unit
    @pytest.mark.parametrize("phone,expected", [
        ("5571999990000", True),
        ("+55 (71) 99999-0000", True),
        ("7133334444", True),
        ("123", False),
        ("", False),
        ("5571999990000123", False),  # Too long
    ])
    def test_validate(self, phone: str, expected: bool):
        assert PhoneNumberValidator.validate(phone) == expected

    @pytest.mark.unit
    def test_normalize_strips_formatting(self):
        assert PhoneNumberValidator.normalize("+55 (71) 99999-0000") == "5571999990000"

    @pytest.mark.unit
    def test_mask_phone(self):
        assert PhoneNumberValidator.mask("5571999990000") == "557199999****"
        assert PhoneNumberValidator.mask("123") == "****"

    @pytest.mark.unit
    def test_pydantic_field_validator(self):
        assert phone_validator(None) is None
        assert phone_validator("+55 71 99999-0000") == "5571999990000"
        with pytest.raises(ValueError):
            phone_validator("12")


class TestPostalCodeValidator:

    @pytest.mark.unit
    @pytest.mark.parametrize("cep,expected", [
        ("40110000", "40110-000"),
        ("40110-000", "40110-000"),
        ("40.110-000", "40110-000"),
        ("4011000", None),
        ("401100000", None),
        ("", None),
    ])
    def test_normalize(self, cep: str, expected):
        assert PostalCodeValidator.normalize(cep) == expected


class TestEmailValidator:

    @pytest.mark.unit
    @pytest.mark.parametrize("email,expected", [
        ("  Maria@Email.com ", "maria@email.com"),
        ("maria.silva+fotos@studio.com.br", "maria.silva+fotos@studio.com.br"),
        ("maria@", None),
        ("maria@email", None),
        ("sem arroba", None),
        ("", None),
    ])
    def test_normalize(self, email: str, expected):
        assert EmailValidator.normalize(email) == expected


class TestStateValidator:

    @pytest.mark.unit
    def test_accepts_any_case(self):
        assert StateValidator.normalize(" ba ") == "BA"
        assert StateValidator.name("BA") == "Bahia"

    @pytest.mark.unit
    @pytest.mark.parametrize("uf", ["XX", "Bahia", "", None])
    def test_rejects_unknown(self, uf):
        assert StateValidator.normalize(uf) is None


class TestAddressValidator:

    @pytest.mark.unit
    @pytest.mark.parametrize("address,valid", [
        ("Rua das Flores, 123", True),
        ("Av. Sete de Setembro,  1500 apto 12", True),
        ("Rua das Flores 123", False),  # sem vírgula
        ("Rua das Flores,", False),
        (", 123", False),
        ("", False),
    ])
    def test_normalize(self, address: str, valid: bool):
        assert (AddressValidator.normalize(address) is not None) == valid

    @pytest.mark.unit
    def test_split_on_first_comma(self):
        assert AddressValidator.split("Rua A, 10, fundos") == ("Rua A", "10, fundos")


class TestNameValidator:

    @pytest.mark.unit
    @pytest.mark.parametrize("name,expected", [
        ("Maria Silva", "Maria Silva"),
        ("  Maria   Silva  ", "Maria Silva"),
        ("A", None),
        ("", None),
    ])
    def test_normalize(self, name: str, expected):
        assert NameValidator.normalize(name) == expected


class TestTextSanitizer:

    @pytest.mark.unit
    def test_composes_decomposed_accents(self):
        decomposed = "Jose\u0301"
        assert TextSanitizer.normalize(decomposed) == "Jos\u00e9"

    @pytest.mark.unit
    def test_removes_control_characters(self):
        assert TextSanitizer.normalize("Maria\x00\x07 Silva") == "Maria Silva"

    @pytest.mark.unit
    def test_enforces_max_length(self):
        assert len(TextSanitizer.normalize("a" * 600)) == 500
        assert TextSanitizer.normalize("abcdef", max_length=3) == "abc"

    @pytest.mark.unit
    @given(st.text())
    def test_only_digits_returns_digits(self, value: str):
        assert only_digits(value).isdigit() or only_digits(value) == ""
