import pytest

from orderease.core.errors import ValidationFailed
from orderease.services.customer_details import parse_customer_details, validate_phone


class TestCommaFormat:
    """Name, Phone[, Address] on one line."""

    def test_name_and_phone(self):
        info = parse_customer_details("John Doe, 9876543210")
        assert info.name == "John Doe"
        assert info.phone == "9876543210"
        assert info.address is None

    def test_address_keeps_its_commas(self):
        info = parse_customer_details("Asha, 98765 43210, 12 MG Road, Indiranagar")
        assert info.phone == "9876543210"
        assert info.address == "12 MG Road, Indiranagar"

    def test_swapped_fields_rejected(self):
        with pytest.raises(ValidationFailed):
            parse_customer_details("9876543210, John")

    def test_single_field_rejected(self):
        with pytest.raises(ValidationFailed):
            parse_customer_details("John Doe")

    def test_one_letter_name_rejected(self):
        with pytest.raises(ValidationFailed):
            parse_customer_details("J, 9876543210")


class TestLabeledFormat:
    """Name:/Phone:/Address: lines."""

    def test_labeled_lines(self):
        info = parse_customer_details("Name: Priya\nPhone: +91 98765-43210\nAddress: 4 Park St")
        assert info.name == "Priya"
        assert info.phone == "919876543210"
        assert info.address == "4 Park St"

    def test_mobile_alias(self):
        info = parse_customer_details("name: Ravi\nmobile: 9876543210")
        assert info.phone == "9876543210"

    def test_missing_phone_rejected(self):
        with pytest.raises(ValidationFailed):
            parse_customer_details("Name: Ravi\nAddress: 4 Park St")


class TestPhoneValidation:
    @pytest.mark.parametrize("raw,expected", [
        ("(987) 654.3210", "9876543210"),
        ("+44 20 7946 0958", "442079460958"),
    ])
    def test_noise_removed(self, raw, expected):
        assert validate_phone(raw) == expected

    @pytest.mark.parametrize("raw", ["12345", "98765abc10", "1234567890123456", ""])
    def test_rejected(self, raw):
        with pytest.raises(ValidationFailed) as exc:
            validate_phone(raw)
        assert "10 to 15 digits" in exc.value.reason
