"""
Unit tests for request payload validation.

Tests cover:
- Type checks for JSON bodies
- Conversion of form bodies
- Rejection of id, attachment and unknown fields
- Error collection
"""

import pytest

from backend.memberdb_server.errors import UnknownFieldError, ValidationError
from backend.memberdb_server.schema.entities import Payment, Product, Promotion, User
from backend.memberdb_server.schema.validate import coerce_fields


class TestJsonBodies:
    """Tests for coerce_fields on decoded JSON."""

    def test_valid_product(self):
        fields = coerce_fields(Product, {"name": "Gym Pass", "price": 49.99, "duration": 30})
        assert fields == {"name": "Gym Pass", "price": 49.99, "duration": 30}

    def test_output_in_column_order(self):
        fields = coerce_fields(Product, {"duration": 30, "name": "Gym Pass"})
        assert list(fields) == ["name", "duration"]

    def test_empty_body(self):
        assert coerce_fields(User, {}) == {}

    def test_none_accepted_everywhere(self):
        fields = coerce_fields(Promotion, {"discount_percent": None, "end_date": None})
        assert fields == {"discount_percent": None, "end_date": None}

    def test_integer_price_accepted(self):
        assert coerce_fields(Product, {"price": 50}) == {"price": 50}

    def test_bool_is_not_a_number(self):
        with pytest.raises(ValidationError, match="must be a number"):
            coerce_fields(Product, {"price": True})

    def test_reference_must_be_int(self):
        with pytest.raises(ValidationError, match="must be an integer"):
            coerce_fields(Payment, {"payment_owner": "1"})

    def test_text_must_be_str(self):
        with pytest.raises(ValidationError, match="must be a string"):
            coerce_fields(User, {"email": 5})

    def test_dates(self):
        """ISO dates and datetimes are kept as given."""
        fields = coerce_fields(
            Promotion, {"start_date": "2024-01-01", "end_date": "2024-02-01T10:00:00"}
        )
        assert fields == {"start_date": "2024-01-01", "end_date": "2024-02-01T10:00:00"}

    def test_utc_datetime_with_z_suffix(self):
        """Browser Date.toISOString() output is accepted as given."""
        fields = coerce_fields(Payment, {"date": "2024-01-01T10:00:00.000Z"})
        assert fields == {"date": "2024-01-01T10:00:00.000Z"}

    def test_bad_date(self):
        with pytest.raises(ValidationError, match="ISO-8601"):
            coerce_fields(Promotion, {"start_date": "next tuesday"})

    def test_integer_outside_64_bits(self):
        with pytest.raises(ValidationError, match="signed 64-bit integer"):
            coerce_fields(Product, {"duration": 2**70})

    def test_integer_at_64_bit_bounds(self):
        fields = coerce_fields(Product, {"duration": 2**63 - 1, "package_id": -(2**63)})
        assert fields == {"package_id": -(2**63), "duration": 2**63 - 1}

    def test_oversized_reference(self):
        with pytest.raises(ValidationError, match="signed 64-bit integer"):
            coerce_fields(Payment, {"payment_owner": 2**64})

    def test_infinite_number(self):
        with pytest.raises(ValidationError, match="finite number"):
            coerce_fields(Product, {"price": float("inf")})

    def test_oversized_integer_price(self):
        """Whole numbers in a number column are bound as SQLite integers."""
        with pytest.raises(ValidationError, match="signed 64-bit integer"):
            coerce_fields(Product, {"price": 10**20})

    def test_errors_collected(self):
        """All problems are reported together."""
        with pytest.raises(ValidationError) as exc_info:
            coerce_fields(Product, {"price": "cheap", "duration": 1.5, "name": 3})

        assert len(exc_info.value.errors) == 3


class TestRejectedKeys:
    """Tests for keys a body may never set."""

    def test_id_rejected(self):
        with pytest.raises(ValidationError, match="'id'") as exc_info:
            coerce_fields(User, {"id": 1, "email": "a@b.com"})
        assert exc_info.value.field_name == "id"

    def test_attachment_rejected(self):
        with pytest.raises(ValidationError, match="uploaded as a file"):
            coerce_fields(Payment, {"picture": "uploads/x.jpg"})

    def test_unknown_field_with_suggestion(self):
        with pytest.raises(UnknownFieldError) as exc_info:
            coerce_fields(User, {"emial": "a@b.com"})

        assert exc_info.value.suggestions == ["email"]
        assert exc_info.value.code == "UNKNOWN_FIELD"

    def test_unknown_field_is_validation_error(self):
        with pytest.raises(ValidationError):
            coerce_fields(Product, {"colour": "red"})


class TestFormBodies:
    """Tests for coerce_fields with from_form=True."""

    def test_converted_per_kind(self):
        fields = coerce_fields(
            Payment,
            {"payment_owner": "3", "method": "transfer", "date": "2024-03-01"},
            from_form=True,
        )
        assert fields == {"payment_owner": 3, "method": "transfer", "date": "2024-03-01"}

    def test_number_from_form(self):
        assert coerce_fields(Product, {"price": "49.99"}, from_form=True) == {"price": 49.99}

    def test_empty_string_is_null_for_non_text(self):
        fields = coerce_fields(Payment, {"payment_owner": "", "method": ""}, from_form=True)
        assert fields == {"payment_owner": None, "method": ""}

    def test_bad_integer_from_form(self):
        with pytest.raises(ValidationError, match="must be an integer, got 'abc'"):
            coerce_fields(Product, {"duration": "abc"}, from_form=True)

    def test_oversized_integer_from_form(self):
        with pytest.raises(ValidationError, match="signed 64-bit integer"):
            coerce_fields(Product, {"duration": "1180591620717411303424"}, from_form=True)

    @pytest.mark.parametrize("value", ["nan", "inf", "-Infinity"])
    def test_non_finite_number_from_form(self, value):
        with pytest.raises(ValidationError, match="finite number"):
            coerce_fields(Product, {"price": value}, from_form=True)

    def test_utc_datetime_from_form(self):
        fields = coerce_fields(Payment, {"date": "2024-01-01T10:00:00Z"}, from_form=True)
        assert fields == {"date": "2024-01-01T10:00:00Z"}
