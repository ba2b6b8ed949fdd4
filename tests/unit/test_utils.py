"""
Utility Tests

Unit tests for log redaction and JSON conversion of database values.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from datenassistent.core.utils import (
    generate_short_id,
    redact_for_logging,
    to_jsonable,
    truncate_string,
)


class TestRedactForLogging:
    """Tests for redact_for_logging."""

    def test_email_redacted(self) -> None:
        assert redact_for_logging("user anna@example.com exists") == (
            "user [redacted-email] exists"
        )

    def test_api_key_redacted(self) -> None:
        redacted = redact_for_logging("invalid key sk-abcdefghijklmnop")

        assert "sk-abcdefghijklmnop" not in redacted
        assert "[redacted-key]" in redacted

    def test_card_number_redacted(self) -> None:
        redacted = redact_for_logging("card 4242 4242 4242 4242 declined")

        assert "4242" not in redacted

    def test_phone_number_redacted(self) -> None:
        redacted = redact_for_logging("call +49 30 1234 5678")

        assert "5678" not in redacted

    def test_plain_text_unchanged(self) -> None:
        message = 'relation "t_projects" does not exist'

        assert redact_for_logging(message) == message


class TestToJsonable:
    """Tests for to_jsonable."""

    def test_database_types(self) -> None:
        row_id = uuid.UUID("11111111-1111-4111-8111-111111111111")

        assert to_jsonable(
            {
                "id": row_id,
                "day": date(2024, 3, 1),
                "at": datetime(2024, 3, 1, 8, 30),
                "price": Decimal("12.50"),
                "hours": Decimal("8.00"),
                "tags": ("a", "b"),
            }
        ) == {
            "id": "11111111-1111-4111-8111-111111111111",
            "day": "2024-03-01",
            "at": "2024-03-01T08:30:00",
            "price": 12.5,
            "hours": 8,
            "tags": ["a", "b"],
        }

    def test_scalars_pass_through(self) -> None:
        assert to_jsonable(None) is None
        assert to_jsonable(True) is True
        assert to_jsonable(3) == 3


class TestStringHelpers:
    """Tests for truncate_string and generate_short_id."""

    def test_truncate(self) -> None:
        assert truncate_string("abcdef", 3) == "abc..."
        assert truncate_string("abc", 3) == "abc"

    def test_short_id_prefix(self) -> None:
        short_id = generate_short_id("req")

        assert short_id.startswith("req-")
        assert len(short_id) == 16
