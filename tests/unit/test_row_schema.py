"""Unit tests for access_governance.row_schema."""

from access_governance.records import UploadRow
from access_governance.row_schema import check_row_shape


def _row(**kwargs) -> UploadRow:
    values = {
        "row_number": 2,
        "user_email": "alice@example.com",
        "system_name": "GitHub",
        "access_tier_name": "Admin",
    }
    values.update(kwargs)
    return UploadRow(**values)


class TestCheckRowShape:
    def test_valid_row(self):
        assert check_row_shape(_row()) == []

    def test_optionals_not_required(self):
        assert check_row_shape(_row(instance_name=None, notes=None)) == []

    def test_missing_email(self):
        assert check_row_shape(_row(user_email="")) == ["user_email: Required"]

    def test_whitespace_counts_as_missing(self):
        assert check_row_shape(_row(system_name="   ")) == ["system_name: Required"]

    def test_invalid_email(self):
        assert check_row_shape(_row(user_email="not-an-email")) == [
            "user_email: Invalid email"
        ]

    def test_all_required_missing_in_column_order(self):
        errors = check_row_shape(_row(user_email="", system_name="", access_tier_name=""))
        assert errors == [
            "user_email: Required",
            "system_name: Required",
            "access_tier_name: Required",
        ]

    def test_invalid_email_and_missing_tier(self):
        errors = check_row_shape(_row(user_email="bad@", access_tier_name=""))
        assert errors == ["user_email: Invalid email", "access_tier_name: Required"]
