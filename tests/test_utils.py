"""Tests for core helpers."""

from datetime import datetime, timezone

import pytest

from sitecrew.core.exceptions import ValidationError
from sitecrew.core.utils import ensure_utc, normalize_email


class TestNormalizeEmail:
    """Addresses are validated the same way the API's EmailStr fields are."""

    def test_trimmed_and_lowercased(self):
        assert normalize_email("  New@X.com ") == "new@x.com"

    @pytest.mark.parametrize("address", [
        "not-an-email",
        "@x.com",
        "a@x",
        "a b@x.com",
        "a..b@x.com",
        "crew@-x.com",
    ])
    def test_rejects_malformed(self, address):
        with pytest.raises(ValidationError) as exc_info:
            normalize_email(address)
        assert exc_info.value.field == "email"

    def test_rejects_non_string(self):
        with pytest.raises(ValidationError):
            normalize_email(None)


class TestEnsureUtc:
    def test_naive_values_are_utc(self):
        naive = datetime(2026, 3, 2, 9, 0)
        assert ensure_utc(naive) == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
