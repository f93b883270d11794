"""Tests for contact field normalization."""

import pytest

from src.contacts.normalize import (
    canonical_email,
    company_slug,
    domain_label,
    email_domain,
    is_blank,
    normalize_company,
    normalize_email,
    normalize_name,
    normalize_phone,
)


class TestEmail:
    def test_trims_and_lowercases(self):
        assert normalize_email("  Jane@Acme.COM ") == "jane@acme.com"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_none(self, value):
        assert normalize_email(value) is None

    def test_canonical_drops_plus_tag(self):
        assert canonical_email("jane+newsletter@acme.com") == "jane@acme.com"

    def test_canonical_drops_gmail_dots(self):
        assert canonical_email("John.Doe+calendly@Gmail.com") == "johndoe@gmail.com"

    def test_canonical_keeps_dots_elsewhere(self):
        assert canonical_email("jane.doe@acme.com") == "jane.doe@acme.com"

    def test_email_domain(self):
        assert email_domain("Sam@Mail.Acme.com") == "mail.acme.com"
        assert email_domain("not-an-email") is None


class TestPhone:
    def test_strips_non_digits(self):
        assert normalize_phone("+1 (555) 123-4567") == "15551234567"

    @pytest.mark.parametrize("value", [None, "", "ext."])
    def test_no_digits_is_none(self, value):
        assert normalize_phone(value) is None


class TestNameAndCompany:
    def test_name_collapses_whitespace(self):
        assert normalize_name("  Jane   DOE ") == "jane doe"

    @pytest.mark.parametrize(
        ("company", "expected"),
        [
            ("Acme, Inc.", "acme"),
            ("ACME Corp", "acme"),
            ("Acme Widgets LLC", "acme widgets"),
            ("Co", "co"),
        ],
    )
    def test_company_ignores_legal_suffix(self, company, expected):
        assert normalize_company(company) == expected

    def test_company_slug(self):
        assert company_slug("Acme Widgets Inc") == "acmewidgets"
        assert company_slug(None) is None

    @pytest.mark.parametrize(
        ("domain", "expected"),
        [
            ("acme.com", "acme"),
            ("mail.acme.co.uk", "acme"),
            ("sub.acme.io", "acme"),
        ],
    )
    def test_domain_label(self, domain, expected):
        assert domain_label(domain) == expected

    def test_is_blank(self):
        assert is_blank(None)
        assert is_blank("  ")
        assert not is_blank("x")
