"""Unit tests for pricing, step progress, chat fallbacks and phone numbers."""

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from vosc.core.errors import (
    FALLBACKS,
    ChatError,
    ErrorSeverity,
    ErrorType,
    build_error_reply,
    classify_exception,
    fallback_for,
)
from vosc.core.pricing import build_line, cart_discount, cart_subtotal, discount_rate, format_amount
from vosc.core.steps import STEP_PROGRESS, TOTAL_STEPS, progress_percent, step_index, step_progress
from vosc.services.checkout import choice_key, match_payment_provider, parse_quantity, split_address
from vosc.models.order import PaymentProvider
from vosc.utils.phone import format_phone, is_valid_phone, normalize_phone


# =============================================================================
# Pricing
# =============================================================================


@pytest.mark.parametrize(
    "quantity,rate",
    [(1, 0.0), (2, 0.10), (3, 0.15), (4, 0.20), (10, 0.20)],
)
def test_discount_rate_by_quantity(quantity, rate):
    assert discount_rate(quantity) == rate


def test_build_line_discounts_the_line_amount():
    line = build_line("p1", "Pour les Couples", 14000, 3)

    assert line["discount"] == 6300
    assert line["total_price"] == 35700
    assert line["unit_price"] == 14000


def test_cart_totals():
    lines = [
        build_line("p1", "Pour les Couples", 14000, 2),
        build_line("p2", "Pour les Amis", 12000, 1),
    ]

    assert cart_subtotal(lines) == 25200 + 12000
    assert cart_discount(lines) == 2800


def test_format_amount_groups_thousands():
    assert format_amount(12500) == "12 500 FCFA"
    assert format_amount(1250000) == "1 250 000 FCFA"
    assert format_amount(0) == "0 FCFA"


# =============================================================================
# Step progress
# =============================================================================


def test_progress_table_covers_fifteen_steps():
    assert TOTAL_STEPS == 15
    assert sorted(STEP_PROGRESS.values()) == list(range(1, 16))


def test_step_progress_payload():
    progress = step_progress("order_summary")

    assert progress == {"step": "order_summary", "index": 12, "total": 15, "percent": 80.0}


def test_unmapped_step_has_no_progress():
    assert step_index("generic") is None
    assert step_progress("generic") is None
    assert step_progress(None) is None


def test_progress_percent_is_clamped():
    assert progress_percent(0) == 0.0
    assert progress_percent(15) == 100.0
    assert progress_percent(30) == 100.0
    assert progress_percent(-3) == 0.0


# =============================================================================
# Chat fallbacks
# =============================================================================


def test_every_error_type_has_a_fallback():
    assert set(FALLBACKS) == set(ErrorType)
    for fallback in FALLBACKS.values():
        assert fallback.message
        assert fallback.choices


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ChatError(ErrorType.PAYMENT_ERROR), ErrorType.PAYMENT_ERROR),
        (OperationalError("SELECT 1", {}, Exception("db down")), ErrorType.DATABASE_ERROR),
        (httpx.ConnectError("refused"), ErrorType.NETWORK_ERROR),
        (TimeoutError(), ErrorType.NETWORK_ERROR),
        (ValueError("bad"), ErrorType.VALIDATION_ERROR),
        (RuntimeError("boom"), ErrorType.UNKNOWN_ERROR),
    ],
)
def test_classify_exception(exc, expected):
    assert classify_exception(exc) == expected


def test_build_error_reply_for_unknown_exception():
    reply = build_error_reply(RuntimeError("boom"), "collect_phone")

    assert reply["error"]["type"] == "UNKNOWN_ERROR"
    assert reply["error"]["severity"] == ErrorSeverity.HIGH.value
    assert "Parler à un conseiller" in reply["choices"]
    assert "boom" not in reply["message"]


def test_high_severity_errors_are_logged_at_error_level(caplog):
    build_error_reply(ChatError(ErrorType.PAYMENT_ERROR, "declined"), "payment_method")
    build_error_reply(ChatError(ErrorType.VALIDATION_ERROR, "bad"), "collect_name")

    levels = [record.levelname for record in caplog.records]
    assert levels == ["ERROR", "WARNING"]


def test_payment_fallback_offers_another_method():
    fallback = fallback_for(ErrorType.PAYMENT_ERROR)

    assert fallback.retryable is True
    assert "Choisir un autre moyen de paiement" in fallback.choices


# =============================================================================
# Phone numbers
# =============================================================================


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("77 123 45 67", "+221771234567"),
        ("+221 77 123 45 67", "+221771234567"),
        ("221771234567", "+221771234567"),
        ("0771234567", "+221771234567"),
        ("00225 07 12 34 56 7", "+225071234567"),
        ("+226 70 12 34 56", "+22670123456"),
        ("12345", ""),
        ("", ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_phone_with_country():
    assert normalize_phone("70 12 34 56", "BF") == "+22670123456"
    assert is_valid_phone("66 12 34 56", "ML")
    assert not is_valid_phone("99 12 34 56", "ML")


def test_format_phone():
    assert format_phone("+221771234567") == "+221 77 123 45 67"
    assert format_phone("+22670123456") == "+22670123456"


# =============================================================================
# Chat input parsing
# =============================================================================


def test_choice_key_strips_emoji_and_accents():
    assert choice_key("🚚 Paiement à la livraison") == "paiement a la livraison"
    assert choice_key("📍 Changer d'adresse") == "changer d'adresse"
    assert choice_key("  Réessayer  ") == "reessayer"


@pytest.mark.parametrize(
    "label,provider",
    [
        ("💰 Wave", PaymentProvider.WAVE),
        ("🟠 Orange Money", PaymentProvider.ORANGE_MONEY),
        ("💳 Carte bancaire", PaymentProvider.STRIPE),
        ("🚚 Paiement à la livraison", PaymentProvider.CASH),
        ("Bitcoin", None),
    ],
)
def test_match_payment_provider(label, provider):
    assert match_payment_provider(choice_key(label)) == provider


def test_parse_quantity_and_address():
    assert parse_quantity("3 exemplaires") == 3
    assert parse_quantity("aucune idée") is None
    assert split_address("Rue 10 x 15 Médina, Dakar") == ("Rue 10 x 15 Médina", "Dakar")
    assert split_address("Médina Dakar sans virgule") is None
    assert split_address("A, B") is None
