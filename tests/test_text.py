from spend_categorizer.domain.categories import coerce_category, is_known_category, should_auto_apply
from spend_categorizer.domain.text import merchant_fingerprint, normalize_text, significant_words


def test_normalize_strips_accents_and_punctuation() -> None:
    assert normalize_text("Supermercado Pão de Açúcar") == "supermercado pao de acucar"
    assert normalize_text("UBER *TRIP 29,90") == "uber trip 29 90"
    assert normalize_text("  a--b__c  ") == "a b c"


def test_normalize_is_total() -> None:
    assert normalize_text(None) == ""
    assert normalize_text("") == ""
    assert normalize_text("   ") == ""


def test_fingerprint_ignores_long_numbers() -> None:
    first = merchant_fingerprint("PADARIA ESTRELA 123456 SP")
    second = merchant_fingerprint("PADARIA ESTRELA 987654 SP")
    assert first == second == "padaria estrela sp"


def test_fingerprint_drops_boilerplate_and_keeps_four_tokens() -> None:
    fp = merchant_fingerprint("PIX ENVIADO Joao da Silva Comercio de Frutas")
    assert fp == "joao da silva comercio"


def test_fingerprint_empty_when_nothing_survives() -> None:
    assert merchant_fingerprint("PIX 1234567 X") == ""
    assert merchant_fingerprint(None) == ""


def test_fingerprint_is_deterministic() -> None:
    text = "Drogaria Central Ltda 00042"
    assert merchant_fingerprint(text) == merchant_fingerprint(text)


def test_significant_words() -> None:
    assert significant_words("COMPRA Cartao Padaria 2024 Estrela") == ["padaria", "estrela"]


def test_should_auto_apply_threshold() -> None:
    assert should_auto_apply(0.85) is True
    assert should_auto_apply(0.84) is False


def test_category_helpers() -> None:
    assert coerce_category(" Food ") == "food"
    assert coerce_category("groceries") == "other"
    assert coerce_category(None) == "other"
    assert is_known_category("custom:abc")
    assert not is_known_category("custom:")
    assert not is_known_category("groceries")
