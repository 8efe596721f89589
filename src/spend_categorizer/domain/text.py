"""Text normalization and merchant fingerprinting for statement lines.

Both functions are pure and total: any input, including ``None``, yields a
string, and the same input always yields the same output.
"""
import re
import unicodedata

_NON_ALNUM = re.compile(r"[\W_]+")
_WHITESPACE = re.compile(r"\s+")

# Payment-method markers and bank boilerplate that say nothing about the merchant.
BOILERPLATE_TOKENS = frozenset({
    "pix", "enviado", "recebido", "debito", "credito", "aut", "pagamento",
    "compra", "doc", "ted", "transferencia", "referencia", "pf", "pj",
    "pag", "valor", "ref", "id", "nr", "num", "no", "parc", "parcela",
    "cartao", "deb", "cred", "pos", "visa", "master", "elo",
})

LONG_NUMBER_LENGTH = 5
FINGERPRINT_MAX_TOKENS = 4


def _strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def normalize_text(text: str | None) -> str:
    if not text or not isinstance(text, str):
        return ""
    lowered = _strip_diacritics(text.lower())
    cleaned = _NON_ALNUM.sub(" ", lowered)
    return _WHITESPACE.sub(" ", cleaned).strip()


def _is_long_number(token: str) -> bool:
    return token.isdigit() and len(token) >= LONG_NUMBER_LENGTH


def merchant_fingerprint(text: str | None) -> str:
    """Stable merchant key: transaction-specific numbers and boilerplate removed."""
    tokens = [
        token
        for token in normalize_text(text).split()
        if len(token) >= 2
        and not _is_long_number(token)
        and token not in BOILERPLATE_TOKENS
    ]
    return " ".join(tokens[:FINGERPRINT_MAX_TOKENS])


def significant_words(text: str | None, min_length: int = 4) -> list[str]:
    return [
        token
        for token in normalize_text(text).split()
        if len(token) >= min_length
        and not token.isdigit()
        and token not in BOILERPLATE_TOKENS
    ]
