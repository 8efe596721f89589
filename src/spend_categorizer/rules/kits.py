"""Built-in rule kits, one per fixed category.

Each kit is a curated base vocabulary (brands and generic words seen on
Brazilian card and bank statements) expanded with the suffixes banks glue
onto merchant names until the kit reaches ``KIT_TARGET_SIZE`` patterns.

Base patterns are strong signals (priority 80, confidence 0.90); suffix
variants are weaker (priority 70, confidence 0.85). Every pattern is at
least three characters after normalization and appears in one kit only.
"""
from dataclasses import dataclass
from functools import lru_cache

from spend_categorizer.domain.categories import DEFAULT_CATEGORY, FIXED_CATEGORIES
from spend_categorizer.domain.text import normalize_text
from spend_categorizer.errors import ConfigurationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import Rule

logger = get_logger(__name__)

BASE_PRIORITY = 80
BASE_CONFIDENCE = 0.90
VARIANT_PRIORITY = 70
VARIANT_CONFIDENCE = 0.85

KIT_TARGET_SIZE = 110

STATEMENT_SUFFIXES = (
    "PIX", "DEB AUT", "COMPRA", "PAGAMENTO", "ONLINE", "APP",
    "LTDA", "SA", "BR", "CARTAO", "EPP", "ME",
)


@dataclass(frozen=True)
class RulePattern:
    pattern: str
    priority: int
    confidence: float


@dataclass(frozen=True)
class Kit:
    category: str
    patterns: tuple[RulePattern, ...]

    def __len__(self) -> int:
        return len(self.patterns)


FOOD_BASE = (
    "ifood", "rappi", "uber eats", "aiqfome", "ze delivery", "james delivery",
    "restaurante", "lanchonete", "padaria", "panificadora", "confeitaria",
    "açougue", "hortifruti", "sacolão", "quitanda", "supermercado", "mercado",
    "mercearia", "hipermercado", "atacadão", "assai", "carrefour",
    "pão de açúcar", "extra hiper", "savegnago", "prezunic", "guanabara",
    "zaffari", "condor", "pizzaria", "hamburgueria", "churrascaria",
    "sorveteria", "cafeteria", "starbucks", "mcdonalds", "mc donalds",
    "burger king", "subway", "habibs", "giraffas", "outback", "spoleto",
    "madero", "coco bambu", "china in box", "dominos", "kfc", "bobs",
    "sushi", "temakeria", "casa do pão de queijo", "cacau show",
    "kopenhagen", "empório", "feira livre", "refeição",
)

TRANSPORT_BASE = (
    "uber", "uber trip", "99 pop", "99 taxi", "99app", "cabify", "indriver",
    "in driver", "taxi", "posto", "auto posto", "gasolina", "etanol",
    "diesel", "combustível", "shell", "ipiranga", "petrobras", "br mania",
    "raizen", "estacionamento", "estapar", "zona azul", "sem parar",
    "conectcar", "veloe", "pedágio", "parking", "ônibus", "metrô", "cptm",
    "sptrans", "bilhete único", "riocard", "rodoviária", "clickbus",
    "buser", "blablacar", "viação", "gontijo", "ipva", "detran",
    "licenciamento", "seguro auto", "lava rápido", "lava jato",
    "borracharia", "oficina mecânica", "autopeças", "localiza", "movida",
    "unidas aluguel", "troca de óleo",
)

BILLS_BASE = (
    "enel", "cpfl", "cemig", "copel", "celesc", "light serviços",
    "neoenergia", "coelba", "equatorial energia", "energisa",
    "conta de luz", "energia elétrica", "sabesp", "sanepar", "copasa",
    "cedae", "embasa", "cagece", "compesa", "conta de água", "saneamento",
    "comgás", "naturgy", "ultragaz", "liquigás", "supergasbras",
    "conta de gás", "internet", "banda larga", "vivo fibra", "vivo",
    "claro net", "conta claro", "claro movel", "net virtua", "oi fibra",
    "tim live", "tim celular", "sky tv", "telefonica", "telefone",
    "celular", "recarga", "aluguel", "condomínio", "iptu",
    "seguro residencial", "quintoandar", "imobiliária", "taxa de lixo",
    "prefeitura",
)

HEALTH_BASE = (
    "farmácia", "drogaria", "drogasil", "droga raia", "drogaraia",
    "pacheco", "pague menos", "panvel", "ultrafarma", "drogão", "nissei",
    "medicamento", "remédio", "hospital", "clínica", "laboratório",
    "fleury", "hermes pardini", "lavoisier", "exame", "consulta médica",
    "médico", "dentista", "odonto", "ortodontia", "unimed", "amil saude",
    "hapvida", "notredame", "sulamerica saude", "bradesco saude",
    "plano de saúde", "academia", "smart fit", "smartfit", "bio ritmo",
    "bodytech", "crossfit", "pilates", "psicólogo", "terapia",
    "fisioterapia", "nutricionista", "ótica", "óculos", "vacina",
    "pronto socorro", "posto de saude", "veterinário",
)

EDUCATION_BASE = (
    "escola", "colégio", "faculdade", "universidade", "curso", "cursinho",
    "mensalidade escolar", "material escolar", "apostila", "udemy",
    "alura", "coursera", "duolingo", "rocketseat", "hotmart", "inglês",
    "idioma", "wizard", "fisk", "ccaa", "cultura inglesa", "kumon",
    "senac", "senai", "anhanguera", "estácio", "uninove", "pontifícia",
    "mba executivo", "pós graduação", "graduação", "mestrado", "vestibular", "enem",
    "livraria", "livro", "saraiva", "kindle", "estante virtual",
    "papelaria", "kalunga", "biblioteca", "xerox", "copiadora",
    "uniforme escolar",
)

SHOPPING_BASE = (
    "amazon", "mercado livre", "magazine luiza", "magalu", "americanas",
    "submarino", "shoptime", "shopee", "shein", "aliexpress", "temu",
    "casas bahia", "ponto frio", "fast shop", "kabum", "pichau", "havan",
    "renner", "riachuelo", "cea modas", "lojas cea", "marisa", "zara",
    "hering", "centauro", "decathlon", "netshoes", "dafiti", "arezzo",
    "boticário", "natura cosmeticos", "sephora", "leroy merlin",
    "tok stok", "camicado", "mobly", "madeiramadeira", "petz", "cobasi",
    "petlove", "shopping", "loja", "magazine", "vestuário", "calçados",
    "roupas", "presente", "brinquedo", "ri happy", "apple store",
    "samsung", "xiaomi",
)

LEISURE_BASE = (
    "netflix", "spotify", "disney plus", "disneyplus", "hbo max",
    "prime video", "amazon prime", "youtube premium", "deezer",
    "apple music", "apple tv", "paramount", "globoplay", "crunchyroll",
    "twitch", "cinema", "cinemark", "cinépolis", "kinoplex", "ingresso com",
    "sympla", "eventim", "teatro", "casa de show", "museu", "parque",
    "steam", "playstation", "xbox", "nintendo", "epic games", "riot games",
    "hotel", "pousada", "airbnb", "booking", "decolar", "cvc", "latam",
    "gol linhas", "azul linhas", "choperia", "cervejaria", "boate",
    "balada", "clube", "google play", "app store", "itunes", "boliche",
    "karaoke", "resort",
)

OTHER_BASE = (
    "iof", "tarifa", "tarifa bancária", "juros", "multa atraso", "anuidade",
    "encargos", "saque", "banco24horas", "boleto", "estorno", "devolução",
    "reembolso", "cashback", "rendimento", "dividendos", "aplicação",
    "resgate", "cdb", "tesouro direto", "poupança", "investimento",
    "corretora", "seguro prestamista", "pix enviado", "pix recebido",
    "transferência enviada", "ted enviada", "doc enviado", "mercado pago",
    "pagseguro", "picpay", "paypal", "ajuste", "cheque", "empréstimo",
    "financiamento", "consórcio", "pagamento fatura", "fatura cartão",
    "imposto de renda", "darf", "irpf", "inss", "fgts", "doação", "dízimo",
)

_BASES: dict[str, tuple[str, ...]] = {
    "food": FOOD_BASE,
    "transport": TRANSPORT_BASE,
    "bills": BILLS_BASE,
    "health": HEALTH_BASE,
    "education": EDUCATION_BASE,
    "shopping": SHOPPING_BASE,
    "leisure": LEISURE_BASE,
    "other": OTHER_BASE,
}

# Evaluated top to bottom; the first group with a keyword contained in the
# normalized category name wins.
CATEGORY_NAME_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("aliment", "mercad", "restaur", "comida", "food", "padaria", "lanche",
      "delivery", "ifood", "refeic", "grocer", "dining"), "food"),
    (("transporte", "transport", "uber", "posto", "gasolina", "combust",
      "estacionamento", "pedagio", "veiculo", "fuel"), "transport"),
    (("conta", "fixa", "bills", "luz", "agua", "internet", "aluguel",
      "condominio", "telefone", "moradia", "utilit"), "bills"),
    (("saude", "health", "farmacia", "medic", "academia", "hospital",
      "pharma"), "health"),
    (("educac", "education", "escola", "curso", "livro", "faculdade",
      "estudo", "school"), "education"),
    (("compra", "shopping", "loja", "vestuario", "roupa", "amazon",
      "mercado livre", "store"), "shopping"),
    (("lazer", "leisure", "cinema", "netflix", "streaming", "viagem",
      "hotel", "entreten", "diversao", "travel"), "leisure"),
    (("outro", "other", "diversos", "misc"), "other"),
)


def _expand_base(base: tuple[str, ...], target: int) -> tuple[RulePattern, ...]:
    patterns: list[RulePattern] = []
    seen: set[str] = set()

    def add(raw: str, priority: int, confidence: float) -> None:
        key = normalize_text(raw)
        if len(key) < 3 or key in seen:
            return
        seen.add(key)
        patterns.append(RulePattern(pattern=raw.upper(), priority=priority, confidence=confidence))

    for word in base:
        add(word, BASE_PRIORITY, BASE_CONFIDENCE)

    for word in base:
        for suffix in STATEMENT_SUFFIXES:
            if len(patterns) >= target:
                return tuple(patterns)
            add(f"{word} {suffix}", VARIANT_PRIORITY, VARIANT_CONFIDENCE)

    return tuple(patterns)


@lru_cache(maxsize=1)
def _kits() -> dict[str, Kit]:
    return {
        category: Kit(category=category, patterns=_expand_base(_BASES[category], KIT_TARGET_SIZE))
        for category in FIXED_CATEGORIES
    }


def get_kit(category: str) -> Kit | None:
    return _kits().get(category)


def get_all_kits() -> list[Kit]:
    return list(_kits().values())


def infer_kit(category_name_or_slug: str | None) -> Kit:
    """Resolve a free-form category label to a kit. Never raises."""
    kits = _kits()
    norm = normalize_text(category_name_or_slug)
    slug = norm.replace(" ", "_")
    if slug in kits:
        return kits[slug]
    for keywords, category in CATEGORY_NAME_KEYWORDS:
        if any(keyword in norm for keyword in keywords):
            return kits[category]
    return kits[DEFAULT_CATEGORY]


def ensure_min_patterns_per_kit(minimum: int) -> None:
    for kit in get_all_kits():
        if len(kit) < minimum:
            raise ConfigurationError(
                f"Kit '{kit.category}' has {len(kit)} patterns, expected >= {minimum}"
            )
    logger.debug("[RULES] All %d kits have >= %d patterns.", len(_kits()), minimum)


@lru_cache(maxsize=1)
def built_in_rules() -> tuple[Rule, ...]:
    rules: list[Rule] = []
    for kit in get_all_kits():
        for index, item in enumerate(kit.patterns):
            rules.append(Rule(
                id=f"builtin:{kit.category}:{index:03d}",
                household_id=None,
                name=item.pattern,
                pattern=item.pattern,
                match_type="contains",
                category=kit.category,
                priority=item.priority,
                confidence=item.confidence,
                scope="builtin",
                position=len(rules),
            ))
    return tuple(rules)
