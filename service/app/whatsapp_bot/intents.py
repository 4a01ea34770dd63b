"""
Natural-language intent detection.

Lets users talk to the assistant without /commands: "recuérdame en 2 horas
que llame a mamá", "activa la voz", "modo chef", "genera un QR de ...".

The rules are data: INTENT_RULES is an ordered list of (intent, extractor)
pairs and `first_match()` returns the first extractor hit. Order matters:
reminders, voice on, voice off, list reminders, role, model, gif, pdf, qr.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

# Roles and model keys the assistant knows about
PRESET_ROLE_NAMES = ["traductor", "programador", "tutor", "escritor", "fitness", "chef"]

MODEL_KEYS = {
    "versatile": ["versatile", "70b", "llama 70", "inteligente", "potente", "avanzado", "grande", "mejor modelo"],
    "kimi": ["kimi"],
    "instant": ["instant", "8b", "rápido", "rapido", "veloz", "ligero", "pequeño", "pequeno"],
    "reset": ["scout", "defecto", "normal", "original", "predeterminado", "por defecto"],
}

MIN_TEXT_LENGTH = 4


@dataclass(frozen=True)
class IntentMatch:
    intent: str
    params: dict = field(default_factory=dict)


# (original text, lower-cased text) -> params dict or None
Extractor = Callable[[str, str], Optional[dict]]


@dataclass(frozen=True)
class IntentRule:
    intent: str
    extract: Extractor


# =========================================================================
# REMINDERS
# =========================================================================

TIME_UNIT = r"(?:minutos?|mins?|horas?|d[ií]as?|[hmd](?=\s|$))"
TIME_EXPR = rf"\d+\s*{TIME_UNIT}"

_REMINDER_PATTERNS = [
    # "recuérdame en 2 horas que llame a mamá"
    (re.compile(
        rf"\b(?:recuérdame|recuerda(?:me)?|avísame|avisame)\s+(?:en\s+)?({TIME_EXPR})\s*(?:(?:que|de|para|sobre|a|:|-)\s*)?(.+)",
        re.IGNORECASE), "time_first", True),
    # "ponme un recordatorio en 1 hora para la reunión"
    (re.compile(
        rf"\bponme\s+(?:un\s+)?recordatorio\s+(?:en\s+)?({TIME_EXPR})\s*(?:(?:de|para|que|sobre)\s*)?(.+)",
        re.IGNORECASE), "time_first", True),
    # "ponme un recordatorio de sacar la basura en 20 minutos"
    (re.compile(
        rf"\bponme\s+(?:un\s+)?recordatorio\s+(?:de|para|sobre|a)\s+(.+?)\s+en\s+({TIME_EXPR})",
        re.IGNORECASE), "text_first", False),
    # "en 10 min recuérdame revisar el horno"
    (re.compile(
        rf"^en\s+({TIME_EXPR})\s+(?:recuérdame|avísame|avisame|dime|que)\s+(?:(?:de|que|para)\s+)?(.+)",
        re.IGNORECASE), "time_first", True),
    # "agéndame la llamada con Ana en 2 horas"
    (re.compile(
        rf"\b(?:agéndame|agendame|agenda)\s+(.+?)\s+(?:en|para)\s+({TIME_EXPR})",
        re.IGNORECASE), "text_first", False),
]


def _extract_reminder(msg: str, low: str) -> Optional[dict]:
    for pattern, order, check_length in _REMINDER_PATTERNS:
        match = pattern.search(msg)
        if not match:
            continue
        if order == "time_first":
            raw_time, text = match.group(1), match.group(2)
        else:
            text, raw_time = match.group(1), match.group(2)
        text = (text or "").strip()
        if not raw_time or not text:
            continue
        if check_length and len(text) <= 2:
            continue
        return {"raw_time": raw_time.strip(), "text": text}
    return None


# =========================================================================
# VOICE MODE / REMINDER LIST
# =========================================================================

_VOICE_ON = [
    re.compile(r"\b(?:activa(?:\s+la)?|pon(?:me)?\s+(?:en\s+)?modo|responde\s+(?:con|en)|quiero\s+respuestas?\s+(?:en|con)|usa)\s+(?:la\s+)?(?:voz|audio)\b"),
    re.compile(r"\bmodo\s+(?:voz|audio)\b"),
    re.compile(r"\bresponde(?:r)?\s+(?:con|en)\s+audio\b"),
    re.compile(r"\bactiva\s+el\s+audio\b"),
]

_VOICE_OFF = [
    re.compile(r"\b(?:desactiva(?:\s+la)?|quita(?:\s+la)?|sin)\s+(?:la\s+)?(?:voz|audio)\b"),
    re.compile(r"\bresponde(?:r)?\s+(?:en|con)\s+texto\b"),
    re.compile(r"\bmodo\s+texto\b"),
    re.compile(r"\bdesactiva\s+el\s+audio\b"),
]

_LIST_REMINDERS = [
    re.compile(r"\b(?:mis|ver\s+mis?|cuáles?\s+(?:son\s+)?mis?|qué|lista\s+de)\s+recordatorios?\b"),
    re.compile(r"\brecordatorios?\s+(?:activos?|pendientes?|que\s+tengo)\b"),
    re.compile(r"\b(?:tengo|hay)\s+(?:algún\s+)?recordatorio?\b"),
]


def _any_of(patterns: Iterable[re.Pattern]) -> Extractor:
    def extract(msg: str, low: str) -> Optional[dict]:
        return {} if any(p.search(low) for p in patterns) else None
    return extract


# =========================================================================
# ROLE / MODEL
# =========================================================================

def _role_patterns(role: str) -> list[re.Pattern]:
    return [
        re.compile(rf"\b(?:actú[ae]|s[ée]|conviértete|ponme|cámbiate?|haz(?:te)?)\s+(?:como|en|un?|de)?\s*(?:modo\s+)?{role}\b"),
        re.compile(rf"\b(?:necesito|quiero|dame|ayúdame\s+como)\s+(?:un?\s+)?(?:buen\s+)?{role}\b"),
        re.compile(rf"\bmodo\s+{role}\b"),
        re.compile(rf"\beres\s+(?:mi\s+)?(?:un?\s+)?{role}\b"),
        re.compile(rf"\bponme\s+en\s+modo\s+{role}\b"),
    ]


_ROLE_RULES = [(role, _role_patterns(role)) for role in PRESET_ROLE_NAMES]

_MODEL_VERB = re.compile(r"\b(?:usa|cambia|activa|necesito|quiero|pon|switch)\b")


def _extract_role(msg: str, low: str) -> Optional[dict]:
    for role, patterns in _ROLE_RULES:
        if any(p.search(low) for p in patterns):
            return {"role": role}
    return None


def _extract_model(msg: str, low: str) -> Optional[dict]:
    # Keyword alone is a casual mention; it needs an action verb
    if not _MODEL_VERB.search(low):
        return None
    for key, keywords in MODEL_KEYS.items():
        if any(kw in low for kw in keywords):
            return {"key": key}
    return None


# =========================================================================
# GIF / PDF / QR
# =========================================================================

_GIF = re.compile(r"\b(?:mándame|busca|envíame|dame|pon|muéstrame)\s+(?:un\s+)?gif\s+(?:de\s+)?(.+?)$", re.IGNORECASE)

_PDF = [
    re.compile(
        r"\b(?:crea|genera|hazme|escribe|redacta|necesito|quiero|dame)\s+(?:un\s+)?(?:pdf|documento|informe|reporte|doc|artículo|ensayo)\s+"
        r"(?:sobre|de|acerca\s+de|con\s+info(?:rmación)?\s+de|para|del?)\s+(.+?)$",
        re.IGNORECASE),
    re.compile(r"\b(?:quiero|necesito)\s+(?:un\s+)?(?:pdf|documento|informe|reporte)\s+(?:de|sobre|acerca\s+de)\s+(.+?)$", re.IGNORECASE),
]

_QR = re.compile(r"\b(?:crea|genera|hazme|haz|dame)\s+(?:un\s+)?(?:código\s+)?qr\s+(?:de|para|con)?\s*(.+?)$", re.IGNORECASE)
_QR_SHORT = re.compile(r"\bqr\s+(?:de|para|con)\s+(.+?)$", re.IGNORECASE)


def _extract_gif(msg: str, low: str) -> Optional[dict]:
    match = _GIF.search(msg)
    if match and len(match.group(1).strip()) > 1:
        return {"query": match.group(1).strip()}
    return None


def _extract_pdf(msg: str, low: str) -> Optional[dict]:
    for pattern in _PDF:
        match = pattern.search(msg)
        if match and len(match.group(1).strip()) > 3:
            return {"topic": match.group(1).strip()}
    return None


def _extract_qr(msg: str, low: str) -> Optional[dict]:
    match = _QR.search(msg)
    if match and len(match.group(1).strip()) > 1:
        return {"data": match.group(1).strip()}
    match = _QR_SHORT.search(msg)
    if match and match.group(1).strip():
        return {"data": match.group(1).strip()}
    return None


INTENT_RULES: list[IntentRule] = [
    IntentRule("reminder", _extract_reminder),
    IntentRule("voice_on", _any_of(_VOICE_ON)),
    IntentRule("voice_off", _any_of(_VOICE_OFF)),
    IntentRule("list_reminders", _any_of(_LIST_REMINDERS)),
    IntentRule("role", _extract_role),
    IntentRule("model", _extract_model),
    IntentRule("gif", _extract_gif),
    IntentRule("pdf", _extract_pdf),
    IntentRule("qr", _extract_qr),
]


def first_match(rules: Iterable[IntentRule], text: str) -> Optional[IntentMatch]:
    """Evaluate rules in order; the first extractor returning params wins."""
    low = text.lower()
    for rule in rules:
        params = rule.extract(text, low)
        if params is not None:
            return IntentMatch(rule.intent, params)
    return None


def match_intent(text: Optional[str]) -> Optional[IntentMatch]:
    """
    Detect a natural-language intent.

    Args:
        text: Raw message text

    Returns:
        IntentMatch or None for commands, short texts and plain chat
    """
    if not text or not isinstance(text, str):
        return None
    msg = text.strip()
    if msg.startswith("/") or len(msg) < MIN_TEXT_LENGTH:
        return None
    return first_match(INTENT_RULES, msg)


# =========================================================================
# RELATIVE TIME
# =========================================================================

_UNIT_SECONDS = [
    (re.compile(r"^(?:s|seg|segs|segundos?)$"), 1),
    (re.compile(r"^(?:m|min|mins|minutos?)$"), 60),
    (re.compile(r"^(?:h|hr|hrs|horas?)$"), 3600),
    (re.compile(r"^(?:d|d[ií]as?)$"), 86400),
]

_TIME_SPLIT = re.compile(r"^(\d+)\s*([a-zíA-ZÍ]+)$")


def parse_reminder_delay(raw_time: str) -> Optional[int]:
    """
    Convert "2 horas", "30m", "1d", "45 segundos" to seconds.

    Returns None for unknown units or non-positive amounts.
    """
    match = _TIME_SPLIT.match((raw_time or "").strip().lower())
    if not match:
        return None
    amount = int(match.group(1))
    if amount <= 0:
        return None
    unit = match.group(2)
    for pattern, seconds in _UNIT_SECONDS:
        if pattern.match(unit):
            return amount * seconds
    return None
