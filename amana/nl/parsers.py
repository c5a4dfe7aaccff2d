"""Deterministic parsers for pt-BR (and plain English) utterances.

Everything here is pure: callers pass ``today`` explicitly, so parsing is
pinned to the configured timezone without ambient locale state.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import date, time, timedelta

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_TOKEN_SPLIT_RE = re.compile(r"[\s,;]+")
_TOKEN_STRIP = "<>()[]{}\"'.,;:!?"


def fold(text: str) -> str:
    """Lowercase and strip accents ("Amanhã às 10h" -> "amanha as 10h")."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


# ---------------------------------------------------------------------------
# Emails / attendees
# ---------------------------------------------------------------------------

_ONLY_ME_RE = re.compile(
    r"\b(?:so|somente|apenas|sou)\s+eu\b"
    r"|\bsem\s+(?:convidados|participantes|ninguem)\b"
    r"|\bninguem\b"
    r"|\b(?:only|just)\s+me\b"
    r"|\bno\s*one\b|\bnobody\b"
)


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


def parse_emails(text: str) -> list[str]:
    """Tokens that pass the email regex, in order, case-insensitively unique."""
    found: list[str] = []
    seen: set[str] = set()
    for raw in _TOKEN_SPLIT_RE.split(text or ""):
        token = raw.strip(_TOKEN_STRIP)
        if token.lower().startswith("mailto:"):
            token = token[7:]
        if not is_valid_email(token):
            continue
        key = token.lower()
        if key not in seen:
            seen.add(key)
            found.append(token)
    return found


def says_only_me(text: str) -> bool:
    return bool(_ONLY_ME_RE.search(fold(text)))


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_WEEKDAYS = {
    "segunda": 0, "terca": 1, "quarta": 2, "quinta": 3, "sexta": 4,
    "sabado": 5, "domingo": 6,
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3, "friday": 4,
    "saturday": 5, "sunday": 6,
}
_WEEKDAY_RE = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")(?:-feira|\s+feira)?\b")
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DMY_RE = re.compile(r"(?<![\d/])(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?(?![\d/])")
_DAY_OF_MONTH_RE = re.compile(r"\bdia\s+(\d{1,2})\b(?!\s*/)")
_AFTER_TOMORROW_RE = re.compile(r"\bdepois\s+de\s+amanha\b|\bday\s+after\s+tomorrow\b")
_TOMORROW_RE = re.compile(r"\bamanha\b|\btomorrow\b")
_TODAY_RE = re.compile(r"\bhoje\b|\btoday\b")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _add_month(d: date) -> tuple[int, int]:
    return (d.year + 1, 1) if d.month == 12 else (d.year, d.month + 1)


def _strip_spans(text: str, pattern: re.Pattern[str]) -> str:
    return pattern.sub(lambda m: " " * len(m.group(0)), text)


def parse_dates(text: str, today: date) -> list[date]:
    """All distinct dates mentioned in *text*, in order of appearance."""
    folded = fold(text)
    hits: list[tuple[int, date]] = []

    for m in _AFTER_TOMORROW_RE.finditer(folded):
        hits.append((m.start(), today + timedelta(days=2)))
    folded_rest = _strip_spans(folded, _AFTER_TOMORROW_RE)

    for m in _TOMORROW_RE.finditer(folded_rest):
        hits.append((m.start(), today + timedelta(days=1)))
    for m in _TODAY_RE.finditer(folded_rest):
        hits.append((m.start(), today))

    for m in _WEEKDAY_RE.finditer(folded_rest):
        delta = (_WEEKDAYS[m.group(1)] - today.weekday()) % 7 or 7
        hits.append((m.start(), today + timedelta(days=delta)))

    for m in _ISO_DATE_RE.finditer(folded_rest):
        d = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if d:
            hits.append((m.start(), d))
    folded_rest = _strip_spans(folded_rest, _ISO_DATE_RE)

    for m in _DMY_RE.finditer(folded_rest):
        day, month, year_raw = int(m.group(1)), int(m.group(2)), m.group(3)
        if year_raw:
            year = int(year_raw)
            if year < 100:
                year += 2000
            d = _safe_date(year, month, day)
        else:
            d = _safe_date(today.year, month, day)
            if d and d < today:
                d = _safe_date(today.year + 1, month, day)
        if d:
            hits.append((m.start(), d))

    for m in _DAY_OF_MONTH_RE.finditer(folded_rest):
        day = int(m.group(1))
        d = _safe_date(today.year, today.month, day)
        if d is None or d < today:
            year, month = _add_month(today)
            d = _safe_date(year, month, day)
        if d:
            hits.append((m.start(), d))

    result: list[date] = []
    for _, d in sorted(hits, key=lambda h: h[0]):
        if d not in result:
            result.append(d)
    return result


def remove_dates(text: str) -> str:
    """Blank out explicit numeric dates so time parsing cannot misread them."""
    out = fold(text)
    for pattern in (_ISO_DATE_RE, _DMY_RE, _DAY_OF_MONTH_RE):
        out = _strip_spans(out, pattern)
    return out


# ---------------------------------------------------------------------------
# Times
# ---------------------------------------------------------------------------

_T = r"(\d{1,2})(?:(:|h)(\d{2})?)?(?:\s*horas?\b)?"
_RANGE_RE = re.compile(
    r"(?<![\d/:])(das?\s+|de\s+|from\s+)?" + _T
    + r"\s*(?:-|–|\ba\b|\bas\b|\bate\b|\bto\b|\buntil\b)\s*" + _T
    + r"(?![\d/])"
)
_SINGLE_RE = re.compile(r"(?<![\d/:])(\d{1,2})(?::(\d{2})|h(\d{2})?\b|\s*horas?\b)(?![\d/])")
_BARE_RE = re.compile(r"^\s*(?:as\s+|at\s+)?(\d{1,2})(?:[:h](\d{2}))?\s*(?:h|horas?)?\s*$")
_PM_RE = re.compile(r"\b(?:da\s+tarde|da\s+noite|de\s+tarde|de\s+noite|pm)\b")
_NOON_RE = re.compile(r"\bmeio[\s-]dia\b|\bnoon\b")
_MIDNIGHT_RE = re.compile(r"\bmeia[\s-]noite\b|\bmidnight\b")


@dataclass(frozen=True, slots=True)
class TimeSpan:
    start: time | None = None
    end: time | None = None


def _mk_time(hour: str | int, minute: str | int | None) -> time | None:
    h = int(hour)
    m = int(minute) if minute else 0
    if 0 <= h <= 23 and 0 <= m <= 59:
        return time(h, m)
    return None


def _pm(t: time | None, enabled: bool) -> time | None:
    if t is None or not enabled or t.hour >= 12:
        return t
    return time(t.hour + 12, t.minute)


def parse_times(text: str, *, allow_bare: bool = False) -> TimeSpan:
    """Start/end times in *text*.

    ``allow_bare`` accepts a lone number ("10") as an hour; only safe when a
    time slot was just asked for.
    """
    folded = remove_dates(text)
    pm = bool(_PM_RE.search(folded))

    for m in _RANGE_RE.finditer(folded):
        prefix, h1, mark1, m1, h2, mark2, m2 = m.groups()
        if not (prefix or mark1 or mark2):
            continue
        start = _mk_time(h1, m1)
        end = _mk_time(h2, m2)
        if start and end:
            return TimeSpan(_pm(start, pm), _pm(end, pm))

    singles: list[time] = []
    for m in _SINGLE_RE.finditer(folded):
        t = _mk_time(m.group(1), m.group(2) or m.group(3))
        if t:
            singles.append(t)
    if _NOON_RE.search(folded):
        singles.append(time(12, 0))
    if _MIDNIGHT_RE.search(folded):
        singles.append(time(0, 0))

    if not singles and allow_bare:
        bare = _BARE_RE.match(folded)
        if bare:
            t = _mk_time(bare.group(1), bare.group(2))
            if t:
                singles.append(t)

    if not singles:
        return TimeSpan()
    start = _pm(singles[0], pm)
    end = _pm(singles[1], pm) if len(singles) > 1 else None
    return TimeSpan(start, end)


def format_time(t: time) -> str:
    return t.strftime("%H:%M")


def parse_hhmm(value: str) -> time | None:
    m = re.fullmatch(r"\s*(\d{1,2})(?::|h)(\d{2})?\s*", str(value or ""))
    if not m:
        return None
    return _mk_time(m.group(1), m.group(2))


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------

_NUMBER_WORDS = {
    "um": 1, "uma": 1, "dois": 2, "duas": 2, "tres": 3, "quatro": 4,
    "cinco": 5, "seis": 6, "sete": 7, "oito": 8, "nove": 9, "dez": 10,
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
_NUMBER = r"(?<![\d:/])\b(?:(\d{1,3})|(" + "|".join(_NUMBER_WORDS) + r"))\b"
_BARE_COUNT_RE = re.compile(_NUMBER + r"(?!\s*(?:h\b|:|/|horas?\b))")
# A number outside a direct answer only counts when a counted noun follows.
_COUNTED_RE = re.compile(
    _NUMBER + r"\s+(?:(?:ultim[oa]s|recentes|nov[oa]s|proxim[oa]s)\s+)?"
    r"(?:e-?mails?|mails?|mensagens?|messages?|compromissos?|eventos?|events?|reunioes|itens|items)\b"
)
_SINGULAR_ORDINAL_RE = re.compile(
    r"\b(?:primeiro|primeira|ultimo|ultima|first|last|latest)\s+"
    r"(?:e-?mail|mensagem|message|compromisso|evento|event)\b"
)


def parse_count(text: str, *, allow_bare: bool = False) -> int | None:
    """Requested number of items ("3 e-mails", "dois últimos emails").

    *allow_bare* accepts any number, for answers to "quantos?".
    """
    folded = fold(text)
    m = (_BARE_COUNT_RE if allow_bare else _COUNTED_RE).search(folded)
    if m:
        return int(m.group(1)) if m.group(1) else _NUMBER_WORDS[m.group(2)]
    if _SINGULAR_ORDINAL_RE.search(folded):
        return 1
    return None


# ---------------------------------------------------------------------------
# Tags, mail queries, memory content
# ---------------------------------------------------------------------------

_HASHTAG_RE = re.compile(r"#([\w\-]+)", re.UNICODE)


def parse_hashtags(text: str) -> list[str]:
    tags: list[str] = []
    for tag in _HASHTAG_RE.findall(text or ""):
        if tag.lower() not in (t.lower() for t in tags):
            tags.append(tag)
    return tags


_FROM_RE = re.compile(r"\b(?:de|do|da|from)\s+(\S+@\S+)")


def parse_mail_query(text: str) -> str | None:
    """Gmail search query implied by the utterance, or None."""
    folded = fold(text)
    parts: list[str] = []
    if re.search(r"\bimportantes?\b|\bimportant\b", folded):
        parts.append("label:important")
    if re.search(r"\bnao\s+lid[oa]s?\b|\bunread\b", folded):
        parts.append("is:unread")
    for m in _FROM_RE.finditer(text or ""):
        email = m.group(1).strip(_TOKEN_STRIP)
        if is_valid_email(email):
            parts.append(f"from:{email}")
    return " ".join(parts) if parts else None


_MEMORY_TRIGGER_RE = re.compile(
    r"^\s*(?:por\s+favor,?\s+)?"
    r"(?:anot[ea]|registr[ea]|salv[ea]|guard[ea]|lembre(?:-se)?|memorize|note|remember|save|write\s+down)\b"
    r"(?:\s+(?:isso|isto|this))?"
    r"(?:\s+(?:na|em|uma|minha|a|in|to|my)?\s*(?:mem[oó]rias?|memory|memories|notas?|notes?))?"
    r"(?:\s+(?:que|that))?"
    r"\s*[:\-]?\s*",
    re.IGNORECASE,
)


def parse_memory_content(text: str) -> str | None:
    """Content after a "note this" trigger ("anote que X" -> "X")."""
    m = _MEMORY_TRIGGER_RE.match(text or "")
    if not m:
        return None
    rest = text[m.end():].strip(" :-\n\t")
    return rest or None


# ---------------------------------------------------------------------------
# Yes / no / cancel
# ---------------------------------------------------------------------------

_CANCEL_RE = re.compile(
    r"\b(?:cancel(?:a|e|ar)?|pare|parar|para\s+tudo|stop|reset(?:ar|e)?|recomec(?:ar|e)|"
    r"novo\s+comando|new\s+command|esquece|esqueca)\b"
)
_YES_RE = re.compile(
    r"^\s*(?:sim|s|pode|podes|claro|ok|okay|certo|confirmo|confirma|isso|manda|envia|"
    r"envie|crie|cria|tente|tenta|yes|y|yep|sure|go)\b"
)
_NO_RE = re.compile(r"^\s*(?:nao|n|negativo|nem|no|nope|deixa)\b")


def is_cancel(text: str) -> bool:
    return bool(_CANCEL_RE.search(fold(text)))


def parse_yes_no(text: str) -> bool | None:
    folded = fold(text).strip()
    if _NO_RE.match(folded):
        return False
    if _YES_RE.match(folded):
        return True
    return None


# ---------------------------------------------------------------------------
# Free-text cues (subject, body, title)
# ---------------------------------------------------------------------------

_QUOTED_RE = re.compile(r"[\"“”«]([^\"“”«»]{2,})[\"“”»]")
_TITLE_RE = re.compile(
    r"\b(?:t[ií]tulo|intitulad[ao]|called|titled)\b\s*[:\-]?\s*(.+?)"
    r"(?=\s+(?:amanh[ãa]|hoje|dia|na|no|em|às|as|das|de|para|com|tomorrow|today|on|at|from|with)\b|[,.;]|$)",
    re.IGNORECASE,
)
_SUBJECT_RE = re.compile(
    r"\b(?:assunto|subject)\s*[:\-]?\s*(.+?)"
    r"(?=\s*[,;]|\s+(?:e\s+)?(?:dizendo|corpo|mensagem|conte[uú]do|texto|body|saying)\b|$)",
    re.IGNORECASE,
)
_BODY_RE = re.compile(
    r"\b(?:(?:dizendo|saying)(?:\s+(?:que|that))?\s+|(?:corpo|mensagem|conte[uú]do|texto|body)\s*:\s*)(.+)$",
    re.IGNORECASE | re.DOTALL,
)


def parse_title(text: str) -> str | None:
    """Event title from quotes or a "título: X" cue."""
    m = _QUOTED_RE.search(text or "") or _TITLE_RE.search(text or "")
    if not m:
        return None
    return m.group(1).strip(" \"'“”") or None


def parse_subject(text: str) -> str | None:
    m = _SUBJECT_RE.search(text or "")
    if not m:
        return None
    return m.group(1).strip(" \"'“”") or None


def parse_body(text: str) -> str | None:
    m = _BODY_RE.search(text or "")
    if not m:
        return None
    return m.group(1).strip(" \"'“”:") or None
