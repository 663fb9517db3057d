"""
Text to structured data for results-screen OCR output.

Pure functions, no I/O. Each parser returns None when the text does not
have the expected shape; callers treat None as "try the next attempt".
"""

import math
import re
import unicodedata
from typing import Iterable, List, Optional

from .models import DEFEAT, VICTORY, StatLine

MATCH_ID_LABEL = re.compile(
    r"(match\s*-?\s*id|match\s*-?\s*nummer|код\s*матча|code\s*de\s*correspondance)\s*[:#-]?",
    re.IGNORECASE,
)
MATCH_ID_TOKEN = re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9]{6,32}(?![A-Za-z0-9])")

# Banner words per client language, compared whole-token after normalization
VICTORY_WORDS = {"VICTORY", "VICTOIRE", "SIEG"}
DEFEAT_WORDS = {"DEFEAT", "DEFAITE", "NIEDERLAGE", "VERLUST"}
VICTORY_WORDS_CYR = {"ПОБЕДА"}
DEFEAT_WORDS_CYR = {"ПОРАЖЕНИЕ"}

# Digits OCR commonly returns for letters in stylized banners
DIGIT_TO_LATIN = str.maketrans({"0": "O", "1": "I", "3": "E", "4": "A", "5": "S", "7": "T"})
# Glyphs that look the same in Latin and Cyrillic uppercase
CYR_TO_LATIN = str.maketrans({
    "А": "A", "В": "B", "С": "C", "Е": "E", "Н": "H", "К": "K",
    "М": "M", "О": "O", "Р": "P", "Т": "T", "Х": "X", "У": "Y",
})
LATIN_TO_CYR = str.maketrans({
    "A": "А", "B": "В", "C": "С", "E": "Е", "H": "Н", "K": "К",
    "M": "М", "O": "О", "P": "Р", "T": "Т", "X": "Х", "Y": "У", "0": "О",
})

SCORE_LINE = re.compile(r"^\d{3,6}$")
KDA_LINE = re.compile(r"^\d+\s*/\s*\d+\s*/\s*\d+$")
DAMAGE_LINE = re.compile(r"^\d{2,6}$")
SHARE_LINE = re.compile(r"^\d{1,3}([.,]\d)?\s*%$")


def extract_match_id(text: Optional[str]) -> Optional[str]:
    """
    Match identifier printed after a "Match ID" label.

    The token may sit on the label's line or on one of the next two lines
    (the label and value are sometimes split by OCR). It is returned
    exactly as recognized.

    Args:
        text: OCR output of the header band

    Returns:
        Alphanumeric identifier (6-32 chars) or None if no labelled token
    """
    if not text:
        return None

    lines = [line.strip() for line in text.split("\n")]
    for index, line in enumerate(lines):
        label = MATCH_ID_LABEL.search(line)
        if not label:
            continue
        window = " ".join([line[label.end():]] + lines[index + 1:index + 3])
        token = MATCH_ID_TOKEN.search(window)
        if token:
            return token.group(0)
    return None


def _strip_accents(token: str) -> str:
    decomposed = unicodedata.normalize("NFD", token)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _tokens(text: str) -> Iterable[str]:
    return re.findall(r"[^\W_]+", text.upper())


def parse_match_result(text: Optional[str]) -> Optional[str]:
    """
    Victory/defeat banner in OCR output.

    Matching is case-insensitive and on whole tokens only. A token may
    carry typical OCR confusions (digits for letters, Latin/Cyrillic
    look-alikes, dropped accents). Victory wins if both appear.

    Returns:
        "victory", "defeat" or None
    """
    if not text:
        return None

    latin_forms = set()
    cyrillic_forms = set()
    for token in _tokens(text):
        plain = _strip_accents(token)
        latin_forms.add(plain.translate(CYR_TO_LATIN).translate(DIGIT_TO_LATIN))
        cyrillic_forms.add(token.translate(LATIN_TO_CYR))

    if latin_forms & VICTORY_WORDS or cyrillic_forms & VICTORY_WORDS_CYR:
        return VICTORY
    if latin_forms & DEFEAT_WORDS or cyrillic_forms & DEFEAT_WORDS_CYR:
        return DEFEAT
    return None


def _round_one_decimal(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _normalize_share(raw: str) -> Optional[float]:
    try:
        share = float(raw.replace("%", "").replace(",", ".").strip())
    except ValueError:
        return None
    # A dropped decimal point turns 33.5 into 335
    while 100 < share <= 1000:
        share /= 10
    if not 0 <= share <= 100:
        return None
    return _round_one_decimal(share)


def _pick_fields(candidates: List[str]):
    score = kda = damage = share = None
    for item in candidates:
        if score is None and SCORE_LINE.match(item):
            score = item
        elif kda is None and KDA_LINE.match(item):
            kda = re.sub(r"\s", "", item)
        elif damage is None and DAMAGE_LINE.match(item):
            damage = item
        elif share is None and SHARE_LINE.match(item):
            share = re.sub(r"\s+", "", item)
    return score, kda, damage, share


def _inline_tokens(text: str) -> List[str]:
    # Single-line layout: "Name 1234 12 / 8 / 3 4567 33.5 %"
    compact = re.sub(r"\s*/\s*", "/", text)
    compact = re.sub(r"(\d)\s+%", r"\1%", compact)
    return compact.split()


def parse_stat_line(text: Optional[str], owner_uid: str, name: str) -> Optional[StatLine]:
    """
    Player stat row: score, kills/deaths/assists, damage, damage share.

    Fields are read one per line in that order; when the row came back as
    a single line, whitespace-separated tokens are tried instead.

    Args:
        text: OCR output of the player's row
        owner_uid: Identifier of the uploading player
        name: Display name of the uploading player

    Returns:
        StatLine with every field set, or None. Never a partial result.
    """
    if not text:
        return None

    lines = [line.strip() for line in str(text).split("\n") if line.strip()]
    fields = _pick_fields(lines)
    if None in fields:
        fields = _pick_fields(_inline_tokens(str(text)))
    if None in fields:
        return None

    score, kda, damage, share = fields
    kills, deaths, assists = (int(part) for part in kda.split("/"))
    damage_share = _normalize_share(share)
    if damage_share is None:
        return None

    return StatLine(
        owner_uid=owner_uid,
        name=name,
        score=int(score),
        kills=kills,
        deaths=deaths,
        assists=assists,
        damage=int(damage),
        damage_share=damage_share,
    )
