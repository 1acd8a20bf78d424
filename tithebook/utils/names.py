"""
Name normalization for Ghanaian naming conventions.

Pure string functions: honorific stripping, an adapted Soundex key,
Akan day-name equivalence, surname misspelling clusters and token
similarity. Every function is total; empty input gives a neutral result.
"""

import re
from typing import Dict, List

from .text_similarity import ratio

# Clerical, traditional and civil honorifics
TITLES = frozenset({
    "elder", "deacon", "deaconess", "pastor", "apostle", "prophet",
    "prophetess", "evangelist", "reverend", "rev", "revd", "bishop",
    "overseer", "nii", "naa", "nana", "maame", "mama", "papa", "opanyin",
    "obaapanyin", "togbe", "torgbe", "nene", "dr", "prof", "mrs", "mr",
    "miss", "ms", "eld", "dcns", "dcn", "pst", "sis", "bro", "mdm",
})

# Akan day-of-birth names: (male forms, female forms)
DAY_NAMES: Dict[str, tuple] = {
    "sunday": (["kwasi", "kwesi", "akwasi", "kosi"], ["akosua", "esi", "kosi"]),
    "monday": (["kwadwo", "kojo", "kodwo", "cudjoe"], ["adwoa", "adjoa", "ajua"]),
    "tuesday": (["kwabena", "kobina", "kobena", "ebo"], ["abena", "araba", "abenaa"]),
    "wednesday": (["kwaku", "kweku", "kuuku"], ["akua", "ekua", "kukua"]),
    "thursday": (["yaw", "ekow", "yawo"], ["yaa", "aba", "yaaba"]),
    "friday": (["kofi", "fiifi"], ["afua", "efua", "afi"]),
    "saturday": (["kwame", "kwami", "kwamena"], ["ama", "amma", "amoah"]),
}

_DAY_LOOKUP: Dict[str, str] = {
    name: day
    for day, (male, female) in DAY_NAMES.items()
    for name in male + female
}

# Canonical surname -> common misspellings
SURNAME_VARIANTS: Dict[str, List[str]] = {
    "mensah": ["mensa", "mensaa"],
    "owusu": ["owusu-ansah", "owusu-boateng"],
    "aryeetey": ["aryetey", "ariyetey"],
    "wilson": ["willson"],
    "lamptey": ["lampte", "lamtey"],
    "addai": ["adai", "addey"],
    "addo": ["ado"],
    "boateng": ["boatng", "boating"],
    "asante": ["asantey", "asanti"],
    "ababio": ["ababyo"],
    "adjei": ["adgei", "adjey"],
    "amoah": ["amoa", "amuah"],
    "ansah": ["ansa", "ansar"],
    "appiah": ["apia", "apiah"],
    "tetteh": ["teteh", "tete"],
    "twumasi": ["tumasi", "twumase"],
    "asare": ["asarey", "asareh"],
}

_SURNAME_LOOKUP: Dict[str, str] = {
    variant: canonical
    for canonical, variants in SURNAME_VARIANTS.items()
    for variant in variants
}

# Applied in order before encoding
_PHONETIC_SUBSTITUTIONS = (
    ("dw", "d"), ("tw", "t"), ("gy", "j"), ("ey", "e"), ("ny", "n"),
    ("kw", "k"), ("oo", "o"), ("ee", "e"), ("aa", "a"), ("ii", "i"),
    ("uu", "u"),
)

_SOUNDEX = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}

PHONETIC_CODE_LENGTH = 6

# Per-token scores
EXACT_SCORE = 1.0
SURNAME_VARIANT_SCORE = 0.95
DAY_NAME_SCORE = 0.9
PHONETIC_SCORE = 0.85
PREFIX_SCORE = 0.7
INITIAL_SCORE = 0.7
FUZZY_MIN_RATIO = 0.75
FUZZY_SCALE = 0.9

_SPLIT_RE = re.compile(r"[\s.]+")


def strip_titles(name: str) -> str:
    """Drop honorifics (whole words, case-insensitive, trailing period allowed) and lowercase."""
    if not name:
        return ""
    words = name.lower().split()
    kept = [w for w in words if w.rstrip(".") not in TITLES]
    return " ".join(kept).strip()


def phonetic_code(name: str) -> str:
    """
    Soundex-style six character key tolerant of local spelling variance.

    Doubled vowels and the consonant pairs dw/tw/gy/ny/kw collapse first,
    so Adwoa/Adoa and Twumasi/Tumasi share a key.
    """
    if not name:
        return ""
    s = "".join(ch for ch in name.lower().strip() if ch.isalnum())
    if not s:
        return ""

    for old, new in _PHONETIC_SUBSTITUTIONS:
        s = s.replace(old, new)

    code = s[0].upper()
    last = _SOUNDEX.get(s[0], "")
    for ch in s[1:]:
        if len(code) >= PHONETIC_CODE_LENGTH:
            break
        digit = _SOUNDEX.get(ch, "")
        if digit and digit != last:
            code += digit
            last = digit
        elif not digit:
            # vowels and unmapped letters separate repeated codes
            last = ""

    return (code + "0" * PHONETIC_CODE_LENGTH)[:PHONETIC_CODE_LENGTH]


def are_phonetically_similar(name1: str, name2: str) -> bool:
    code1 = phonetic_code(name1)
    code2 = phonetic_code(name2)
    if not code1 or not code2:
        return False
    return code1 == code2 or code1[:4] == code2[:4]


def are_day_name_variants(name1: str, name2: str) -> bool:
    """True when both names come from the same day of birth."""
    day1 = _DAY_LOOKUP.get((name1 or "").strip().lower())
    day2 = _DAY_LOOKUP.get((name2 or "").strip().lower())
    return day1 is not None and day1 == day2


def day_of_name(name: str) -> str:
    """Day of the week a day-name belongs to, or an empty string."""
    return _DAY_LOOKUP.get((name or "").strip().lower(), "")


def normalize_surname(surname: str) -> str:
    lower = (surname or "").strip().lower()
    return _SURNAME_LOOKUP.get(lower, lower)


def are_surname_variants(surname1: str, surname2: str) -> bool:
    n1 = normalize_surname(surname1)
    n2 = normalize_surname(surname2)
    return bool(n1) and n1 == n2


def tokenize(name: str) -> List[str]:
    """Strip titles and split on whitespace and periods. Initials stay as one-letter tokens."""
    stripped = strip_titles(name)
    return [t for t in _SPLIT_RE.split(stripped) if t]


def normalize_name(name: str) -> str:
    """Title-free, lowercase, single-spaced form used as a lookup key."""
    return " ".join(tokenize(name))


def token_pair_score(token1: str, token2: str) -> float:
    """Similarity of two already-tokenized name parts."""
    if not token1 or not token2:
        return 0.0
    if token1 == token2:
        return EXACT_SCORE

    # a lone initial only vouches for the first letter
    if len(token1) == 1 or len(token2) == 1:
        return INITIAL_SCORE if token1[0] == token2[0] else 0.0

    if are_day_name_variants(token1, token2):
        return DAY_NAME_SCORE
    if are_surname_variants(token1, token2):
        return SURNAME_VARIANT_SCORE
    if are_phonetically_similar(token1, token2):
        return PHONETIC_SCORE
    if len(token1) >= 4 and len(token2) >= 4:
        if token1.startswith(token2) or token2.startswith(token1):
            return PREFIX_SCORE

    fuzzy = ratio(token1, token2)
    if fuzzy >= FUZZY_MIN_RATIO:
        return fuzzy * FUZZY_SCALE
    return 0.0


def token_similarity(name1: str, name2: str) -> float:
    """
    Order-insensitive similarity of two full names in [0, 1].

    Each token of the first name claims its best unused token of the
    second; the summed scores are divided by the longer token count.
    """
    if not name1 or not name2:
        return 0.0
    if normalize_name(name1) == normalize_name(name2) and normalize_name(name1):
        return 1.0

    tokens1 = tokenize(name1)
    tokens2 = tokenize(name2)
    if not tokens1 or not tokens2:
        return 0.0

    total = 0.0
    used = set()
    for t1 in tokens1:
        best_j, best = -1, 0.0
        for j, t2 in enumerate(tokens2):
            if j in used:
                continue
            score = token_pair_score(t1, t2)
            if score > best:
                best_j, best = j, score
        if best_j >= 0:
            used.add(best_j)
            total += best

    return min(1.0, total / max(len(tokens1), len(tokens2)))
