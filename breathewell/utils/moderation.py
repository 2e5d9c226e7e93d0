# breathewell/utils/moderation.py
from __future__ import annotations

import re
import unicodedata
from typing import NamedTuple

from better_profanity import profanity
from unidecode import unidecode

profanity.load_censor_words()

LEET = str.maketrans({"0": "o", "1": "i", "!": "i", "3": "e", "4": "a", "@": "a", "5": "s", "7": "t", "$": "s", "8": "b"})


class ModerationResult(NamedTuple):
    cleaned: str
    flagged: bool


def _normalize(text: str) -> str:
    t = unidecode(unicodedata.normalize("NFKD", (text or "").lower()))
    t = t.translate(LEET)
    t = re.sub(r"(.)\1{2,}", r"\1\1", t)        # cooool -> cool
    t = re.sub(r"[^a-z0-9\s]", "", t)
    return re.sub(r"\s+", " ", t).strip()


def moderate_text(text: str) -> ModerationResult:
    """Censor profanity in user text; `flagged` also catches leetspeak/accent tricks."""
    flagged = profanity.contains_profanity(_normalize(text))
    return ModerationResult(cleaned=profanity.censor(text or "", censor_char="*"), flagged=flagged)


def clean_text(text: str) -> str:
    return moderate_text(text).cleaned
