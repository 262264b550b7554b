"""
Tokenizing and light stemming of Norwegian free text for analytics.
Shared by the theme classifier (stemmed) and the word frequency table (surface words).
"""

import re
from typing import List

# Norwegian stop words filtered from word clouds and theme matching
STOP_WORDS = frozenset({
    "og", "i", "jeg", "det", "at", "en", "et", "den", "til", "er", "som",
    "på", "de", "med", "han", "av", "ikke", "der", "så", "var", "meg",
    "seg", "men", "ett", "har", "om", "vi", "min", "mitt", "ha", "hadde",
    "hun", "nå", "over", "da", "ved", "fra", "du", "ut", "sin", "dem",
    "oss", "opp", "man", "kan", "hans", "hvor", "eller", "hva", "skal",
    "selv", "sjøl", "her", "alle", "vil", "bli", "ble", "blitt", "kunne",
    "inn", "når", "være", "kom", "noe", "ville", "dere", "deres",
    "kun", "ja", "etter", "ned", "skulle", "denne", "for", "deg", "to",
    "måtte", "få", "fikk", "fått", "gjøre", "gjort", "gjør",
})

# Checked in order, first match wins
SUFFIXES = (
    # definite plural
    "ene", "ane",
    # definite singular
    "en", "et", "a",
    # indefinite plural
    "er", "ar",
    # verb past tense
    "te", "de",
    # adjective endings
    "ere", "est",
)

MIN_WORD_LENGTH = 3
MIN_STEM_LENGTH = 3

_NON_WORD_CHARS = re.compile(r"[^a-zæøå0-9\s]")


def extract_words(text: str) -> List[str]:
    """Lowercased word tokens with punctuation, short words and stop words removed."""
    cleaned = _NON_WORD_CHARS.sub(" ", text.lower())
    return [
        word for word in cleaned.split()
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS
    ]


def stem(word: str) -> str:
    """
    Strip a common Norwegian suffix, never leaving fewer than three characters.

    Handles definite articles, plurals and verb forms, e.g.
    "søknadene" -> "søknad", "huset" -> "hus", "biler" -> "bil".
    """
    word = word.lower().strip()
    for suffix in SUFFIXES:
        if len(word) - len(suffix) >= MIN_STEM_LENGTH and word.endswith(suffix):
            return word[:-len(suffix)]
    return word


def extract_stems(text: str) -> List[str]:
    return [stem(word) for word in extract_words(text)]
