"""Word normalization and similarity scoring shared by every practice mode."""
import logging
import re
import unicodedata
from enum import Enum
from typing import List, Optional

from rapidfuzz.distance import Levenshtein

from rehearse.config import settings
from rehearse.models.practice_models import WordToken

logger = logging.getLogger(__name__)


class SimilarityStrategy(Enum):
    """Available similarity functions."""
    CHARACTER = "character"  # Position-wise overlap, used for practice matching
    EDIT_DISTANCE = "edit_distance"  # Levenshtein, used for keyword spotting


DIACRITICS = {
    "å": "a",
    "ä": "a",
    "ö": "o",
    "ø": "o",
    "æ": "ae",
    "ð": "d",
    "þ": "th",
}

SUFFIXES = ("tion", "ness", "ment", "ing", "es", "ed", "ly", "s")
MIN_STEM_LENGTH = 3
SHORT_WORD_LENGTH = 2  # exact match only at or below this length

LEADING_FUNCTION_WORDS = frozenset({"the", "a", "an", "to"})

FILLER_WORDS = frozenset({"um", "uh", "eh", "er", "ah", "hmm", "mhm"})

_SENTENCE_END = re.compile(r"[.!?][\"'\)\]”’]*$")
_NON_WORD = re.compile(r"[\W_]+")


def fold_diacritics(text: str) -> str:
    """Fold regional letters and combining marks to base Latin letters."""
    for letter, replacement in DIACRITICS.items():
        text = text.replace(letter, replacement)
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def clean_word(word: str) -> str:
    """Lowercase, fold and strip punctuation without touching suffixes."""
    text = fold_diacritics(word.lower()).lower()
    parts = text.split()
    while len(parts) > 1 and _NON_WORD.sub("", parts[0]) in LEADING_FUNCTION_WORDS:
        parts.pop(0)
    return _NON_WORD.sub("", "".join(parts))


def strip_suffixes(word: str) -> str:
    """Strip inflectional suffixes until none applies."""
    changed = True
    while changed:
        changed = False
        for suffix in SUFFIXES:
            if word.endswith(suffix) and len(word) - len(suffix) >= MIN_STEM_LENGTH:
                word = word[: -len(suffix)]
                changed = True
                break
    return word


def normalize(word: str) -> str:
    """Canonical form of a word used for every comparison."""
    return strip_suffixes(clean_word(word))


# Closed-class words that can be hidden early
_SIMPLE_WORDS_RAW = [
    # English articles, conjunctions and common prepositions
    "the", "a", "an", "and", "or", "but", "nor", "yet", "so",
    "in", "on", "at", "to", "for", "of", "with", "by", "from", "up", "down",
    "about", "into", "through", "after", "before", "over", "under",
    # English auxiliaries
    "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "must", "can",
    # English pronouns and determiners
    "i", "you", "he", "she", "it", "we", "they",
    "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
    "this", "that", "these", "those",
    # Swedish equivalents
    "och", "eller", "men", "så", "som", "att",
    "i", "på", "av", "för", "till", "med", "om", "från",
    "en", "ett", "den", "det", "de",
    "är", "var", "har", "kan", "ska", "vill",
    "jag", "du", "vi", "ni", "han", "hon", "dem", "sig",
]

SIMPLE_WORDS = frozenset(clean_word(word) for word in _SIMPLE_WORDS_RAW)


def is_simple_word(word: str) -> bool:
    """Check if the word belongs to the closed class of function words."""
    return clean_word(word) in SIMPLE_WORDS


def is_filler_word(word: str) -> bool:
    """Check if the word is a hesitation filler such as 'um'."""
    return clean_word(word) in FILLER_WORDS


def ends_sentence(word: str) -> bool:
    """Check if the raw word ends with sentence-ending punctuation."""
    return bool(_SENTENCE_END.search(word.strip()))


def _character_similarity(w1: str, w2: str) -> float:
    max_len = max(len(w1), len(w2))
    min_len = min(len(w1), len(w2))

    # Truncated recognition of the same word
    if min_len / max_len >= settings.matching.prefix_length_ratio:
        if w1.startswith(w2) or w2.startswith(w1):
            return settings.matching.prefix_score

    matches = sum(1 for c1, c2 in zip(w1, w2) if c1 == c2)
    return matches / max_len


def _edit_similarity(w1: str, w2: str) -> float:
    return 1.0 - Levenshtein.distance(w1, w2) / max(len(w1), len(w2))


def similarity(
    word1: str,
    word2: str,
    strategy: SimilarityStrategy = SimilarityStrategy.CHARACTER,
) -> float:
    """Score similarity of two words between 0 and 1."""
    w1 = normalize(word1)
    w2 = normalize(word2)

    if w1 == w2:
        return 1.0
    if not w1 or not w2:
        return 0.0

    # Very short words must match exactly
    if len(w1) <= SHORT_WORD_LENGTH or len(w2) <= SHORT_WORD_LENGTH:
        return 0.0

    if strategy == SimilarityStrategy.EDIT_DISTANCE:
        return _edit_similarity(w1, w2)
    return _character_similarity(w1, w2)


def is_match(
    spoken: str,
    target: str,
    strategy: SimilarityStrategy = SimilarityStrategy.CHARACTER,
    threshold: Optional[float] = None,
) -> bool:
    """Decide if a spoken word counts as the target word.

    The character strategy compares the similarity score with the practice
    threshold. The edit distance strategy accepts containment or a Levenshtein
    distance within a budget proportional to the target length.
    """
    if strategy == SimilarityStrategy.CHARACTER:
        if threshold is None:
            threshold = settings.matching.match_threshold
        return similarity(spoken, target, strategy) >= threshold

    normalized_spoken = normalize(spoken)
    normalized_target = normalize(target)
    if normalized_spoken == normalized_target:
        return bool(normalized_target)
    if not normalized_spoken or not normalized_target:
        return False
    if min(len(normalized_spoken), len(normalized_target)) <= SHORT_WORD_LENGTH:
        return False

    # Multi-word keywords are often spoken inside a longer phrase
    if normalized_target in normalized_spoken or normalized_spoken in normalized_target:
        return True

    budget = int(len(normalized_target) * settings.matching.edit_distance_budget)
    return Levenshtein.distance(normalized_spoken, normalized_target, score_cutoff=budget) <= budget


def tokenize(text: str) -> List[WordToken]:
    """Split speech text into expected word tokens."""
    tokens: List[WordToken] = []
    sentence_start = True
    for raw in text.split():
        normalized = normalize(raw)
        if normalized:
            tokens.append(
                WordToken(
                    text=raw,
                    normalized=normalized,
                    index=len(tokens),
                    is_sentence_start=sentence_start,
                    is_simple=is_simple_word(raw),
                )
            )
            sentence_start = False
        if ends_sentence(raw):
            sentence_start = True
    logger.debug(f"Tokenized speech into {len(tokens)} words")
    return tokens


def split_spoken(transcript: str) -> List[str]:
    """Split a transcript into spoken words, dropping punctuation-only tokens."""
    return [raw for raw in transcript.split() if normalize(raw)]


def find_keywords(transcript: str, keywords: List[str]) -> List[str]:
    """Return the keywords covered by a free-form transcript."""
    spoken = split_spoken(transcript)
    covered = []
    for keyword in keywords:
        width = max(1, len(keyword.split()))
        phrases = [" ".join(spoken[i:i + width]) for i in range(max(1, len(spoken) - width + 1))]
        if any(is_match(phrase, keyword, SimilarityStrategy.EDIT_DISTANCE) for phrase in phrases if phrase):
            covered.append(keyword)
    return covered
