"""Tests for word normalization and similarity."""
import pytest
from faker import Faker

from rehearse.services.word_matching import (
    SimilarityStrategy,
    clean_word,
    find_keywords,
    is_filler_word,
    is_match,
    is_simple_word,
    normalize,
    similarity,
    split_spoken,
    tokenize,
)

fake = Faker()

STRATEGIES = [SimilarityStrategy.CHARACTER, SimilarityStrategy.EDIT_DISTANCE]


def test_normalize_folds_case_punctuation_and_diacritics() -> None:
    """Test that normalization lowercases, strips punctuation and folds letters."""
    assert normalize("Hello,") == "hello"
    assert normalize("Café!") == "cafe"
    assert normalize("Öl") == "ol"
    assert normalize("Ærø") == "aero"
    assert normalize("Þing") == "thing"


def test_normalize_strips_suffixes_keeping_stem() -> None:
    """Test that inflectional suffixes are stripped down to a three letter stem."""
    assert normalize("running") == "runn"
    assert normalize("walked") == "walk"
    assert normalize("quickly") == "quick"
    assert normalize("dogs") == "dog"
    assert normalize("is") == "is"
    assert normalize("sing") == "sing"


def test_normalize_drops_leading_function_words() -> None:
    """Test that leading articles are dropped only when more words follow."""
    assert normalize("the end") == "end"
    assert normalize("to be") == "be"
    assert normalize("the") == "the"


def test_normalize_joins_hyphenated_words() -> None:
    """Test that hyphenated words compare equal to the joined form."""
    assert normalize("well-known") == normalize("wellknown")


def test_normalize_is_idempotent() -> None:
    """Test that normalizing twice gives the same result."""
    words = ["Communications", "happiness!", "Åsa's", "re-entered", "the end", "Naïveté", "ness", "statements"]
    words += [fake.word() for _ in range(50)]
    for word in words:
        once = normalize(word)
        assert normalize(once) == once, word


def test_clean_word_keeps_suffixes() -> None:
    """Test that the closed-class lookup form keeps suffixes."""
    assert clean_word("Running.") == "running"


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_similarity_identity_and_symmetry(strategy: SimilarityStrategy) -> None:
    """Test that similarity is 1 for identical words and symmetric."""
    words = [fake.word() for _ in range(30)] + ["recognition", "recognize", "cat", "a"]
    for word in words:
        assert similarity(word, word, strategy) == 1.0
    for first, second in zip(words, reversed(words)):
        assert similarity(first, second, strategy) == similarity(second, first, strategy)


def test_similarity_short_words_need_exact_match() -> None:
    """Test that words of two letters or fewer must match exactly."""
    assert similarity("at", "an") == 0.0
    assert similarity("at", "At.") == 1.0


def test_similarity_truncated_prefix() -> None:
    """Test that a truncated recognition of the same word scores 0.9."""
    assert similarity("practic", "practice") == 0.9


def test_similarity_positional_overlap() -> None:
    """Test the position-wise character overlap score."""
    assert similarity("house", "mouse") == pytest.approx(0.8)
    assert similarity("fox", "brown") == 0.0


def test_edit_distance_similarity() -> None:
    """Test that the edit distance strategy scores by Levenshtein distance."""
    assert similarity("kitten", "sitten", SimilarityStrategy.EDIT_DISTANCE) == pytest.approx(1 - 1 / 6)


def test_is_match_character_threshold() -> None:
    """Test that the practice matcher accepts scores at or above 0.5."""
    assert is_match("mouse", "house")
    assert not is_match("fox", "brown")


def test_is_match_edit_distance_budget() -> None:
    """Test keyword spotting with containment and a length proportional budget."""
    strategy = SimilarityStrategy.EDIT_DISTANCE
    assert is_match("sustainabilty", "sustainability", strategy)
    assert is_match("renewable energy sources", "energy", strategy)
    assert not is_match("banana", "sustainability", strategy)
    assert not is_match("", "energy", strategy)


def test_filler_and_simple_words() -> None:
    """Test filler and closed-class word detection."""
    assert is_filler_word("Um,")
    assert is_filler_word("hmm")
    assert not is_filler_word("hum")
    assert is_simple_word("The")
    assert is_simple_word("och")
    assert is_simple_word("på")
    assert not is_simple_word("freedom")


def test_tokenize_marks_sentence_starts() -> None:
    """Test token positions and sentence start flags."""
    tokens = tokenize("Hello world. How are you? Fine — thanks!")
    assert [t.text for t in tokens] == ["Hello", "world.", "How", "are", "you?", "Fine", "thanks!"]
    assert [t.index for t in tokens] == list(range(7))
    assert [t.is_sentence_start for t in tokens] == [True, False, True, False, False, True, False]
    assert tokens[3].is_simple
    assert not tokens[0].is_simple


def test_tokenize_empty_text() -> None:
    """Test that empty or punctuation-only text has no tokens."""
    assert tokenize("") == []
    assert tokenize(" ... — ") == []


def test_split_spoken_drops_punctuation() -> None:
    """Test that punctuation-only transcript tokens are dropped."""
    assert split_spoken("hello , world") == ["hello", "world"]


def test_find_keywords() -> None:
    """Test keyword coverage of a free-form transcript."""
    transcript = "today I talk about renewable energy and climate change"
    assert find_keywords(transcript, ["energy", "climate change", "budget"]) == ["energy", "climate change"]


if __name__ == "__main__":
    pytest.main([__file__])
