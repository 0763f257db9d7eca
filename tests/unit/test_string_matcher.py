"""Unit tests for string_matcher.py."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from feelsmeter.analysis.string_matcher import (
    BestMatch,
    best_candidate,
    combined_score,
    find_best_match,
    fuzzy_match,
    normalize,
    similarity_ratio,
)


class TestSimilarityRatio:
    """Test cases for normalized Levenshtein similarity."""

    def test_identical_strings(self):
        assert similarity_ratio("Queen", "Queen") == 1.0

    def test_case_insensitive(self):
        assert similarity_ratio("QUEEN", "queen") == 1.0

    def test_surrounding_whitespace_ignored(self):
        assert similarity_ratio("  queen ", "queen") == 1.0

    def test_kitten_sitting(self):
        """Test the textbook distance of 3 over length 7."""
        assert similarity_ratio("kitten", "sitting") == pytest.approx(1 - 3 / 7, abs=1e-3)

    def test_symmetric(self):
        assert similarity_ratio("beatles", "beetles") == similarity_ratio("beetles", "beatles")

    @pytest.mark.parametrize("a,b", [(None, "x"), ("x", None), ("", "x"), ("x", ""), (None, None)])
    def test_missing_input_scores_zero(self, a, b):
        assert similarity_ratio(a, b) == 0.0

    def test_completely_different(self):
        assert similarity_ratio("abc", "xyz") == 0.0


class TestFuzzyMatch:
    """Test cases for threshold matching."""

    def test_default_threshold(self):
        assert fuzzy_match("The Beatles", "The Beatles!")
        assert not fuzzy_match("The Beatles", "Rolling Stones")

    def test_threshold_is_inclusive(self):
        score = similarity_ratio("kitten", "sitting")
        assert fuzzy_match("kitten", "sitting", threshold=score)

    def test_custom_threshold(self):
        assert fuzzy_match("kitten", "sitting", threshold=0.5)
        assert not fuzzy_match("kitten", "sitting", threshold=0.6)


class TestFindBestMatch:
    """Test cases for best-candidate search over strings."""

    def test_finds_best(self):
        result = find_best_match("beatles", ["rolling stones", "the beatles", "beetles"])

        assert isinstance(result, BestMatch)
        assert result.match == "beetles"
        assert result.index == 2

    def test_ties_keep_first(self):
        result = find_best_match("abc", ["abd", "abe"])

        assert result.match == "abd"
        assert result.index == 0

    def test_skips_empty_candidates_but_keeps_numbering(self):
        result = find_best_match("queen", [None, "", "queen"])

        assert result.index == 2
        assert result.score == 1.0

    @pytest.mark.parametrize("candidates", [[], None])
    def test_no_candidates(self, candidates):
        assert find_best_match("queen", candidates) is None

    def test_empty_query(self):
        assert find_best_match("", ["queen"]) is None

    def test_below_threshold(self):
        assert find_best_match("queen", ["metallica", "slayer"]) is None

    def test_threshold_boundary(self):
        score = similarity_ratio("kitten", "sitting")

        assert find_best_match("kitten", ["sitting"], threshold=score) is not None
        assert find_best_match("kitten", ["sitting"], threshold=score + 0.01) is None


class TestCombinedScore:
    """Test cases for artist/song record comparison."""

    def test_identical_records(self):
        record = {"artist": "Queen", "song": "Bohemian Rhapsody"}
        assert combined_score(record, dict(record)) == 1.0

    def test_mean_of_fields(self):
        query = {"artist": "Queen", "song": "kitten"}
        candidate = {"artist": "queen", "song": "sitting"}

        expected = (1.0 + similarity_ratio("kitten", "sitting")) / 2
        assert combined_score(query, candidate) == pytest.approx(expected)

    def test_field_missing_on_both_sides_is_skipped(self):
        assert combined_score({"artist": "Queen"}, {"artist": "Queen"}) == 1.0

    def test_field_missing_on_one_side_counts_zero(self):
        assert combined_score({"artist": "Queen", "song": "x"}, {"artist": "Queen"}) == 0.5

    def test_nothing_comparable(self):
        assert combined_score({}, {}) == 0.0
        assert combined_score(None, None) == 0.0

    def test_accepts_objects(self):
        class Record:
            artist = "Queen"
            song = "Bohemian Rhapsody"

        assert combined_score({"artist": "queen", "song": "bohemian rhapsody"}, Record()) == 1.0


class TestBestCandidate:
    """Test cases for picking a candidate record."""

    def test_picks_highest_combined_score(self):
        query = {"artist": "Queen", "song": "Bohemian Rhapsody"}
        candidates = [
            {"artist": "Queen", "song": "We Will Rock You"},
            {"artist": "Queen", "song": "Bohemian Rhapsody"},
        ]

        candidate, score = best_candidate(query, candidates)

        assert candidate is candidates[1]
        assert score == 1.0

    def test_ties_keep_first(self):
        query = {"artist": "a", "song": "b"}
        candidates = [{"artist": "a", "song": "b"}, {"artist": "a", "song": "b"}]

        candidate, _ = best_candidate(query, candidates)

        assert candidate is candidates[0]

    def test_min_score(self):
        query = {"artist": "Queen", "song": "Bohemian Rhapsody"}
        candidates = [{"artist": "Slayer", "song": "Raining Blood"}]

        assert best_candidate(query, candidates, min_score=0.9) is None

    @pytest.mark.parametrize("candidates", [[], None, [None]])
    def test_no_candidates(self, candidates):
        assert best_candidate({"artist": "a"}, candidates) is None


def test_normalize():
    assert normalize("  AC/DC -- Back in Black!  ") == "ac dc back in black"
    assert normalize(None) == ""
