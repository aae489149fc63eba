"""Unit tests for string similarity helpers."""

import pytest

from utils.similarity import best_match, levenshtein_distance, similarity


class TestLevenshtein:
    """Tests for levenshtein_distance."""

    @pytest.mark.parametrize("a,b,expected", [
        ("", "", 0),
        ("mulch", "mulch", 0),
        ("", "sod", 3),
        ("sod", "", 3),
        ("mulch", "mulsh", 1),
        ("kitten", "sitting", 3),
        ("edging", "edge", 3),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_distance_is_symmetric(self):
        assert levenshtein_distance("pergola", "pergolla") == levenshtein_distance("pergolla", "pergola")


class TestSimilarity:
    """Tests for normalized similarity and best_match."""

    def test_similarity_bounds(self):
        assert similarity("", "") == 1.0
        assert similarity("mulch", "mulch") == 1.0
        assert similarity("abc", "xyz") == 0.0

    def test_similarity_normalized_by_longest(self):
        assert similarity("mulch", "mulsh") == pytest.approx(0.8)

    def test_best_match(self):
        match, score = best_match("edgeing", ["edging", "mulch", "sod"])
        assert match == "edging"
        assert score > 0.8

    def test_best_match_empty_candidates(self):
        assert best_match("mulch", []) == (None, 0.0)

    def test_best_match_first_wins_ties(self):
        match, _ = best_match("ab", ["ax", "ay"])
        assert match == "ax"
