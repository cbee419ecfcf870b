"""
Test: inline comment offset reconciliation against the answer text.
"""
import logging

from examgrader.services.reconciler import find_best_quote_index, reconcile_offsets

# "aa" occurs at 5, 40 and 41 (the last two overlap)
REPEATED = "-" * 5 + "aa" + "-" * 33 + "aaa" + "-" * 10


class TestFindBestQuoteIndex:
    def test_closest_occurrence_wins(self):
        assert find_best_quote_index(REPEATED, "aa", 39) == 40
        assert find_best_quote_index(REPEATED, "aa", 41) == 41
        assert find_best_quote_index(REPEATED, "aa", 0) == 5

    def test_first_occurrence_wins_ties(self):
        text = "ab" + "-" * 8 + "ab"
        assert find_best_quote_index(text, "ab", 5) == 0

    def test_missing_quote(self):
        assert find_best_quote_index("hello world", "planet", 0) is None
        assert find_best_quote_index("hello world", "", 0) is None


class TestReconcileOffsets:
    def test_quote_overrides_offsets(self):
        proposed = {"start_index": 39, "end_index": 39, "quote": "aa"}
        assert reconcile_offsets(REPEATED, proposed) == (40, 42)

    def test_offsets_are_clamped(self):
        proposed = {"start_index": -5, "end_index": 100}
        assert reconcile_offsets("hello world", proposed) == (0, 11)

    def test_garbage_offsets_become_zero(self):
        assert reconcile_offsets("hello world", {"start_index": "abc", "end_index": 5}) == (0, 5)
        assert reconcile_offsets("hello world", {"start_index": float("nan"), "end_index": 4}) == (0, 4)
        assert reconcile_offsets("hello world", {"start_index": True, "end_index": 3}) == (0, 3)
        assert reconcile_offsets("hello world", {"end_index": 2}) == (0, 2)

    def test_empty_range_is_rejected(self):
        assert reconcile_offsets("hello world", {"start_index": 5, "end_index": 5}) is None
        assert reconcile_offsets("hello world", {"start_index": 8, "end_index": 2}) is None
        assert reconcile_offsets("", {"start_index": 0, "end_index": 3}) is None

    def test_unmatched_quote_keeps_clamped_offsets(self):
        proposed = {"start_index": 0, "end_index": 5, "quote": "planet"}
        assert reconcile_offsets("hello world", proposed) == (0, 5)

    def test_far_match_is_used_and_logged(self, caplog):
        text = "x" * 400 + "photosynthesis" + "x" * 10
        proposed = {"start_index": 0, "end_index": 3, "quote": "photosynthesis"}
        with caplog.at_level(logging.WARNING, logger="examgrader"):
            assert reconcile_offsets(text, proposed, tolerance=300) == (400, 414)
        assert any("chars away" in r.getMessage() for r in caplog.records)

    def test_result_is_a_valid_range(self):
        text = "The cell membrane controls what enters and leaves the cell."
        for proposed in (
            {"start_index": 4, "end_index": 17},
            {"start_index": 50, "end_index": 500, "quote": "cell"},
            {"start_index": "7", "end_index": "999"},
        ):
            start, end = reconcile_offsets(text, proposed)
            assert 0 <= start < end <= len(text)

    def test_deterministic(self):
        proposed = {"start_index": 39, "end_index": 0, "quote": "aa"}
        assert reconcile_offsets(REPEATED, proposed) == reconcile_offsets(REPEATED, proposed)
