"""
Tests for interval merging of watched segments
"""
import random

from viewsync.services.segment_merger import merge_segments


def test_bridges_gap_within_tolerance():
    """Test 1: A 1s gap is bridged with the default 1.5s tolerance"""
    assert merge_segments([(0, 5), (6, 10)]) == [(0, 10)]


def test_keeps_gap_beyond_tolerance():
    """Test 2: A 3s gap stays split"""
    assert merge_segments([(0, 5), (8, 10)]) == [(0, 5), (8, 10)]


def test_gap_exactly_at_tolerance_is_bridged():
    assert merge_segments([(0, 5), (6.5, 9)]) == [(0, 9)]


def test_contained_segment_does_not_shrink_current():
    assert merge_segments([(0, 20), (3, 4), (25, 30)]) == [(0, 20), (25, 30)]


def test_empty_and_single():
    assert merge_segments([]) == []
    assert merge_segments([(2.5, 7.25)]) == [(2.5, 7.25)]


def test_zero_tolerance_only_merges_touching_or_overlapping():
    segments = [(0, 5), (5, 6), (6.1, 8)]
    assert merge_segments(segments, tolerance=0) == [(0, 6), (6.1, 8)]


def test_idempotent():
    segments = [(12, 15), (0, 3), (2, 6), (30, 31), (14, 20), (7.2, 9)]
    once = merge_segments(segments)
    assert merge_segments(once) == once


def test_order_independent():
    rng = random.Random(42)
    segments = [(0, 4), (3.5, 8), (9, 9.5), (20, 25), (11.5, 13), (24, 40), (0, 1)]
    expected = merge_segments(segments)
    for _ in range(20):
        shuffled = segments[:]
        rng.shuffle(shuffled)
        assert merge_segments(shuffled) == expected


def test_output_sorted_and_separated_by_more_than_tolerance():
    rng = random.Random(7)
    segments = []
    for _ in range(50):
        start = rng.uniform(0, 300)
        segments.append((start, start + rng.uniform(0, 10)))
    
    merged = merge_segments(segments)
    for (s1, e1), (s2, e2) in zip(merged, merged[1:]):
        assert s1 <= e1
        assert s2 - e1 > 1.5


def test_does_not_mutate_input():
    segments = [(5, 6), (0, 1)]
    merge_segments(segments)
    assert segments == [(5, 6), (0, 1)]
