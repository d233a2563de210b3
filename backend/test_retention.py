"""
Tests for per-viewer retention aggregation
"""
from viewsync.models.watch import WatchRecord
from viewsync.services.retention import RetentionAggregator, format_time, round_half_up


def summarize(segments, duration, name="Alice"):
    record = WatchRecord(viewer_name=name, watched_segments=segments)
    return RetentionAggregator().summarize("viewer-1", record, duration)


def test_inclusive_boundary_coverage():
    """Test 1: [(2, 5)] over 10s marks seconds 2..5 inclusive"""
    summary = summarize([(2, 5)], 10)
    watched = [t for t, sample in enumerate(summary.retention_samples) if sample.watched]
    
    assert watched == [2, 3, 4, 5]
    assert summary.total_watch_seconds == 4
    assert summary.completion_percent == 40
    assert summary.viewer_name == "Alice"
    assert summary.viewer_id == "viewer-1"


def test_full_watch_is_complete():
    summary = summarize([(0, 10)], 10)
    assert summary.total_watch_seconds == 10
    assert summary.completion_percent == 100


def test_fractional_bounds_round_outward():
    summary = summarize([(1.6, 3.2)], 10)
    watched = [t for t, s in enumerate(summary.retention_samples) if s.watched]
    assert watched == [1, 2, 3, 4]


def test_zero_duration():
    summary = summarize([(0, 3)], 0)
    assert summary.retention_samples == []
    assert summary.total_watch_seconds == 0
    assert summary.completion_percent == 0


def test_segments_beyond_duration_are_clipped():
    summary = summarize([(8, 14.7)], 10)
    assert len(summary.retention_samples) == 10
    assert summary.total_watch_seconds == 2
    assert summary.completion_percent == 20


def test_fractional_duration_sample_count():
    summary = summarize([(0, 12.5)], 12.5)
    assert len(summary.retention_samples) == 13
    assert summary.total_watch_seconds == 13
    assert summary.completion_percent == 104


def test_residual_overlap_is_not_double_counted():
    summary = summarize([(0, 4), (2, 6)], 10)
    assert summary.total_watch_seconds == 7


def test_unwatched_record():
    summary = summarize([], 5)
    assert [s.watched for s in summary.retention_samples] == [0, 0, 0, 0, 0]
    assert summary.completion_percent == 0


def test_sample_labels():
    summary = summarize([], 3)
    assert [s.time_label for s in summary.retention_samples] == ["00:00", "00:01", "00:02"]


def test_format_time():
    assert format_time(0) == "00:00"
    assert format_time(59) == "00:59"
    assert format_time(61) == "01:01"
    assert format_time(59.6) == "01:00"
    assert format_time(3725) == "62:05"


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(41.4) == 41
