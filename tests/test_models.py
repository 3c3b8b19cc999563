"""Tests for models.py."""

from coverwatch.models import (
    FileCoverage,
    TrackingPhase,
    coverage_from_json,
    coverage_to_json,
    has_hits,
)


def test_phase_buckets():
    assert TrackingPhase.EAGER.bucket == "eager"
    assert TrackingPhase.RUNTIME.bucket == "runtime"
    assert TrackingPhase.UNSET.bucket == "runtime"


def test_has_hits():
    assert has_hits([None, 0, 2])
    assert not has_hits([None, 0, 0])
    assert not has_hits([])


def test_line_stats():
    record = FileCoverage(data=[None, 0, 3, 1, None])
    assert record.relevant_lines == 3
    assert record.covered_lines == 2
    assert round(record.percent_covered, 1) == 66.7
    assert FileCoverage(data=[None]).percent_covered == 0.0


def test_from_dict_tolerates_missing_fields():
    record = FileCoverage.from_dict({"data": [1, None, "2"]})
    assert record == FileCoverage(data=[1, None, 2], file_hash=None, first_updated_at=0, last_updated_at=0)


def test_json_shape():
    coverage = {"a.py": FileCoverage(data=[1], file_hash="h", first_updated_at=3, last_updated_at=4)}
    raw = coverage_to_json(coverage)
    assert raw == {
        "a.py": {"data": [1], "file_hash": "h", "first_updated_at": 3, "last_updated_at": 4}
    }
    assert coverage_from_json(raw) == coverage
    assert coverage_from_json(None) == {}
