"""Unit tests for PatternDetector.

Test Coverage:
- Rapid succession (same-hour burst, severity boundary)
- Circular trading with frequent counterparties
- Wash trading on repeated whole-number amounts
- Layering across several value ranges
- Empty input and order insensitivity
"""

import pytest

from conftest import HOUR_START

from chainscope.analysis.models import PatternType, Severity
from chainscope.analysis.pattern_detector import PatternDetector, value_range


@pytest.fixture
def detector():
    return PatternDetector()


def _of_type(patterns, pattern_type):
    return [p for p in patterns if p.pattern_type == pattern_type]


class TestRapidSuccession:
    """Test suite for the hour-bucket burst heuristic."""

    def test_six_transfers_in_one_hour(self, detector, make_transfer):
        transfers = [
            make_transfer("X", f"R{i}", 5.0, timestamp=HOUR_START + i * 60)
            for i in range(6)
        ]

        patterns = _of_type(detector.detect(transfers, focal_address="X"),
                            PatternType.RAPID_SUCCESSION)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.severity == Severity.MEDIUM
        assert pattern.confidence == 0.8
        assert pattern.evidence == [tx.signature for tx in transfers]
        assert pattern.metadata.count == 6
        assert pattern.metadata.total_value == pytest.approx(30.0)
        assert pattern.metadata.hour == HOUR_START // 3600

    @pytest.mark.parametrize("count,expected", [
        (4, None),
        (5, Severity.MEDIUM),
        (10, Severity.MEDIUM),
        (11, Severity.HIGH),
    ])
    def test_threshold_and_severity(self, detector, make_transfer, count, expected):
        transfers = [
            make_transfer("X", "Y", 0.5, timestamp=HOUR_START + i)
            for i in range(count)
        ]

        patterns = detector.detect_rapid_succession(transfers)

        if expected is None:
            assert patterns == []
        else:
            assert [p.severity for p in patterns] == [expected]

    def test_buckets_are_separate(self, detector, make_transfer):
        transfers = [
            make_transfer("X", "Y", timestamp=HOUR_START + 3000 + i * 100)
            for i in range(6)
        ]

        # 3000..3500 stays in the first hour, 3600+ would spill over
        assert len(detector.detect_rapid_succession(transfers)) == 1

        split = [
            make_transfer("X", "Y", timestamp=HOUR_START + 3300 + i * 100)
            for i in range(6)
        ]
        assert detector.detect_rapid_succession(split) == []


class TestCircularTrading:
    """Test suite for the frequent-counterparty heuristic."""

    def test_frequent_counterparty(self, detector, make_transfer):
        transfers = [
            make_transfer("F", "A"),
            make_transfer("A", "F"),
            make_transfer("F", "A"),
            make_transfer("F", "B"),
        ]

        pattern = detector.detect_circular_trading(transfers, focal_address="F")

        assert pattern.severity == Severity.HIGH
        assert pattern.confidence == 0.7
        assert pattern.metadata.participants == ["A"]
        assert pattern.metadata.total_interactions == 3
        assert pattern.evidence == [tx.signature for tx in transfers[:3]]

    def test_no_frequent_counterparty(self, detector, make_transfer):
        transfers = [make_transfer("F", "A"), make_transfer("F", "B"), make_transfer("A", "F")]

        assert detector.detect_circular_trading(transfers, focal_address="F") is None


class TestWashTrading:
    """Test suite for repeated whole-number amounts."""

    def test_repeated_integer_amount(self, detector, make_transfer):
        transfers = [
            make_transfer("F", "A", 2.0),
            make_transfer("F", "B", 2.0),
            make_transfer("F", "C", 2.0),
            make_transfer("F", "D", 2.5),
        ]

        pattern = detector.detect_wash_trading(transfers)

        assert pattern.severity == Severity.HIGH
        assert pattern.confidence == 0.6
        assert pattern.metadata.rounded_amounts == [2.0]
        assert pattern.metadata.frequency == 3
        assert pattern.evidence == [tx.signature for tx in transfers[:3]]

    def test_fractional_amounts_ignored(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 2.5) for _ in range(5)]

        assert detector.detect_wash_trading(transfers) is None

    def test_two_repeats_not_enough(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 7.0), make_transfer("F", "B", 7.0)]

        assert detector.detect_wash_trading(transfers) is None

    def test_zero_amounts_count_as_integers(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 0.0) for _ in range(3)]

        assert detector.detect_wash_trading(transfers) is not None


class TestLayering:
    """Test suite for value-range concentration."""

    def test_value_range(self):
        assert value_range(25.0, 10.0) == 20.0
        assert value_range(9.99, 10.0) == 0.0

    def test_two_crowded_ranges(self, detector, make_transfer):
        transfers = (
            [make_transfer("F", "A", 11.0 + i) for i in range(5)] +
            [make_transfer("F", "B", 31.5 + i) for i in range(5)] +
            [make_transfer("F", "C", 55.0)]
        )

        pattern = detector.detect_layering(transfers)

        assert pattern.severity == Severity.MEDIUM
        assert pattern.confidence == 0.65
        assert pattern.metadata.value_ranges == [(10.0, 5), (30.0, 5)]
        assert pattern.metadata.total_occurrences == 10
        assert len(pattern.evidence) == 10

    def test_single_range_not_enough(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 11.0 + i) for i in range(8)]

        assert detector.detect_layering(transfers) is None


class TestPatternDetector:
    """Test suite for the combined detection pass."""

    def test_empty_input(self, detector):
        assert detector.detect([]) == []

    def test_order_insensitive(self, detector, make_transfer):
        transfers = [
            make_transfer("F", f"R{i % 3}", float(i % 2 + 1), timestamp=HOUR_START + i * 30)
            for i in range(12)
        ]

        forward = detector.detect(transfers, focal_address="F")
        backward = detector.detect(list(reversed(transfers)), focal_address="F")

        assert [p.pattern_type for p in forward] == [p.pattern_type for p in backward]
        assert [sorted(p.evidence) for p in forward] == [sorted(p.evidence) for p in backward]

    def test_deterministic(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 3.0, timestamp=HOUR_START + i) for i in range(7)]

        first = [p.to_dict() for p in detector.detect(transfers, focal_address="F")]
        second = [p.to_dict() for p in PatternDetector().detect(transfers, focal_address="F")]

        assert first == second

    def test_confidences_bounded(self, detector, make_transfer):
        transfers = [make_transfer("F", "A", 1.0, timestamp=HOUR_START + i) for i in range(30)]

        for pattern in detector.detect(transfers, focal_address="F"):
            assert 0.0 <= pattern.confidence <= 1.0
