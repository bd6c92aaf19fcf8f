import math

import pytest

from epicore.descriptive import calculate_descriptive_stats, calculate_frequency, calculate_group_comparison


def test_descriptive_stats():
    s = calculate_descriptive_stats([2, 4, 4, 5, None, float("nan"), "x", 7, 9])

    assert s.count == 6
    assert s.missing == 3
    assert s.mean == pytest.approx(31 / 6)
    assert s.median == pytest.approx(4.5)
    assert s.mode == 4
    assert s.variance == pytest.approx(sum((v - 31 / 6) ** 2 for v in [2, 4, 4, 5, 7, 9]) / 5)
    assert s.std_dev == pytest.approx(math.sqrt(s.variance))
    assert (s.min, s.max, s.range, s.sum) == (2, 9, 7, 31)
    # linear interpolation: index 0.25 * 5 = 1.25 and 0.75 * 5 = 3.75
    assert s.q1 == pytest.approx(4.0)
    assert s.q3 == pytest.approx(5 + 0.75 * 2)
    assert s.iqr == pytest.approx(s.q3 - s.q1)


def test_descriptive_stats_edge_cases():
    empty = calculate_descriptive_stats([None, None])
    assert empty.count == 0 and empty.missing == 2
    assert math.isnan(empty.mean) and empty.mode is None

    single = calculate_descriptive_stats([3.5])
    assert single.variance == 0.0 and single.median == 3.5
    assert calculate_descriptive_stats([1, 2, 3]).mode is None


def test_frequency_sorted_by_count_then_first_appearance():
    items = calculate_frequency(["b", "a", "b", None, "", "c", "a", "b", True, 2.0])

    assert [(i.value, i.count) for i in items] == [("b", 3), ("a", 2), ("c", 1), ("true", 1), ("2", 1)]
    assert items[0].percent == pytest.approx(3 / 8 * 100)
    assert items[-1].cum_count == 8
    assert items[-1].cum_percent == pytest.approx(100)


def test_group_comparison():
    pairs = [("B", True)] * 8 + [("B", False)] * 2 + [("A", True)] * 2 + [("A", False)] * 8
    result = calculate_group_comparison(pairs)

    assert [r.group for r in result.rows] == ["A", "B"]
    assert result.rows[0].proportion == pytest.approx(0.2)
    assert result.grand_total == 20
    assert result.degrees_of_freedom == 1
    # expected counts are all 5: 4 cells of (3 ** 2) / 5
    assert result.chi_square == pytest.approx(7.2)
    assert result.p_value == pytest.approx(math.erfc(math.sqrt(7.2 / 2)))


def test_group_comparison_needs_two_groups():
    result = calculate_group_comparison([("A", True), ("A", False)])
    assert (result.chi_square, result.degrees_of_freedom, result.p_value) == (0.0, 0, 1.0)
    assert calculate_group_comparison([]).grand_total == 0


def test_group_comparison_with_a_single_outcome_has_nothing_to_test():
    pairs = [("A", True)] * 3 + [("B", True)] * 4
    result = calculate_group_comparison(pairs)
    assert (result.chi_square, result.degrees_of_freedom, result.p_value) == (0.0, 1, 1.0)


def test_group_comparison_three_groups():
    pairs = [("A", True)] * 5 + [("A", False)] * 5 + [("B", True)] * 5 + [("B", False)] * 5 \
        + [("C", True)] * 5 + [("C", False)] * 5
    result = calculate_group_comparison(pairs)
    assert result.degrees_of_freedom == 2
    assert result.chi_square == pytest.approx(0.0)
    assert result.p_value == pytest.approx(1.0)
