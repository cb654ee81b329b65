import numpy as np

from pixel_unfake.stats import dominant_or_mean, gcd_array, mean, median, mode, multiply_2x2


def test_median_handles_odd_even_and_empty() -> None:
    assert median([3, 1, 2]) == 2
    assert median([1, 2, 3, 4]) == 2.5
    assert median([]) == 0


def test_mode_returns_first_value_to_reach_top_count() -> None:
    assert mode([1, 2, 2, 1]) == 2
    assert mode([7]) == 7
    assert mode([]) == 0


def test_mean_rounds_half_up() -> None:
    assert mean([1, 2]) == 2
    assert mean([10, 20, 30]) == 20
    assert mean([]) == 0


def test_dominant_or_mean_uses_share_threshold() -> None:
    assert dominant_or_mean([5, 5, 5, 9], 0.5) == 5
    assert dominant_or_mean([1, 2, 3, 4], 0.5) == 3
    assert dominant_or_mean([], 0.5) == 0


def test_gcd_array() -> None:
    assert gcd_array([12, 18, 24]) == 6
    assert gcd_array([4, 6, 9]) == 1
    assert gcd_array([]) == 1


def test_multiply_2x2_matches_matmul_for_single_and_stacked() -> None:
    a = np.array([[1.0, 2.0], [3.0, 4.0]])
    b = np.array([[0.5, -1.0], [2.0, 0.0]])
    assert np.allclose(multiply_2x2(a, b), a @ b)

    rng = np.random.default_rng(3)
    stack_a = rng.normal(size=(5, 2, 2))
    stack_b = rng.normal(size=(5, 2, 2))
    assert np.allclose(multiply_2x2(stack_a, stack_b), np.matmul(stack_a, stack_b))


def test_dominant_or_mean_ties_keep_smallest_value() -> None:
    assert dominant_or_mean([9, 9, 4, 4, 7], 0.3) == 4
    assert dominant_or_mean([200, 10], 0.5) == 10
