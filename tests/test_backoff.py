import pytest

from app.utils.backoff import next_delay


def test_doubles_from_base():
    assert [next_delay(n, 1.0, 60.0) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 16.0]


def test_capped():
    assert next_delay(7, 1.0, 60.0) == 60.0
    assert next_delay(100, 0.5, 5.0) == 5.0


def test_huge_attempt_does_not_overflow():
    assert next_delay(10_000, 1.0, 30.0) == 30.0


@pytest.mark.parametrize("attempt", [0, -1])
def test_no_delay_before_first_failure(attempt):
    assert next_delay(attempt, 1.0, 60.0) == 0.0


def test_non_positive_base_means_no_delay():
    assert next_delay(3, 0, 60.0) == 0.0
