from hrflow.utils.retry import compute_backoff


def test_constant_backoff_by_default():
    assert [compute_backoff(n, 2.0) for n in (1, 2, 3)] == [2.0, 2.0, 2.0]


def test_exponential_backoff_with_cap():
    assert [compute_backoff(n, 1.0, multiplier=2.0, cap=5.0) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_jitter_stays_within_bounds():
    for _ in range(20):
        assert 1.0 <= compute_backoff(1, 1.0, jitter=0.5) <= 1.5
