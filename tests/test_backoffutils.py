from rpcmiddleware.backoffutils import exponent_base2, jitter_up


def test_jitter_up():
    duration = 10.0
    variance = 0.10
    upper = 11.0
    lower = 9.0
    high = upper * 0.98
    low = lower * 1.02

    high_count = 0
    low_count = 0
    for _ in range(1000):
        out = jitter_up(duration, variance)
        assert out <= upper
        assert out >= lower
        if out > high:
            high_count += 1
        if out < low:
            low_count += 1

    assert high_count > 0
    assert low_count > 0


def test_jitter_zero_keeps_duration():
    assert jitter_up(3.0, 0.0) == 3.0


def test_exponent_base2():
    assert exponent_base2(0) == 0
    assert exponent_base2(1) == 1
    assert exponent_base2(5) == 16