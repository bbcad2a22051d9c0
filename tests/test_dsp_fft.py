from __future__ import annotations

import numpy as np

from abloop.dsp.fft import cross_correlate, inverse, next_pow2, transform


def test_next_pow2():
    assert next_pow2(0) == 1
    assert next_pow2(1) == 1
    assert next_pow2(5) == 8
    assert next_pow2(1024) == 1024
    assert next_pow2(1025) == 2048


def test_transform_inverse_recovers_signal():
    x = np.random.default_rng(0).standard_normal(100)
    y = inverse(transform(x, 128), 128)
    assert np.allclose(y[:100], x)
    assert np.allclose(y[100:], 0.0)


def test_cross_correlate_matches_direct_correlation():
    rng = np.random.default_rng(1)
    signal = rng.standard_normal(300)
    query = rng.standard_normal(40)
    out = cross_correlate(signal, query)
    direct = np.correlate(signal, query, mode="full")
    assert out.size == signal.size + query.size - 1
    assert np.allclose(out, direct)


def test_cross_correlate_lag_convention():
    rng = np.random.default_rng(2)
    signal = rng.standard_normal(500)
    query = signal[120:170]
    out = cross_correlate(signal, query)
    k = int(np.argmax(out))
    assert k - (query.size - 1) == 120
