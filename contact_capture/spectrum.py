"""Coarse magnitude spectrum for the live display.

The byte payload is read as signed 8-bit samples, transformed with a real
FFT and laid out in packed real/imaginary order::

    [re0, re(n/2), re1, im1, re2, im2, ...]            (even n)
    [re0, im((n-1)/2), re1, im1, ..., re((n-1)/2)]     (odd n)

Magnitudes are taken pairwise over that layout for the first ``n // 4``
pairs. Halving once accounts for the re/im packing; halving again drops a
mirrored region that shows up in practice. The second cut is empirical and
the result is a display aid, not a rigorous spectrum.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


def packed_rfft(samples: np.ndarray) -> np.ndarray:
    """Forward real FFT of ``samples`` in packed real/imaginary layout."""

    n = samples.shape[0]
    spectrum = np.fft.rfft(samples)
    packed = np.empty(n, dtype=np.float64)
    packed[0] = spectrum[0].real
    if n % 2 == 0:
        if n > 1:
            packed[1] = spectrum[n // 2].real
        inner = spectrum[1 : n // 2]
        packed[2:n:2] = inner.real
        packed[3:n:2] = inner.imag
    else:
        if n > 1:
            inner = spectrum[1 : (n + 1) // 2]
            packed[2 : n - 1 : 2] = inner[:-1].real
            packed[3 : n - 1 : 2] = inner[:-1].imag
            packed[n - 1] = inner[-1].real
            packed[1] = inner[-1].imag
    return packed


def estimate_spectrum(data: Optional[bytes]) -> Optional[np.ndarray]:
    """Return ``len(data) // 4`` non-negative magnitudes, or ``None`` if empty."""

    if not data:
        return None
    samples = np.frombuffer(bytes(data), dtype=np.int8).astype(np.float64)
    packed = packed_rfft(samples)
    count = samples.shape[0] // 4
    re = packed[0 : 2 * count : 2]
    im = packed[1 : 2 * count : 2]
    return np.sqrt(re * re + im * im)


__all__ = ["estimate_spectrum", "packed_rfft"]
