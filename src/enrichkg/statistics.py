"""
statistics.py — Significance helpers for over-representation analysis.

``calculate_p_value`` gives the probability of seeing at least *found* hits
in a sample of *sample_size* identifiers when each one lands in the pathway
with probability *ratio* (binomial upper tail).  ``benjamini_hochberg``
corrects a batch of p-values across pathways.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy.stats import binom
from statsmodels.stats.multitest import multipletests


def calculate_p_value(ratio: float, sample_size: int, found: int) -> float:
    """
    One-sided binomial p-value ``P(X >= found)``, ``X ~ B(sample_size, ratio)``.

    :param ratio: Background proportion of the pathway, in ``[0, 1]``.
    :param sample_size: Number of submitted identifiers.
    :param found: Number of hits in the pathway.
    :return: p-value in ``[0, 1]``.
    :raises ValueError: On negative counts or a ratio outside ``[0, 1]``.
    """
    if sample_size < 0 or found < 0:
        raise ValueError(f"counts must be non-negative (sample_size={sample_size}, found={found})")
    if not 0.0 <= ratio <= 1.0:
        raise ValueError(f"ratio must be within [0, 1], got {ratio!r}")
    p = binom.sf(found - 1, sample_size, ratio)
    return float(np.clip(p, 0.0, 1.0))


def adjust_p_values(p_values: Sequence[float], method: str = "fdr_bh") -> list[float]:
    """
    Multiple-testing correction of *p_values* with statsmodels.

    :param p_values: Raw p-values.
    :param method: Any ``multipletests`` method name (``fdr_bh``, ``bonferroni`` …).
    :return: Corrected values in input order.
    """
    if len(p_values) == 0:
        return []
    _, corrected, _, _ = multipletests(np.asarray(p_values, dtype=float), method=method)
    return [float(v) for v in corrected]


def benjamini_hochberg(p_values: Sequence[float]) -> list[float]:
    """Benjamini–Hochberg false discovery rate for *p_values*."""
    return adjust_p_values(p_values, method="fdr_bh")
