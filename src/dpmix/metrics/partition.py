from typing import Sequence

import numpy as np
from scipy.special import comb


def contingency_table(labels_a: Sequence[int], labels_b: Sequence[int]) -> np.ndarray:
    """
    Counts of observations for every (group in a, group in b) pair.

    Returns:
        np.ndarray: Integer matrix of shape (groups in a, groups in b).
    """
    labels_a, labels_b = np.asarray(labels_a), np.asarray(labels_b)
    if labels_a.shape != labels_b.shape:
        raise ValueError(
            f"Partitions must cover the same observations, got shapes "
            f"{labels_a.shape} and {labels_b.shape}"
        )

    _, rows = np.unique(labels_a, return_inverse=True)
    _, cols = np.unique(labels_b, return_inverse=True)
    table = np.zeros((rows.max(initial=-1) + 1, cols.max(initial=-1) + 1), dtype=np.int64)
    np.add.at(table, (rows, cols), 1)
    return table


def _pair_counts(table: np.ndarray):
    together_both = comb(table, 2).sum()
    together_a = comb(table.sum(axis=1), 2).sum()
    together_b = comb(table.sum(axis=0), 2).sum()
    return together_both, together_a, together_b


def rand_distance(labels_a: Sequence[int], labels_b: Sequence[int]) -> float:
    """
    Fraction of observation pairs that are grouped together in one partition and
    apart in the other. Zero means the partitions are identical up to relabelling.
    """
    n = len(labels_a)
    if n < 2:
        return 0.0

    together_both, together_a, together_b = _pair_counts(
        contingency_table(labels_a, labels_b)
    )
    return float((together_a + together_b - 2.0 * together_both) / comb(n, 2))


def adjusted_rand_index(labels_a: Sequence[int], labels_b: Sequence[int]) -> float:
    """
    Rand index corrected for chance: 1 for identical partitions, close to 0 for
    independent ones.
    """
    n = len(labels_a)
    if n < 2:
        return 1.0

    together_both, together_a, together_b = _pair_counts(
        contingency_table(labels_a, labels_b)
    )
    expected = together_a * together_b / comb(n, 2)
    max_index = 0.5 * (together_a + together_b)
    if max_index == expected:
        return 1.0
    return float((together_both - expected) / (max_index - expected))
