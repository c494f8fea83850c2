"""
The sequential seating law shared by the Chinese Restaurant Process and the Polya
urn: after i arrivals, the next one opens a new group with probability
alpha / (alpha + i) and joins an existing group g with probability
count_g / (alpha + i).
"""

import math
from typing import Callable, List, Optional, Sequence

import numpy as np
from scipy.special import gammaln

from dpmix.errors import InvalidParameterError
from dpmix.utils.random import RandomVariateSource


def check_alpha(alpha: float) -> float:
    """
    Raises:
        InvalidParameterError: If alpha is not a finite, strictly positive number.
    """
    try:
        alpha = float(alpha)
    except (TypeError, ValueError) as e:
        raise InvalidParameterError(f"alpha must be a number, got {alpha!r}") from e

    if not math.isfinite(alpha) or alpha <= 0.0:
        raise InvalidParameterError(f"alpha must be strictly positive, got {alpha}")
    return alpha


def check_size(n: int) -> int:
    """
    Raises:
        InvalidParameterError: If n is not a non-negative integer.
    """
    if isinstance(n, bool):
        raise InvalidParameterError(f"n must be an integer, got {n!r}")
    try:
        as_int = int(n)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidParameterError(f"n must be an integer, got {n!r}") from e

    if as_int != n:
        raise InvalidParameterError(f"n must be an integer, got {n!r}")
    if n < 0:
        raise InvalidParameterError(f"n must be non-negative, got {n}")
    return as_int


def crp_conditional_probabilities(counts: Sequence[int], alpha: float) -> np.ndarray:
    """
    Seating probabilities for the next arrival.

    Args:
        counts (Sequence[int]): Occupancy of the existing groups in creation order.
        alpha (float): Dispersion parameter.

    Returns:
        np.ndarray: Array of length len(counts) + 1; the existing groups in the given
            order followed by the new-group probability.
    """
    alpha = check_alpha(alpha)
    counts_arr = np.asarray(counts, dtype=np.float64)
    if np.any(counts_arr <= 0):
        raise InvalidParameterError("Existing group counts must be positive")

    denom = alpha + counts_arr.sum()
    return np.append(counts_arr, alpha) / denom


def crp_log_probability(labels: Sequence[int], alpha: float) -> float:
    """
    Log probability of a partition under the CRP (the Ewens sampling formula):

        log( alpha^K * Gamma(alpha) / Gamma(alpha + n) * prod_k Gamma(n_k) )

    It depends only on the group sizes, so it is invariant under any reordering of
    the arrivals.
    """
    alpha = check_alpha(alpha)
    n = len(labels)
    if n == 0:
        return 0.0

    _, group_sizes = np.unique(np.asarray(labels), return_counts=True)
    return float(
        len(group_sizes) * math.log(alpha)
        + gammaln(alpha)
        - gammaln(alpha + n)
        + np.sum(gammaln(group_sizes))
    )


def expected_clusters_num(n: int, alpha: float) -> float:
    """Expected number of distinct groups after n arrivals."""
    alpha = check_alpha(alpha)
    n = check_size(n)
    return float(np.sum(alpha / (alpha + np.arange(n))))


def seat_arrivals(
    n: int,
    alpha: float,
    rng: RandomVariateSource,
    on_new_group: Optional[Callable[[int], None]] = None,
) -> List[int]:
    """
    Seats `n` arrivals one at a time and returns the group label of each.

    Group labels are 0, 1, 2, ... in order of creation. The first arrival opens
    group 0 without consuming a draw; every later arrival consumes exactly one
    uniform draw through `rng.categorical`.

    Args:
        n (int): Number of arrivals.
        alpha (float): Dispersion parameter.
        rng (RandomVariateSource): Source of the draws.
        on_new_group (Callable[[int], None], optional): Called with the label of
            every newly opened group, before the next arrival is seated.
    """
    alpha = check_alpha(alpha)
    n = check_size(n)

    labels: List[int] = []
    counts: List[int] = []

    for i in range(n):
        if i == 0:
            group = 0
        else:
            group = rng.categorical(crp_conditional_probabilities(counts, alpha))

        if group == len(counts):
            counts.append(1)
            if on_new_group is not None:
                on_new_group(group)
        else:
            counts[group] += 1

        labels.append(group)

    return labels
