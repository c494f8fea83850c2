from __future__ import annotations

from typing import List, NamedTuple, Optional

import numpy as np
from loguru import logger

from dpmix.distributions.base import BaseDistribution, Params
from dpmix.errors import InvalidParameterError
from dpmix.processes.law import check_alpha, check_size
from dpmix.utils.random import RandomState, ensure_random_source


class StickBreakingWeights(NamedTuple):
    """
    Attributes:
        weights (np.ndarray): The first K stick weights, in breaking order.
        remainder (float): Length of stick left unbroken, 1 - sum(weights). This is
            the exact truncation error of the K-component representation.
        expected_remainder (float): Prior expectation of the remainder,
            (alpha / (1 + alpha)) ** K.
        atoms (List[Params] | None): One G0 draw per weight, when a base
            distribution was given.
    """

    weights: np.ndarray
    remainder: float
    expected_remainder: float
    atoms: Optional[List[Params]] = None


def expected_truncation_error(alpha: float, components_num: int) -> float:
    """E[1 - sum of the first K weights] = (alpha / (1 + alpha)) ** K."""
    alpha = check_alpha(alpha)
    return float((alpha / (1.0 + alpha)) ** check_size(components_num))


def stick_breaking(
    n: Optional[int],
    alpha: float,
    base_distribution: Optional[BaseDistribution] = None,
    random_state: RandomState = None,
    tolerance: float = 1e-6,
    max_components: int = 10_000,
) -> StickBreakingWeights:
    """
    Sethuraman's stick-breaking construction of Dirichlet-process weights:

        beta_k ~ Beta(1, alpha),  w_k = beta_k * prod_{j<k} (1 - beta_j)

    Args:
        n (int | None): Number of sticks to break. When None, sticks are broken until
            the remaining length drops below `tolerance` or `max_components` weights
            exist.
        alpha (float): Dispersion parameter, strictly positive.
        base_distribution (BaseDistribution, optional): When given, one atom is
            drawn per weight after all the stick proportions.
        random_state: Seed or `RandomVariateSource` driving the draws.
        tolerance (float): Remainder threshold used when `n` is None.
        max_components (int): Hard cap on the number of weights when `n` is None.

    Returns:
        StickBreakingWeights: The weights together with the truncation error.
    """
    alpha = check_alpha(alpha)
    rng = ensure_random_source(random_state)

    weights: List[float] = []
    remainder = 1.0

    if n is not None:
        n = check_size(n)
        if n > 0:
            betas = rng.beta(1.0, alpha, size=n)
            # remaining.shape -> (n,), stick length left before each break
            remaining = np.concatenate([[1.0], np.cumprod(1.0 - betas)[:-1]])
            weights = list(betas * remaining)
            remainder = float(np.prod(1.0 - betas))
    else:
        if tolerance <= 0.0:
            raise InvalidParameterError("tolerance must be strictly positive")
        max_components = check_size(max_components)
        while remainder >= tolerance and len(weights) < max_components:
            beta = float(rng.beta(1.0, alpha))
            weights.append(beta * remainder)
            remainder *= 1.0 - beta

        if remainder >= tolerance:
            logger.warning(
                f"Stick-breaking stopped at {max_components} components with "
                f"remainder {remainder:.3e} above tolerance {tolerance:.1e}"
            )

    atoms = None
    if base_distribution is not None:
        atoms = [base_distribution.sample(rng) for _ in weights]

    return StickBreakingWeights(
        weights=np.asarray(weights, dtype=np.float64),
        remainder=remainder,
        expected_remainder=expected_truncation_error(alpha, len(weights)),
        atoms=atoms,
    )
