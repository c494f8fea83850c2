from typing import List

from loguru import logger

from dpmix.processes.law import seat_arrivals
from dpmix.utils.random import RandomState, ensure_random_source


def crp_assignments(n: int, alpha: float, random_state: RandomState = None) -> List[int]:
    """
    Samples table assignments for `n` customers of a Chinese Restaurant Process.

    Args:
        n (int): Number of customers. Zero yields an empty list.
        alpha (float): Dispersion parameter, strictly positive.
        random_state: Seed or `RandomVariateSource` driving the draws.

    Returns:
        List[int]: The table id of each customer, tables numbered in order of opening.

    Raises:
        InvalidParameterError: If alpha <= 0 or n < 0.
    """
    rng = ensure_random_source(random_state)
    tables = seat_arrivals(n, alpha, rng)
    logger.debug(
        f"Seated {len(tables)} customers at {len(set(tables))} tables (alpha={alpha})"
    )
    return tables
