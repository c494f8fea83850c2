from typing import List, Tuple

from dpmix.distributions.base import BaseDistribution, Params
from dpmix.processes.law import seat_arrivals
from dpmix.utils.random import RandomState, ensure_random_source


def polya_urn_colors(
    n: int,
    alpha: float,
    base_distribution: BaseDistribution,
    random_state: RandomState = None,
) -> Tuple[List[int], List[Params]]:
    """
    Draws `n` balls from a Blackwell-MacQueen Polya urn.

    Every new colour is drawn once from `base_distribution` the moment it is
    created; later balls of the same colour share that very value.

    Returns:
        Tuple[List[int], List[Params]]: The colour label of each ball, and the
            distinct colour values indexed by label.
    """
    rng = ensure_random_source(random_state)
    palette: List[Params] = []

    def draw_color(_label: int) -> None:
        palette.append(base_distribution.sample(rng))

    colors = seat_arrivals(n, alpha, rng, on_new_group=draw_color)
    return colors, palette


def polya_urn(
    n: int,
    alpha: float,
    base_distribution: BaseDistribution,
    random_state: RandomState = None,
) -> List[Params]:
    """
    Samples a sequence of `n` parameter values from a Polya urn with base
    distribution G0 and dispersion `alpha`.

    Returns:
        List[Params]: The value drawn by each arrival. Arrivals sharing a colour
            reference the same object.
    """
    colors, palette = polya_urn_colors(n, alpha, base_distribution, random_state)
    return [palette[color] for color in colors]
