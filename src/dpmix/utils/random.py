from __future__ import annotations

from typing import List, Optional, Sequence, Union

import numpy as np
from loguru import logger

RandomState = Union[None, int, np.random.SeedSequence, "RandomVariateSource"]


class RandomVariateSource:
    """
    Explicitly owned source of random draws shared by every sampling call.

    The source wraps a `numpy.random.Generator` driven by the PCG64 bit generator,
    so a given integer seed always yields the same stream. Every consumer receives
    the source as an argument; there is no module level random state.

    Documented consumption:
        - `uniform()` consumes one double from the stream.
        - `categorical(probs)` consumes exactly one `uniform()` and returns the
          first index whose cumulative probability exceeds it.
    """

    def __init__(self, seed: Optional[Union[int, np.random.SeedSequence]] = None):
        """
        Args:
            seed (int | SeedSequence | None): Seed for the PCG64 generator. When None,
                fresh entropy is taken from the OS and logged so the run can be replayed.
        """
        if isinstance(seed, np.random.SeedSequence):
            self.seed_sequence = seed
        else:
            self.seed_sequence = np.random.SeedSequence(seed)

        if seed is None:
            logger.debug(
                f"Seeded random source from OS entropy: {self.seed_sequence.entropy}"
            )

        self.generator = np.random.Generator(np.random.PCG64(self.seed_sequence))

    @property
    def entropy(self) -> int:
        return self.seed_sequence.entropy

    def uniform(self) -> float:
        return float(self.generator.random())

    def categorical(self, probs: Sequence[float]) -> int:
        """
        Draws an index from a normalised categorical distribution by inverting its CDF.

        Args:
            probs (Sequence[float]): Probabilities summing to one.

        Returns:
            int: The sampled category index.
        """
        cdf = np.cumsum(np.asarray(probs, dtype=np.float64))
        u = self.uniform() * cdf[-1]
        index = int(np.searchsorted(cdf, u, side="right"))
        return min(index, len(cdf) - 1)

    def integers(self, low: int, high: int, size: Optional[int] = None):
        return self.generator.integers(low, high, size=size)

    def permutation(self, n: int) -> np.ndarray:
        return self.generator.permutation(n)

    def beta(self, a, b, size=None):
        return self.generator.beta(a, b, size=size)

    def gamma(self, shape, scale=1.0, size=None):
        return self.generator.gamma(shape, scale, size=size)

    def chisquare(self, df, size=None):
        return self.generator.chisquare(df, size=size)

    def normal(self, loc=0.0, scale=1.0, size=None):
        return self.generator.normal(loc, scale, size=size)

    def multivariate_normal(self, mean, cov, size=None):
        return self.generator.multivariate_normal(mean, cov, size=size, method="cholesky")

    def spawn_seeds(self, n: int) -> List[int]:
        """
        Derives `n` statistically independent integer seeds, one per parallel chain.
        """
        children = self.seed_sequence.spawn(n)
        return [int(child.generate_state(1, dtype=np.uint32)[0]) for child in children]

    def __repr__(self) -> str:
        return f"RandomVariateSource(entropy={self.entropy})"


def ensure_random_source(random_state: RandomState = None) -> RandomVariateSource:
    """
    Turns a seed, a seed sequence, None or an existing source into a source.

    An existing `RandomVariateSource` is returned as is, so callers keep sharing
    one stream.
    """
    if isinstance(random_state, RandomVariateSource):
        return random_state
    return RandomVariateSource(random_state)
