from __future__ import annotations

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, ConfigDict


class SweepRecord(BaseModel):
    """
    Statistics of the partition at the end of one sweep.

    Attributes:
        sweep (int): Zero-based sweep index.
        clusters_num (int): Number of live clusters.
        log_likelihood (float): Data log-likelihood under the current assignment.
        alpha (float): Dispersion parameter in effect after the sweep.
        partition_distance (float | None): Rand distance to the partition the sweep
            started from.
    """

    model_config = ConfigDict(frozen=True)

    sweep: int
    clusters_num: int
    log_likelihood: float
    alpha: float
    partition_distance: Optional[float] = None


class ConvergenceMonitor:
    """
    Passive recorder of the sampler trace. It only ever reads the values it is
    handed and never touches the cluster state.
    """

    def __init__(self):
        self.records: List[SweepRecord] = []

    def record(
        self,
        sweep: int,
        clusters_num: int,
        log_likelihood: float,
        alpha: float,
        partition_distance: Optional[float] = None,
    ) -> SweepRecord:
        entry = SweepRecord(
            sweep=sweep,
            clusters_num=clusters_num,
            log_likelihood=log_likelihood,
            alpha=alpha,
            partition_distance=partition_distance,
        )
        self.records.append(entry)
        return entry

    def has_converged(self, window: int, tolerance: float) -> bool:
        """
        True when, over the last `window` sweeps, the cluster count never changed
        and every log-likelihood differs from the previous sweep's by at most
        `tolerance * max(1, |log-likelihood|)`.

        Args:
            window (int): Number of consecutive stable sweeps required.
            tolerance (float): Relative log-likelihood tolerance.
        """
        if window < 1:
            raise ValueError(f"window must be positive, got {window}")
        if len(self.records) < window + 1:
            return False

        recent = self.records[-(window + 1) :]
        for prev, curr in zip(recent[:-1], recent[1:]):
            if prev.clusters_num != curr.clusters_num:
                return False
            scale = max(1.0, abs(curr.log_likelihood))
            if abs(curr.log_likelihood - prev.log_likelihood) > tolerance * scale:
                return False
        return True

    def as_tuples(self) -> List[Tuple[int, int, float]]:
        """Returns the trace as (sweep, clusters_num, log_likelihood) tuples."""
        return [(r.sweep, r.clusters_num, r.log_likelihood) for r in self.records]

    @property
    def log_likelihoods(self) -> np.ndarray:
        return np.array([r.log_likelihood for r in self.records], dtype=np.float64)

    @property
    def clusters_nums(self) -> np.ndarray:
        return np.array([r.clusters_num for r in self.records], dtype=np.int64)

    def __len__(self) -> int:
        return len(self.records)


def potential_scale_reduction(traces: Sequence[Sequence[float]]) -> float:
    """
    Gelman-Rubin potential scale reduction factor (R-hat) of a scalar statistic
    traced by several independent chains. Chains are truncated to the shortest.

    Args:
        traces (Sequence[Sequence[float]]): One series per chain, e.g. the
            per-sweep log-likelihood.

    Returns:
        float: R-hat; values close to 1 indicate the chains mix over the same region.

    Raises:
        ValueError: With fewer than two chains or fewer than two values per chain.
    """
    if len(traces) < 2:
        raise ValueError("At least two chains are needed to compute R-hat")

    length = min(len(t) for t in traces)
    if length < 2:
        raise ValueError("Each chain needs at least two values to compute R-hat")

    chains = np.asarray([np.asarray(t[:length], dtype=np.float64) for t in traces])
    between = length * np.var(chains.mean(axis=1), ddof=1)
    within = np.mean(np.var(chains, axis=1, ddof=1))

    if within == 0.0:
        return 1.0 if between == 0.0 else math.inf

    var_hat = (length - 1) / length * within + between / length
    r_hat = float(np.sqrt(var_hat / within))
    logger.debug(f"R-hat over {len(traces)} chains of length {length}: {r_hat:.4f}")
    return r_hat
