from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from loguru import logger

from dpmix.metrics.convergence import potential_scale_reduction
from dpmix.samplers.base import BaseSamplerFitResult
from dpmix.utils.random import RandomVariateSource


def _build_chain_sampler(seed: int, collapsed: bool, **config):
    if collapsed:
        from dpmix.samplers.gibbs.variants.collapsed import CollapsedGibbsSampler

        return CollapsedGibbsSampler(seed=seed, **config)

    from dpmix.samplers.gibbs.variants.noncollapsed import NonCollapsedGibbsSampler

    return NonCollapsedGibbsSampler(seed=seed, **config)


def run_chains(
    data,
    chains_num: int,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
    **config,
) -> List[BaseSamplerFitResult]:
    """
    Runs independent Gibbs chains on the same observations in a thread pool.

    Each chain owns its cluster state and a random source seeded from a
    `SeedSequence` spawn of `seed`, so the set of results is reproducible whatever
    the scheduling. The base distribution and likelihood are shared read-only.

    Args:
        data: Observations, shape (N, D) or (N,).
        chains_num (int): Number of chains, at least one.
        seed (int, optional): Master seed.
        max_workers (int, optional): Thread pool size. Defaults to `chains_num`.
        cancel_event (threading.Event, optional): Cancels every chain at its next
            sweep boundary once set.
        timeout (float, optional): Wall-clock budget per chain in seconds.
        **config: Options of `GibbsSamplerConfig`, except `seed`.

    Returns:
        List[BaseSamplerFitResult]: One result per chain, in chain order.
    """
    if chains_num < 1:
        raise ValueError(f"chains_num must be positive, got {chains_num}")

    collapsed = config.pop("collapsed", True)
    chain_seeds = RandomVariateSource(seed).spawn_seeds(chains_num)
    # built up front so configuration errors surface before any chain starts
    samplers = [
        _build_chain_sampler(chain_seed, collapsed, **config)
        for chain_seed in chain_seeds
    ]
    logger.info(f"Running {chains_num} chains with seeds {chain_seeds}")

    with ThreadPoolExecutor(max_workers=max_workers or chains_num) as executor:
        futures = [
            executor.submit(
                sampler.fit, data, cancel_event=cancel_event, timeout=timeout
            )
            for sampler in samplers
        ]
        results = [future.result() for future in futures]

    traces = [[ll for _, _, ll in result["trace"]] for result in results]
    if chains_num > 1 and min(len(t) for t in traces) > 1:
        logger.info(f"R-hat of chain log-likelihoods: {potential_scale_reduction(traces):.4f}")

    return results
