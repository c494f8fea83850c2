from __future__ import annotations

import math
import threading
import time
import warnings
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import torch
from loguru import logger
from torch import Tensor
from tqdm import tqdm

from dpmix.distributions.base import Params
from dpmix.errors import ConfigurationError, ConvergenceWarning, NumericalError
from dpmix.metrics.convergence import ConvergenceMonitor
from dpmix.metrics.partition import rand_distance
from dpmix.processes.crp import crp_assignments
from dpmix.samplers.base import BaseSampler, BaseSamplerFitResult, SamplerStatus
from dpmix.samplers.gibbs.config import GibbsSamplerConfig
from dpmix.samplers.gibbs.state import Cluster, ClusterState
from dpmix.utils import prob as prob_utils
from dpmix.utils.random import RandomVariateSource

StoppingRule = Callable[[ConvergenceMonitor], bool]


class GibbsSampler(ABC, BaseSampler):
    """
    Abstract base class of the Gibbs samplers for Dirichlet-process mixture models.

    It owns the sweep loop: each observation is removed from its cluster, a
    categorical distribution over every live cluster plus a new one is built, and
    the observation is reassigned by one draw from the chain's random source.
    Subclasses decide how a cluster scores an observation and whether cluster
    parameters are sampled or integrated out.
    """

    collapsed: bool

    def __init__(self, stopping_rule: Optional[StoppingRule] = None, **kwargs) -> None:
        """
        Initializes the Gibbs sampler.

        Args:
            stopping_rule (Callable[[ConvergenceMonitor], bool], optional): Predicate
                checked after every sweep; the run stops as soon as it returns True.
                Defaults to `ConvergenceMonitor.has_converged` with the configured
                window and tolerance.
            **kwargs: Options of `GibbsSamplerConfig`.

        Raises:
            ConfigurationError: If the options are invalid, before any sampling.
        """
        if kwargs.get("collapsed", self.collapsed) != self.collapsed:
            raise ConfigurationError(
                f"{type(self).__name__} cannot run with collapsed={kwargs['collapsed']}"
            )
        kwargs["collapsed"] = self.collapsed

        self.config = GibbsSamplerConfig.build(**kwargs)
        self.base_distribution = self.config.base_distribution
        self.likelihood = self.config.likelihood
        self.alpha = self.config.alpha
        self.stopping_rule = stopping_rule or self.default_stopping_rule

        self.rng = RandomVariateSource(self.config.seed)
        self.status = SamplerStatus.INITIALIZING
        self.monitor = ConvergenceMonitor()
        self.state: Optional[ClusterState] = None
        self._log_prior_predictive: Optional[Tensor] = None

        logger.info(f"Initialized model: {self.print_model()}")

    @abstractmethod
    def cluster_log_likelihoods(
        self, x: Tensor, state: ClusterState, slots: List[int]
    ) -> Tensor:
        """
        Log score of observation `x` under each of the given live clusters, excluding
        the count factor.

        Args:
            x (Tensor): The observation, shape (1, D).
            state (ClusterState): Current state, with `x` already removed.
            slots (List[int]): Live slots to score, in order.

        Returns:
            Tensor: Log scores of shape (len(slots),).
        """
        pass

    @abstractmethod
    def new_cluster_params(self, x: Tensor) -> Optional[Params]:
        """Parameter of a cluster opened by observation `x`; None when collapsed."""
        pass

    @abstractmethod
    def initialize_cluster_params(self, state: ClusterState) -> None:
        pass

    @abstractmethod
    def after_sweep(self, state: ClusterState) -> None:
        pass

    @abstractmethod
    def data_log_likelihood(self, state: ClusterState) -> float:
        """Log-likelihood of all observations under the current assignment."""
        pass

    @abstractmethod
    def cluster_point_estimate(self, cluster: Cluster) -> Params:
        """Parameter estimate reported for a cluster in the fit result."""
        pass

    def default_stopping_rule(self, monitor: ConvergenceMonitor) -> bool:
        return monitor.has_converged(
            self.config.convergence_window, self.config.convergence_tolerance
        )

    def prepare_data(self, data) -> Tensor:
        """
        Converts observations to a float64 tensor of shape (N, D); scalars become
        1-vectors. The tensor is a private copy and is never written to.

        Raises:
            ConfigurationError: For empty, non-finite or mis-shaped data.
        """
        data_t = torch.as_tensor(data, dtype=torch.float64).detach().clone()
        if data_t.dim() == 1:
            data_t = data_t.unsqueeze(-1)
        if data_t.dim() != 2:
            raise ConfigurationError(
                f"Observations must be scalars or vectors, got data of shape {tuple(data_t.shape)}"
            )
        if data_t.shape[0] == 0:
            raise ConfigurationError("At least one observation is required")
        if not torch.isfinite(data_t).all():
            raise ConfigurationError("Observations must be finite")
        if data_t.shape[1] != self.base_distribution.data_dim:
            raise ConfigurationError(
                f"Observations have dimensionality {data_t.shape[1]}, the base "
                f"distribution expects {self.base_distribution.data_dim}"
            )
        return data_t

    def get_initial_assignment(
        self, n_points: int, initial_assignment: Optional[Sequence[int]] = None
    ) -> List[int]:
        """
        Initial label of every observation: the given assignment, one CRP run with
        the current alpha, or uniform labels among `max_init_clusters`.
        """
        if initial_assignment is not None:
            labels = [int(label) for label in initial_assignment]
            if len(labels) != n_points:
                raise ConfigurationError(
                    f"initial_assignment has {len(labels)} labels for {n_points} observations"
                )
            return labels

        if self.config.init_strategy == "crp":
            return crp_assignments(n_points, self.alpha, self.rng)

        clusters_num = min(n_points, self.config.max_init_clusters)
        return self.rng.integers(0, clusters_num, size=n_points).tolist()

    def initialize_state(
        self, data: Tensor, initial_assignment: Optional[Sequence[int]] = None
    ) -> ClusterState:
        labels = self.get_initial_assignment(data.shape[0], initial_assignment)
        state = ClusterState.from_labels(data, labels)
        self.initialize_cluster_params(state)

        # constant for the whole run
        self._log_prior_predictive = self.likelihood.log_prior_predictive(
            data, self.base_distribution
        )
        logger.info(f"Chosen first assignment, clusters num: {state.clusters_num}")
        return state

    def resample_assignment(self, state: ClusterState, index: int) -> None:
        """
        One Gibbs step for observation `index`. The removal is undone if anything
        fails before the observation is reassigned.
        """
        record = state.remove(index)
        try:
            slots = state.live_slots()
            x = state.data[index].unsqueeze(0)

            if slots:
                counts = torch.as_tensor(state.counts(slots), dtype=torch.float64)
                existing_log_weights = torch.log(counts) + self.cluster_log_likelihoods(
                    x, state, slots
                )
            else:
                existing_log_weights = torch.empty(0, dtype=torch.float64)

            new_log_weight = math.log(self.alpha) + self._log_prior_predictive[index]
            all_log_weights = torch.cat(
                [existing_log_weights, new_log_weight.reshape(1)]
            )
            choice = prob_utils.sample_from_log_weights(all_log_weights, self.rng)
            params = self.new_cluster_params(x) if choice == len(slots) else None
        except NumericalError:
            state.rollback(record)
            raise

        if choice == len(slots):
            state.open_cluster(index, params=params)
        else:
            state.join(index, slots[choice])

    def sweep(self, state: ClusterState) -> None:
        """One pass over every observation, in random order when shuffling."""
        if self.config.shuffle:
            order = self.rng.permutation(state.n_points)
        else:
            order = np.arange(state.n_points)

        for index in order:
            self.resample_assignment(state, int(index))

        state.refresh_statistics()
        self.after_sweep(state)

    def fit(
        self,
        data,
        initial_assignment: Optional[Sequence[int]] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> BaseSamplerFitResult:
        """
        Runs sweeps until the stopping rule holds, the budget runs out, or the run is
        cancelled. Cancellation and timeout are only checked between sweeps.

        Args:
            data: Observations, shape (N, D) or (N,).
            initial_assignment (Sequence[int], optional): Initial label per observation.
            cancel_event (threading.Event, optional): Stops the run at the next sweep
                boundary once set.
            timeout (float, optional): Wall-clock budget in seconds.

        Returns:
            BaseSamplerFitResult: Final partition, cluster estimates and trace.

        Raises:
            ConfigurationError: For invalid data, before any state is built.
            NumericalError: If a sweep fails; its `result` holds the state as of the
                last successful sweep.
        """
        self.status = SamplerStatus.INITIALIZING
        self.monitor = ConvergenceMonitor()
        self.alpha = self.config.alpha

        data_t = self.prepare_data(data)
        state = self.initialize_state(data_t, initial_assignment)
        self.state = state

        last_good = state.copy()
        prev_labels = state.labels()
        started = time.monotonic()
        self.status = SamplerStatus.SWEEPING

        progress_bar = tqdm(
            range(self.config.max_sweeps), disable=not self.config.show_progress
        )
        for sweep_num in progress_bar:
            if self._cancel_requested(cancel_event, started, timeout):
                self.status = SamplerStatus.CANCELLED
                logger.warning(f"Run cancelled before sweep {sweep_num}")
                break

            try:
                self.sweep(state)
                ass_ll = self.data_log_likelihood(state)
                if not math.isfinite(ass_ll):
                    raise NumericalError(f"Data log-likelihood is {ass_ll}")
            except NumericalError as e:
                self.state = last_good
                self.status = SamplerStatus.ABORTED
                logger.error(f"Sweep {sweep_num} aborted: {e}")
                e.result = self._build_result(last_good)
                raise

            if self.config.alpha_prior is not None:
                self.alpha = self.update_alpha(
                    self.alpha, state.n_points, state.clusters_num
                )

            labels = state.labels()
            self.monitor.record(
                sweep=sweep_num,
                clusters_num=state.clusters_num,
                log_likelihood=ass_ll,
                alpha=self.alpha,
                partition_distance=rand_distance(prev_labels, labels),
            )
            logger.debug(
                "Finished sweep %d, current clusters number: %d, assignment ll: %.2f, "
                "curr-alpha: %.2f" % (sweep_num, state.clusters_num, ass_ll, self.alpha)
            )
            progress_bar.set_description(f"Sweep: {sweep_num}")
            progress_bar.set_postfix(clusters_num=state.clusters_num, alpha=self.alpha)

            last_good = state.copy()
            prev_labels = labels

            if self.stopping_rule(self.monitor):
                self.status = SamplerStatus.CONVERGED
                logger.info(
                    f"Converged after {sweep_num + 1} sweeps with "
                    f"{state.clusters_num} clusters"
                )
                break
        else:
            self.status = SamplerStatus.EXHAUSTED
            message = (
                f"Sweep budget of {self.config.max_sweeps} exhausted before "
                "the stopping rule was met"
            )
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=2)

        return self._build_result(state)

    def update_alpha(self, old_alpha: float, n_points: int, k: int) -> float:
        """
        Updates the dispersion parameter alpha using auxiliary variable sampling
        under its Gamma(shape, rate) hyperprior (Escobar and West, 1995).

        Given eta ~ Beta(alpha + 1, n), the new alpha is drawn from the mixture

            pi * Gamma(a + k, b - log eta) + (1 - pi) * Gamma(a + k - 1, b - log eta)

        with pi / (1 - pi) = (a + k - 1) / (n * (b - log eta)). The chain leaves
        p(alpha | k, n) invariant.

        Args:
            old_alpha (float): The current value of alpha.
            n_points (int): The total number of data points.
            k (int): The current number of live clusters.

        Returns:
            float: The newly sampled value for alpha.
        """
        a, b = self.config.alpha_prior
        eta = float(self.rng.beta(old_alpha + 1.0, n_points))
        rate = b - np.log(eta)

        odds = (a + k - 1) / (n_points * rate)
        shape = a + k if self.rng.uniform() < odds / (1.0 + odds) else a + k - 1

        return float(self.rng.gamma(shape, 1.0 / rate))

    def cluster_estimates(self, state: ClusterState) -> Dict[str, List[Tensor]]:
        """Per-cluster parameter estimates, ordered like `state.cluster_labels()`."""
        estimates: Dict[str, List[Tensor]] = {}
        for cluster in sorted(state.clusters(), key=lambda c: c.label):
            for p_name, p_val in self.cluster_point_estimate(cluster).items():
                estimates.setdefault(p_name, []).append(p_val)
        return estimates

    def _build_result(self, state: ClusterState) -> BaseSamplerFitResult:
        return {
            "assignment": state.labels().tolist(),
            "cluster_assignment": state.cluster_assignment(),
            "cluster_labels": state.cluster_labels(),
            "cluster_params": self.cluster_estimates(state),
            "alpha": self.alpha,
            "trace": self.monitor.as_tuples(),
            "status": self.status,
            "sweeps": len(self.monitor),
        }

    @staticmethod
    def _cancel_requested(
        cancel_event: Optional[threading.Event],
        started: float,
        timeout: Optional[float],
    ) -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return timeout is not None and time.monotonic() - started >= timeout

    def print_model(self) -> str:
        """
        Formats the sampler's configuration as a readable string.

        Returns:
            str: A formatted string representing the sampler setup.
        """
        options = ", ".join(f"{k}={v}" for k, v in self.config.summary().items())
        return (
            f"{type(self).__name__}(base_distribution={self.base_distribution}, "
            f"likelihood={self.likelihood}, {options})"
        )
