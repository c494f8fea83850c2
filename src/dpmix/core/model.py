from typing import Optional, Sequence

from dpmix.errors import ConfigurationError
from dpmix.samplers import BaseSampler, BaseSamplerFitResult


class DPMM:
    """
    Dirichlet-process mixture model fitted by Gibbs sampling.

    Example:
        >>> model = DPMM(
        ...     base_distribution=GaussianMeanPrior(torch.zeros(2), cov=100.0),
        ...     likelihood=GaussianLikelihood(cov=1.0, data_dim=2),
        ...     seed=0,
        ... )
        >>> result = model.fit(data)
    """

    def __init__(
        self,
        sampler: Optional[BaseSampler] = None,
        collapsed: bool = True,
        **kwargs,
    ):
        """
        Args:
            sampler (BaseSampler, optional): A ready sampler to delegate to. When
                given, no sampler options may be passed alongside it.
            collapsed (bool): Which Gibbs variant to build when `sampler` is None.
            **kwargs: Options of the built sampler, see `GibbsSamplerConfig`.

        Raises:
            ConfigurationError: If sampler options are given together with `sampler`.
        """
        if sampler is not None:
            if kwargs:
                raise ConfigurationError(
                    f"Sampler options {sorted(kwargs)} cannot be combined with a "
                    "ready sampler"
                )
            self.sampler = sampler
        else:
            self.sampler = self._build_sampler(collapsed, **kwargs)

    def _build_sampler(self, collapsed: bool, **kwargs) -> BaseSampler:
        if collapsed:
            from dpmix.samplers import CollapsedGibbsSampler

            return CollapsedGibbsSampler(**kwargs)

        from dpmix.samplers import NonCollapsedGibbsSampler

        return NonCollapsedGibbsSampler(**kwargs)

    def fit(
        self,
        data,
        initial_assignment: Optional[Sequence[int]] = None,
        cancel_event=None,
        timeout: Optional[float] = None,
    ) -> BaseSamplerFitResult:
        return self.sampler.fit(
            data,
            initial_assignment=initial_assignment,
            cancel_event=cancel_event,
            timeout=timeout,
        )
