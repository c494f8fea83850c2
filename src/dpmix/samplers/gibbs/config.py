from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dpmix.distributions.base import BaseDistribution, ObservationLikelihood
from dpmix.errors import ConfigurationError

InitStrategy = Literal["crp", "random"]


class GibbsSamplerConfig(BaseModel):
    """
    Validated options of a Gibbs sampling run.

    Attributes:
        alpha (float): Dispersion parameter, strictly positive. Initial value when
            `alpha_prior` is set.
        base_distribution (BaseDistribution): The prior G0 over cluster parameters.
        likelihood (ObservationLikelihood): The observation distribution F.
        max_sweeps (int): Sweep budget.
        convergence_window (int): Consecutive stable sweeps the default stopping rule
            requires.
        convergence_tolerance (float): Relative log-likelihood tolerance of the
            default stopping rule.
        seed (int | None): Seed of the chain's random source.
        collapsed (bool): Integrate cluster parameters out instead of sampling them.
        init_strategy (InitStrategy): "crp" seeds the partition with one CRP run,
            "random" assigns observations uniformly among `max_init_clusters` labels.
        max_init_clusters (int): Label count of the "random" initialisation.
        shuffle (bool): Visit observations in a fresh random order every sweep;
            index order otherwise.
        alpha_prior (Tuple[float, float] | None): Gamma(shape, rate) hyperprior;
            when set, alpha is resampled once per sweep.
        show_progress (bool): Display a tqdm progress bar over sweeps.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    alpha: float = Field(default=1.0, gt=0.0, allow_inf_nan=False)
    base_distribution: BaseDistribution
    likelihood: ObservationLikelihood
    max_sweeps: int = Field(default=100, ge=1)
    convergence_window: int = Field(default=5, ge=1)
    convergence_tolerance: float = Field(default=1e-6, ge=0.0)
    seed: Optional[int] = None
    collapsed: bool = True
    init_strategy: InitStrategy = "crp"
    max_init_clusters: int = Field(default=10, ge=1)
    shuffle: bool = True
    alpha_prior: Optional[Tuple[float, float]] = None
    show_progress: bool = False

    @model_validator(mode="after")
    def check_model_pair(self) -> GibbsSamplerConfig:
        self.likelihood.check_compatible(self.base_distribution)

        if self.alpha_prior is not None:
            shape, rate = self.alpha_prior
            if shape <= 0.0 or rate <= 0.0:
                raise ValueError(
                    f"alpha_prior shape and rate must be positive, got {self.alpha_prior}"
                )
        return self

    @classmethod
    def build(cls, **kwargs: Any) -> GibbsSamplerConfig:
        """
        Validates `kwargs`, turning every validation failure into a
        `ConfigurationError`.
        """
        try:
            return cls(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

    def summary(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"base_distribution", "likelihood"})
