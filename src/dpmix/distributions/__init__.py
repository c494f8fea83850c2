from dpmix.distributions.base import (
    BaseDistribution,
    ObservationLikelihood,
    Params,
    SufficientStatistics,
    stack_params,
)
from dpmix.distributions.beta_bernoulli import BernoulliLikelihood, BetaPrior
from dpmix.distributions.diag_gaussian import (
    DiagonalGaussianLikelihood,
    NormalInverseGammaPrior,
)
from dpmix.distributions.gaussian import GaussianLikelihood, GaussianMeanPrior

__all__ = [
    "BaseDistribution",
    "ObservationLikelihood",
    "Params",
    "SufficientStatistics",
    "stack_params",
    "BernoulliLikelihood",
    "BetaPrior",
    "DiagonalGaussianLikelihood",
    "NormalInverseGammaPrior",
    "GaussianLikelihood",
    "GaussianMeanPrior",
]
