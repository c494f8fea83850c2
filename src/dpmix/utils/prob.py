import numpy as np
import torch
from torch import Tensor

from dpmix.errors import NumericalError
from dpmix.utils.random import RandomVariateSource


def normalize_log_weights(log_weights: Tensor) -> np.ndarray:
    """
    Turns unnormalised log weights into categorical probabilities.

    The weights are shifted by their maximum before exponentiating, so a vector of
    very small likelihoods does not underflow to an all-zero distribution.

    Args:
        log_weights (Tensor): 1D tensor of unnormalised log weights. Entries equal to
            -inf are allowed as long as at least one entry is finite.

    Returns:
        np.ndarray: Probabilities summing to one.

    Raises:
        NumericalError: If any weight is NaN or +inf, or if every weight is -inf.
    """
    log_weights = log_weights.detach().to(dtype=torch.float64).reshape(-1)

    if torch.isnan(log_weights).any() or torch.isposinf(log_weights).any():
        raise NumericalError(
            f"Non-finite categorical log weights: {log_weights.tolist()}"
        )

    max_log_weight = torch.max(log_weights)
    if not torch.isfinite(max_log_weight):
        raise NumericalError("Categorical distribution has zero total weight")

    norm_const = max_log_weight + torch.log(
        torch.sum(torch.exp(log_weights - max_log_weight))
    )
    probs = torch.exp(log_weights - norm_const).cpu().numpy()
    return probs / probs.sum()


def sample_from_log_weights(log_weights: Tensor, rng: RandomVariateSource) -> int:
    """
    Draws a category index from unnormalised log weights using one uniform draw.
    """
    return rng.categorical(normalize_log_weights(log_weights))
