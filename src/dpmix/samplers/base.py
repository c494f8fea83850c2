from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple, TypedDict

import torch


class SamplerStatus(str, Enum):
    INITIALIZING = "initializing"
    SWEEPING = "sweeping"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class BaseSamplerFitResult(TypedDict):
    assignment: List[int]
    cluster_assignment: List[Set[int]]
    cluster_labels: List[int]
    cluster_params: Dict[str, List[torch.Tensor]]
    alpha: float
    trace: List[Tuple[int, int, float]]
    status: SamplerStatus
    sweeps: int


class BaseSampler(Protocol):
    def fit(
        self,
        data,
        initial_assignment: Optional[Sequence[int]] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> BaseSamplerFitResult: ...


FitResult = BaseSamplerFitResult
