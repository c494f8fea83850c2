from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence, Set

import numpy as np
from torch import Tensor

from dpmix.distributions.base import Params, SufficientStatistics

UNASSIGNED = -1


@dataclass
class Cluster:
    """
    A live cluster held in one slot of the `ClusterState` arena.

    Attributes:
        label (int): Identity of the cluster. Labels are handed out in increasing
            order and never reused, even when the slot is.
        members (Set[int]): Indices of the observations assigned to the cluster.
        statistics (SufficientStatistics): Summary of the members' observations.
        params (Params | None): Explicit parameter; None when it is integrated out.
    """

    label: int
    members: Set[int] = field(default_factory=set)
    statistics: Optional[SufficientStatistics] = None
    params: Optional[Params] = None

    @property
    def count(self) -> int:
        return len(self.members)

    def copy(self) -> Cluster:
        return Cluster(
            label=self.label,
            members=set(self.members),
            statistics=self.statistics,
            params=None if self.params is None else dict(self.params),
        )


class RemovalRecord(NamedTuple):
    """
    Everything needed to undo `ClusterState.remove`.

    Attributes:
        index (int): The observation that was removed.
        slot (int): The slot it was removed from.
        label (int): Label of the cluster in that slot at removal time.
        destroyed (bool): Whether the removal emptied and destroyed the cluster.
        cluster (Cluster | None): The destroyed cluster, kept for rollback.
    """

    index: int
    slot: int
    label: int
    destroyed: bool
    cluster: Optional[Cluster] = None


class ClusterState:
    """
    The mutable partition of observations into clusters.

    Clusters live in an arena of slots; freed slots go on a free-list and are
    recycled by later clusters. The partition stores slot indices only, so a
    cluster's destruction is a single state transition (its slot becomes free)
    and nothing can keep pointing into a dead cluster. Identity is carried by the
    cluster label, which is never reused.
    """

    def __init__(self, data: Tensor):
        """
        Args:
            data (Tensor): Observations of shape (N, D). The state only reads them.
        """
        self.data = data
        self.n_points = int(data.shape[0])
        self.data_dim = int(data.shape[1])

        # assignment[i] -> slot of observation i
        self.assignment = np.full(self.n_points, UNASSIGNED, dtype=np.int64)
        self._slots: List[Optional[Cluster]] = []
        self._free_slots: List[int] = []
        self._next_label = 0
        self._live_slots: Optional[List[int]] = None

    @classmethod
    def from_labels(cls, data: Tensor, labels: Sequence[int]) -> ClusterState:
        """
        Builds a state where observations sharing a label share a cluster.
        Clusters are opened in order of first appearance.
        """
        state = cls(data)
        if len(labels) != state.n_points:
            raise ValueError(
                f"Expected {state.n_points} labels, got {len(labels)}"
            )

        label_slots: Dict[int, int] = {}
        for index, label in enumerate(labels):
            slot = label_slots.get(label)
            if slot is None:
                label_slots[label] = state.open_cluster(index)
            else:
                state.join(index, slot)
        return state

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _cached_live_slots(self) -> List[int]:
        if self._live_slots is None:
            self._live_slots = [
                slot for slot, cluster in enumerate(self._slots) if cluster is not None
            ]
        return self._live_slots

    def live_slots(self) -> List[int]:
        """Slots holding a live cluster, in increasing slot order. Returns a fresh list."""
        return list(self._cached_live_slots())

    @property
    def clusters_num(self) -> int:
        return len(self._cached_live_slots())

    def cluster(self, slot: int) -> Cluster:
        """
        Raises:
            KeyError: If the slot does not hold a live cluster.
        """
        if slot < 0 or slot >= len(self._slots) or self._slots[slot] is None:
            raise KeyError(f"Slot {slot} does not hold a live cluster")
        return self._slots[slot]

    def clusters(self) -> List[Cluster]:
        return [self._slots[slot] for slot in self._cached_live_slots()]

    def counts(self, slots: Optional[Sequence[int]] = None) -> np.ndarray:
        slots = self._cached_live_slots() if slots is None else slots
        return np.array([self.cluster(s).count for s in slots], dtype=np.int64)

    def slot_of_label(self, label: int) -> int:
        for slot in self._cached_live_slots():
            if self._slots[slot].label == label:
                return slot
        raise KeyError(f"No live cluster with label {label}")

    def labels(self) -> np.ndarray:
        """The cluster label of every observation."""
        slot_labels = np.array(
            [UNASSIGNED if c is None else c.label for c in self._slots] + [UNASSIGNED],
            dtype=np.int64,
        )
        return slot_labels[self.assignment]

    def cluster_assignment(self) -> List[Set[int]]:
        """Member sets of the live clusters, ordered by label."""
        return [set(c.members) for c in sorted(self.clusters(), key=lambda c: c.label)]

    def cluster_labels(self) -> List[int]:
        return sorted(c.label for c in self.clusters())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def open_cluster(self, index: int, params: Optional[Params] = None) -> int:
        """
        Creates a cluster whose first member is observation `index`.

        Returns:
            int: The slot of the new cluster.
        """
        self._check_unassigned(index)

        if self._free_slots:
            slot = self._free_slots.pop()
        else:
            slot = len(self._slots)
            self._slots.append(None)

        self._slots[slot] = Cluster(
            label=self._next_label,
            statistics=SufficientStatistics.empty(self.data_dim),
            params=params,
        )
        self._next_label += 1
        self._live_slots = None

        self.join(index, slot)
        return slot

    def join(self, index: int, slot: int) -> None:
        """Adds the unassigned observation `index` to the live cluster in `slot`."""
        self._check_unassigned(index)
        cluster = self.cluster(slot)

        cluster.members.add(index)
        cluster.statistics = cluster.statistics.add(self.data[index])
        self.assignment[index] = slot

    def remove(self, index: int) -> RemovalRecord:
        """
        Takes observation `index` out of its cluster, destroying the cluster when it
        becomes empty.

        Returns:
            RemovalRecord: The record needed to `rollback` the removal.
        """
        slot = int(self.assignment[index])
        if slot == UNASSIGNED:
            raise ValueError(f"Observation {index} is not assigned")

        cluster = self.cluster(slot)
        cluster.members.remove(index)
        cluster.statistics = cluster.statistics.remove(self.data[index])
        self.assignment[index] = UNASSIGNED

        if cluster.count > 0:
            return RemovalRecord(index, slot, cluster.label, destroyed=False)

        self._slots[slot] = None
        self._free_slots.append(slot)
        self._live_slots = None
        return RemovalRecord(index, slot, cluster.label, destroyed=True, cluster=cluster)

    def rollback(self, record: RemovalRecord) -> None:
        """
        Undoes `remove`: the observation returns to the cluster it left, and a
        destroyed cluster is reinstated in its original slot under its original label.
        """
        if record.destroyed:
            if record.slot not in self._free_slots:
                raise RuntimeError(
                    f"Cannot reinstate cluster {record.label}: slot {record.slot} "
                    "was reused"
                )
            self._free_slots.remove(record.slot)
            cluster = record.cluster
            cluster.statistics = SufficientStatistics.empty(self.data_dim)
            self._slots[record.slot] = cluster
            self._live_slots = None
        elif self.cluster(record.slot).label != record.label:
            raise RuntimeError(f"Slot {record.slot} no longer holds cluster {record.label}")

        self.join(record.index, record.slot)

    def refresh_statistics(self) -> None:
        """Recomputes every cluster's statistics from its members, dropping drift."""
        for cluster in self.clusters():
            members = sorted(cluster.members)
            cluster.statistics = SufficientStatistics.from_data(self.data[members])

    def copy(self) -> ClusterState:
        """Independent copy sharing only the read-only observations."""
        other = ClusterState(self.data)
        other.assignment = self.assignment.copy()
        other._slots = [None if c is None else c.copy() for c in self._slots]
        other._free_slots = list(self._free_slots)
        other._next_label = self._next_label
        return other

    def validate(self) -> None:
        """
        Raises:
            RuntimeError: If an observation is unassigned, the member counts do not
                add up to N, or a live cluster is empty or inconsistent.
        """
        if np.any(self.assignment == UNASSIGNED):
            raise RuntimeError("Some observations are not assigned to any cluster")

        total = 0
        for slot in self._cached_live_slots():
            cluster = self._slots[slot]
            if cluster.count == 0:
                raise RuntimeError(f"Cluster {cluster.label} is live but empty")
            if any(self.assignment[i] != slot for i in cluster.members):
                raise RuntimeError(f"Cluster {cluster.label} members disagree with the partition")
            total += cluster.count

        if total != self.n_points:
            raise RuntimeError(
                f"Member counts add up to {total}, expected {self.n_points}"
            )

    def _check_unassigned(self, index: int) -> None:
        if self.assignment[index] != UNASSIGNED:
            raise ValueError(f"Observation {index} is already assigned")

    def __repr__(self) -> str:
        return (
            f"ClusterState(n_points={self.n_points}, clusters_num={self.clusters_num}, "
            f"next_label={self._next_label})"
        )
