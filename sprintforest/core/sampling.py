"""Bootstrap / out-of-bag sampling and per-tree random streams."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import torch

_BOOTSTRAP_STREAM = 0
_NODE_STREAM = 1
_PERMUTATION_STREAM = 2


def seeded_generator(entropy: int, key: tuple[int, ...]) -> torch.Generator:
    """Return a CPU ``torch.Generator`` seeded from ``entropy`` and ``key``.

    Distinct keys give statistically independent streams, so the seed of a
    stream depends only on its position, never on the order in which the
    streams are created.
    """
    seed = np.random.SeedSequence(entropy, spawn_key=key).generate_state(1, dtype=np.uint64)[0]
    generator = torch.Generator(device="cpu")
    generator.manual_seed(int(seed))
    return generator


class TreeStreams:
    """Independent random streams of one tree, derived from the master seed."""

    def __init__(self, entropy: int, tree_index: int) -> None:
        self.entropy = int(entropy)
        self.tree_index = int(tree_index)

    def bootstrap(self) -> torch.Generator:
        return seeded_generator(self.entropy, (self.tree_index, _BOOTSTRAP_STREAM))

    def node(self, node_id: int) -> torch.Generator:
        return seeded_generator(self.entropy, (self.tree_index, _NODE_STREAM, int(node_id)))

    def permutation(self) -> torch.Generator:
        return seeded_generator(self.entropy, (self.tree_index, _PERMUTATION_STREAM))


@dataclass(frozen=True)
class BootstrapSample:
    """Rows a tree is grown on and the rows it never saw.

    ``in_bag`` is sorted and may repeat rows (sampling with replacement);
    ``out_of_bag`` holds every row that was not drawn.
    """

    in_bag: np.ndarray
    out_of_bag: np.ndarray

    @property
    def n_in_bag(self) -> int:
        return int(self.in_bag.size)

    @property
    def n_out_of_bag(self) -> int:
        return int(self.out_of_bag.size)


class BootstrapSampler:
    """Draw per-tree training rows with or without replacement."""

    def __init__(self, n_rows: int, oob_ratio: float = 0.66, with_replacement: bool = True) -> None:
        if n_rows < 1:
            raise ValueError("n_rows must be positive")
        if not 0.0 < oob_ratio <= 1.0:
            raise ValueError("oob_ratio must be in the interval (0, 1]")
        self.n_rows = int(n_rows)
        self.oob_ratio = float(oob_ratio)
        self.with_replacement = bool(with_replacement)

    @property
    def sample_size(self) -> int:
        if self.with_replacement:
            return self.n_rows
        return max(1, int(self.oob_ratio * self.n_rows))

    def sample(self, generator: torch.Generator) -> BootstrapSample:
        n = self.n_rows
        if self.with_replacement:
            drawn = torch.randint(0, n, (n,), generator=generator, dtype=torch.int64)
        else:
            drawn = torch.randperm(n, generator=generator, dtype=torch.int64)[: self.sample_size]
        in_bag = np.sort(drawn.numpy().astype(np.int64, copy=False), kind="stable")
        drawn_mask = np.zeros(n, dtype=bool)
        drawn_mask[in_bag] = True
        out_of_bag = np.flatnonzero(~drawn_mask).astype(np.int64)
        return BootstrapSample(in_bag=in_bag, out_of_bag=out_of_bag)


__all__ = ["BootstrapSample", "BootstrapSampler", "TreeStreams", "seeded_generator"]
