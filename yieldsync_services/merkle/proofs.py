"""
Inclusion proofs.

A proof lists the sibling digest of every level where one exists, from the
leaf level upward. When a node is the unpaired last element of an odd layer
it was hashed with itself and no entry is emitted for that level.

Verification comes in two flavours:

* a plain sequence of digests is folded with `pair_hash`, exactly what the
  contract's verifyRecord does;
* a `Proof` returned by `prove` also knows its leaf index and the tree's leaf
  count, so the verifier can replay the self-pairing at the levels where no
  sibling was emitted. `Proof.contract_path` expands those levels into
  explicit entries for the on-chain fold.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from yieldsync_services.errors import InvalidInput
from yieldsync_services.merkle.hashing import pair_hash, to_digest, to_hex


def _levels(index: int, leaf_count: int):
    """Yields, per level below the root, whether the node has a distinct sibling."""
    width = leaf_count
    while width > 1:
        yield (index ^ 1) < width
        index //= 2
        width = (width + 1) // 2


@dataclass(frozen=True)
class Proof:
    index: int
    leaf_count: int
    siblings: Tuple[bytes, ...]

    def __len__(self):
        return len(self.siblings)

    def __iter__(self):
        return iter(self.siblings)

    def to_hex(self) -> list:
        return [to_hex(sibling) for sibling in self.siblings]

    def contract_path(self, leaf) -> list:
        """Sibling list with the self-paired levels filled in, for a plain fold."""
        acc = to_digest(leaf)
        siblings = iter(self.siblings)
        path = []
        for has_sibling in _levels(self.index, self.leaf_count):
            sibling = next(siblings, None) if has_sibling else acc
            if sibling is None:
                raise InvalidInput("Proof is shorter than the tree height")
            sibling = to_digest(sibling)
            path.append(sibling)
            acc = pair_hash(acc, sibling)
        return path


def prove(layers, index: int) -> Proof:
    leaf_count = len(layers[0]) if layers else 0
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < leaf_count:
        raise InvalidInput(f"Leaf index {index!r} out of range for {leaf_count} leaves")

    siblings = []
    idx = index
    for layer in layers[:-1]:
        sibling_index = idx ^ 1
        if sibling_index < len(layer):
            siblings.append(layer[sibling_index])
        idx //= 2
    return Proof(index=index, leaf_count=leaf_count, siblings=tuple(siblings))


def prove_all(layers) -> Dict[int, Proof]:
    return {index: prove(layers, index) for index in range(len(layers[0]))}


def _fold(acc: bytes, proof) -> bytes:
    for sibling in proof:
        acc = pair_hash(acc, to_digest(sibling))
    return acc


def _replay(acc: bytes, proof: Proof) -> bytes:
    siblings = iter(proof.siblings)
    for has_sibling in _levels(proof.index, proof.leaf_count):
        if has_sibling:
            sibling = next(siblings, None)
            if sibling is None:
                raise InvalidInput("Proof is shorter than the tree height")
            acc = pair_hash(acc, to_digest(sibling))
        else:
            acc = pair_hash(acc, acc)
    if next(siblings, None) is not None:
        raise InvalidInput("Proof is longer than the tree height")
    return acc


def verify(leaf, proof, root) -> bool:
    """
    Recomputes the root from `leaf` and `proof` and compares it with `root`.
    Works standalone against a root fetched from chain. Malformed input is a
    failed verification, not an error.
    """
    try:
        acc = to_digest(leaf)
        expected = to_digest(root)
        if isinstance(proof, Proof):
            acc = _replay(acc, proof)
        else:
            acc = _fold(acc, proof)
    except InvalidInput:
        return False
    return acc == expected
