from dataclasses import dataclass
from typing import Tuple

from yieldsync_services.errors import EmptyInput
from yieldsync_services.merkle.hashing import leaf_hash, pair_hash, to_digest, to_hex


@dataclass(frozen=True)
class MerkleTree:
    root: bytes
    layers: Tuple[Tuple[bytes, ...], ...]

    @property
    def leaves(self) -> Tuple[bytes, ...]:
        return self.layers[0]

    @property
    def leaf_count(self) -> int:
        return len(self.layers[0])

    @property
    def root_hex(self) -> str:
        return to_hex(self.root)


def build_layers(leaves) -> Tuple[Tuple[bytes, ...], ...]:
    """
    Pairs adjacent digests left to right until one remains. An unpaired
    last element is hashed with itself.
    """
    if not leaves:
        raise EmptyInput("No leaves provided for Merkle tree")

    layers = [tuple(to_digest(leaf) for leaf in leaves)]
    while len(layers[-1]) > 1:
        current = layers[-1]
        next_layer = []
        for i in range(0, len(current), 2):
            left = current[i]
            right = current[i + 1] if i + 1 < len(current) else left
            next_layer.append(pair_hash(left, right))
        layers.append(tuple(next_layer))
    return tuple(layers)


def build(leaves) -> MerkleTree:
    """Builds the tree over `leaves` in the order given. Leaves are never sorted."""
    layers = build_layers(leaves)
    return MerkleTree(root=layers[-1][0], layers=layers)


def build_from_records(records) -> MerkleTree:
    if not records:
        raise EmptyInput("No records for Merkle tree")
    return build([leaf_hash(record) for record in records])
