# Copyright (C) 2022 Leiden University Medical Center
# This file is part of cidrtree
#
# cidrtree is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# cidrtree is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with cidrtree.  If not, see <https://www.gnu.org/licenses/

import bisect
from typing import Iterator, List, NamedTuple, Optional, Tuple


class AddressNotFound(LookupError):
    """Raised when no block in the tree applies to an address."""
    def __init__(self, address: bytes):
        self.address = address
        super().__init__(
            f"No block found for {'.'.join(str(x) for x in address)}")


class Edge(NamedTuple):
    key: int
    child: "Node"


class Node:
    label: str
    keys: List[int]
    children: List["Node"]

    __slots__ = ["label", "keys", "children"]

    def __init__(self, label: str = ""):
        self.label = label
        # keys and children are aligned. keys is sorted ascending.
        self.keys = []
        self.children = []

    def __repr__(self):
        if self.is_terminal():
            return f"CIDRTree LeaveNode {self.label!r}"
        return f"CIDRTree Node {self.label!r}, keys: {tuple(self.keys)}"

    def is_terminal(self) -> bool:
        return not self.keys

    def edges(self) -> Iterator[Edge]:
        for key, child in zip(self.keys, self.children):
            yield Edge(key, child)

    def find_next(self, octet: int) -> Optional["Node"]:
        i = bisect.bisect_left(self.keys, octet)
        if i < len(self.keys) and self.keys[i] == octet:
            return self.children[i]
        return None

    def create_next(self, octet: int, label: str) -> "Node":
        """Create a child for octet at its sorted position. The caller must
        make sure the octet is not present yet."""
        i = bisect.bisect_left(self.keys, octet)
        next_node = Node(label)
        self.keys.insert(i, octet)
        self.children.insert(i, next_node)
        return next_node

    def closest_lower(self, octet: int) -> Optional["Node"]:
        """Return the child behind the greatest key that does not exceed
        octet, or None if all keys are greater."""
        i = bisect.bisect_right(self.keys, octet)
        if i == 0:
            return None
        return self.children[i - 1]


class CIDRTree:
    """
    Tree of nodes keyed by address octets, one level per octet. Each node
    stores the label of the address that first created it.

    Lookups fall back to the closest lower block at the first octet that has
    no exact match.
    """
    def __init__(self, key_length: int = 4):
        if not isinstance(key_length, int) or key_length < 1:
            raise ValueError(
                f"key_length must be a positive integer, got {key_length!r}")
        self._key_length = key_length
        self.root = Node()
        self._size = 0

    def __repr__(self):
        return (f"CIDRTree(key_length={self._key_length}, "
                f"size={self._size})")

    @property
    def key_length(self) -> int:
        return self._key_length

    def insert(self, address: bytes, label: str) -> None:
        """Insert address with label. Address must be bytes-like so every
        octet is a single byte. Nodes that already exist keep their label."""
        node = self.root
        for octet in address:
            next_node = node.find_next(octet)
            if next_node is None:
                next_node = node.create_next(octet, label)
            node = next_node
        # Counted per octet, also when no new nodes were created.
        self._size += len(address)

    def find(self, address: bytes) -> str:
        """
        Find the label of the block address belongs to.

        Octets are matched exactly as long as possible. A full match on all
        key_length octets returns the label of that node. At the first octet
        without an exact match the child with the greatest key lower than
        that octet is used and its label is returned. No further octets are
        inspected in that case.

        :raises AddressNotFound: when the address is shorter than the key
            length or falls below every block at the first mismatch.
        """
        node = self.root
        last_index = self._key_length - 1
        for i, octet in enumerate(address):
            next_node = node.find_next(octet)
            if next_node is None:
                closest = node.closest_lower(octet)
                if closest is None:
                    raise AddressNotFound(address)
                return closest.label
            if i == last_index:
                return next_node.label
            node = next_node
        raise AddressNotFound(address)

    def get(self, address: bytes,
            default: Optional[str] = None) -> Optional[str]:
        try:
            return self.find(address)
        except AddressNotFound:
            return default

    def lookup(self, address: bytes) -> Tuple[str, bool]:
        try:
            return self.find(address), True
        except AddressNotFound:
            return "", False

    def size(self) -> int:
        """Number of octets inserted. Divide by the key length to get the
        number of inserted addresses."""
        return self._size

    @property
    def number_of_nodes(self) -> int:
        return sum(nodes for nodes, _ in self.raw_stats()) - 1

    def raw_stats(self) -> List[List[int]]:
        """Per depth a [nodes, edges] pair. Depth 0 is the root."""
        stats = []
        layer = [self.root]
        while layer:
            next_layer: List[Node] = []
            for node in layer:
                next_layer.extend(node.children)
            stats.append([len(layer), len(next_layer)])
            layer = next_layer
        return stats
