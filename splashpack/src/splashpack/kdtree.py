"""Three dimensional k-d tree used for nearest palette colour lookups.

Nodes live in flat lists and refer to each other by integer id; ``-1`` marks
a missing child.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

Point = Tuple[float, float, float]

NO_NODE = -1


def _squared_distance(a: Point, b: Point) -> float:
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return dr * dr + dg * dg + db * db


class KDTree:
    def __init__(self, points: Sequence[Point]):
        self.points: List[Point] = [tuple(p) for p in points]  # type: ignore[misc]
        self.node_point: List[int] = []
        self.node_axis: List[int] = []
        self.node_left: List[int] = []
        self.node_right: List[int] = []
        self.root = self._build(list(range(len(self.points))), 0)

    def __len__(self) -> int:
        return len(self.points)

    def _new_node(self, point_index: int, axis: int) -> int:
        self.node_point.append(point_index)
        self.node_axis.append(axis)
        self.node_left.append(NO_NODE)
        self.node_right.append(NO_NODE)
        return len(self.node_point) - 1

    def _build(self, indices: List[int], depth: int) -> int:
        if not indices:
            return NO_NODE
        axis = depth % 3
        points = self.points
        indices.sort(key=lambda i: (points[i][axis], i))
        median = len(indices) // 2
        node = self._new_node(indices[median], axis)
        self.node_left[node] = self._build(indices[:median], depth + 1)
        self.node_right[node] = self._build(indices[median + 1 :], depth + 1)
        return node

    def nearest(self, target: Point) -> int:
        """Return the index of the point closest to ``target``.

        Equal distances resolve to the lowest point index, so the result
        matches a linear scan over the input order.
        """

        if self.root == NO_NODE:
            raise ValueError("Cannot search an empty tree")

        points = self.points
        best_index = self.node_point[self.root]
        best_dist = _squared_distance(target, points[best_index])
        # Entries carry the squared distance to the splitting plane that led
        # to them; subtrees further away than the current best are skipped.
        stack: List[Tuple[int, float]] = [(self.root, 0.0)]

        while stack:
            node, plane_dist = stack.pop()
            if plane_dist > best_dist:
                continue
            index = self.node_point[node]
            point = points[index]
            dist = _squared_distance(target, point)
            if dist < best_dist or (dist == best_dist and index < best_index):
                best_dist = dist
                best_index = index

            axis = self.node_axis[node]
            delta = target[axis] - point[axis]
            if delta < 0:
                near, far = self.node_left[node], self.node_right[node]
            else:
                near, far = self.node_right[node], self.node_left[node]

            # Far side is pushed first so the near side is searched first.
            if far != NO_NODE:
                stack.append((far, delta * delta))
            if near != NO_NODE:
                stack.append((near, 0.0))

        return best_index
