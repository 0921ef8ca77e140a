import heapq
import logging
from typing import Dict, List, Tuple

from .errors import NoPathFound, UnresolvedEntity
from .graph_loader import Edge, IndoorGraph
from .schemas import IndoorSegment

log = logging.getLogger(__name__)


def build_adjacency(edges: List[Edge]) -> Dict[str, List[Tuple[str, float]]]:
    # adjacency: u -> list of (v, weight)
    adj: Dict[str, List[Tuple[str, float]]] = {}
    for e in edges:
        adj.setdefault(e.from_id, []).append((e.to_id, e.w))
    return adj


class IndoorRouter:
    """Shortest paths over a prebuilt, read-only indoor graph."""

    def __init__(self, graph: IndoorGraph):
        self.graph = graph
        self.adj = build_adjacency(graph.edges)

    def shortest_path(self, src: str, dst: str) -> List[str]:
        """Dijkstra from `src` to `dst`, both ends inclusive.

        Unknown endpoints and unreachable targets give an empty list.
        """
        nodes = self.graph.nodes
        if src not in nodes or dst not in nodes:
            return []

        INF = float("inf")
        dist: Dict[str, float] = {src: 0.0}
        prev: Dict[str, str] = {}
        pq: List[Tuple[float, str]] = [(0.0, src)]

        while pq:
            d, u = heapq.heappop(pq)
            if u == dst:
                break
            if d != dist.get(u, INF):
                continue
            for v, w in self.adj.get(u, []):
                nd = d + w
                if nd < dist.get(v, INF):
                    dist[v] = nd
                    prev[v] = u
                    heapq.heappush(pq, (nd, v))

        if dst not in dist:
            return []

        path = [dst]
        cur = dst
        while cur != src:
            cur = prev[cur]
            path.append(cur)
        path.reverse()
        return path

    def path_length(self, path: List[str]) -> float:
        total = 0.0
        for u, v in zip(path, path[1:]):
            total += min(w for to, w in self.adj.get(u, []) if to == v)
        return total

    def path_to_segments(self, path: List[str]) -> List[IndoorSegment]:
        """Split a node path into one polyline per consecutive level run.

        A level change starts the new run at the previous node's
        coordinate so adjacent segments share an endpoint.
        """
        if len(path) < 2:
            return []
        nodes = self.graph.nodes
        segs: List[IndoorSegment] = []

        run_level = nodes[path[0]].level
        run = [nodes[path[0]].lnglat]
        for prev_id, nid in zip(path, path[1:]):
            node = nodes[nid]
            if node.level == run_level:
                run.append(node.lnglat)
                continue
            if len(run) >= 2:
                segs.append(IndoorSegment(level=run_level, line=run))
            run_level = node.level
            run = [nodes[prev_id].lnglat, node.lnglat]
        if len(run) >= 2:
            segs.append(IndoorSegment(level=run_level, line=run))
        return segs

    def route_between_nodes(self, from_id: str, to_id: str) -> List[IndoorSegment]:
        path = self.shortest_path(from_id, to_id)
        if not path:
            raise NoPathFound(from_id, to_id)
        log.debug("Indoor path %s -> %s: %d nodes, %.1f m", from_id, to_id, len(path), self.path_length(path))
        return self.path_to_segments(path)

    def room_node(self, room_key: str) -> str:
        room = self.graph.rooms.get(room_key)
        if room is None:
            raise UnresolvedEntity("room", room_key, f"room not found in graph: {room_key}")
        if room.node is None:
            raise UnresolvedEntity("room", room_key, f"room {room_key} has no snapped node on level {room.level}")
        return room.node

    def route_room_to_room(self, from_room_key: str, to_room_key: str) -> List[IndoorSegment]:
        return self.route_between_nodes(self.room_node(from_room_key), self.room_node(to_room_key))

    def route_entrance_to_room(self, entrance_node_id: str, room_key: str) -> List[IndoorSegment]:
        return self.route_between_nodes(entrance_node_id, self.room_node(room_key))

    def route_first_reachable(self, entrance_ids: List[str], room_key: str) -> Tuple[str, List[IndoorSegment]]:
        """Route from the first entrance in `entrance_ids` that connects to the room.

        Returns the chosen entrance id with its segments.
        """
        target = self.room_node(room_key)
        for eid in entrance_ids:
            path = self.shortest_path(eid, target)
            if path:
                log.debug("Entering at %s for room %s", eid, room_key)
                return eid, self.path_to_segments(path)
        raise NoPathFound(entrance_ids[0] if entrance_ids else "<no entrance>", target)
