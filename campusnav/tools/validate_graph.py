#!/usr/bin/env python3
"""Sanity checks over a built campus graph; exits non-zero when an invariant fails."""
import argparse, json, sys
from typing import List

import networkx as nx
import pandas as pd

from campusnav.app.errors import MalformedSourceData
from campusnav.app.graph_loader import IndoorGraph, artifact_path


def graph_frames(graph: IndoorGraph):
    nodes = pd.DataFrame(
        [{"node_id": n.id, "lon": n.lng, "lat": n.lat, "level": n.level,
          "is_entrance": n.tags.is_portal, "is_vertical": n.tags.is_vertical} for n in graph.nodes.values()],
        columns=["node_id", "lon", "lat", "level", "is_entrance", "is_vertical"],
    )
    edges = pd.DataFrame(
        [{"u": e.from_id, "v": e.to_id, "w": e.w, "type": e.type or ""} for e in graph.edges],
        columns=["u", "v", "w", "type"],
    )
    rooms = pd.DataFrame(
        [{"key": r.key, "node": r.node, "level": r.level, "building": r.building} for r in graph.rooms.values()],
        columns=["key", "node", "level", "building"],
    )
    return nodes, edges, rooms


def check_graph(graph: IndoorGraph) -> List[str]:
    """Return a list of invariant violations (empty when the graph is sound)."""
    nodes, edges, rooms = graph_frames(graph)
    problems = []

    if not nodes["lat"].between(-90, 90).all() or not nodes["lon"].between(-180, 180).all():
        problems.append("node coordinates out of range")
    if not (edges["w"] >= 0).all():
        problems.append("negative edge weights")

    known = set(nodes["node_id"])
    dangling = edges[~edges["u"].isin(known) | ~edges["v"].isin(known)]
    if len(dangling):
        problems.append(f"{len(dangling)} edges reference missing nodes")

    pairs = set(zip(edges["u"], edges["v"], edges["w"]))
    one_way = sum(1 for u, v, w in pairs if (v, u, w) not in pairs)
    if one_way:
        problems.append(f"{one_way} edges have no equal-weight reverse edge")

    snapped = rooms.dropna(subset=["node"]).merge(
        nodes[["node_id", "level"]], left_on="node", right_on="node_id", how="left", suffixes=("", "_node"))
    wrong_level = snapped[snapped["level"] != snapped["level_node"]]
    if len(wrong_level):
        problems.append(f"{len(wrong_level)} rooms snapped to a node on another level")
    return problems


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--prefix", required=True, help="e.g., data/graphs/nova")
    args = ap.parse_args()

    with open(artifact_path(args.prefix, "graph.json")) as f:
        raw = json.load(f)
    try:
        graph = IndoorGraph.from_dict(raw)
    except MalformedSourceData as e:
        print(f"Invalid graph: {e}")
        sys.exit(1)

    nodes, edges, rooms = graph_frames(graph)
    print("Levels:", graph.levels)
    print("Nodes per level:", nodes["level"].value_counts().to_dict())
    print("Edges by type:", edges["type"].value_counts().to_dict())
    print(f"Rooms: {len(rooms)}, unsnapped: {int(rooms['node'].isna().sum())}, entrances: {len(graph.entrances)}")

    G = nx.DiGraph()
    G.add_nodes_from(nodes["node_id"])
    G.add_edges_from(zip(edges["u"], edges["v"]))
    components = list(nx.weakly_connected_components(G))
    print(f"Connected components: {len(components)} (largest {max((len(c) for c in components), default=0)})")
    entrance_ids = {e.node for e in graph.entrances}
    isolated = [r.key for r in graph.rooms.values()
                if r.node is not None and not any(r.node in c and c & entrance_ids for c in components)]
    if isolated:
        print(f"Rooms unreachable from any entrance: {len(isolated)}")

    problems = check_graph(graph)
    for p in problems:
        print("FAIL:", p)
    if problems:
        sys.exit(1)
    print("OK")


if __name__ == "__main__":
    main()
