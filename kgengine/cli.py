"""
`kgengine` command line interface.

Commands
--------
kgengine ingest <file.json>                 -- store {task, output} pairs
kgengine knowledge                          -- nodes, edges and statistics
kgengine related <node_id> --depth 2        -- nodes within N hops
kgengine similarity <node_a> <node_b>       -- pairwise similarity verdict
kgengine clusters --min-similarity 0.7      -- semantic clusters
kgengine suggest <node_id> --max 5          -- proposed new connections
kgengine metrics                            -- density, centrality, communities
kgengine evolve                             -- run one evolution pass
kgengine connect <from> <to> --type uses    -- add an edge by hand
kgengine health [--json]                    -- structural health report

Every command accepts ``--project`` (default ``1``), ``--db`` and
``--config``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional

from tqdm import tqdm

from .config import Config
from .errors import KnowledgeGraphError
from .service import KnowledgeGraphService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _service(args: argparse.Namespace) -> KnowledgeGraphService:
    config = Config.load(args.config)
    if args.db:
        config.DB_PATH = args.db
    return KnowledgeGraphService.from_config(config)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_ingest(args: argparse.Namespace) -> None:
    """Ingest a JSON file holding one or a list of {task, output} objects."""
    try:
        with open(args.file, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, ValueError) as exc:
        print(f"Error: cannot read {args.file}: {exc}", file=sys.stderr)
        sys.exit(1)
    items = payload if isinstance(payload, list) else [payload]
    service = _service(args)
    count = 0
    for item in items:
        task = dict(item.get("task") or {})
        task.setdefault("project_id", args.project)
        count += len(service.ingest_task_output(task, item.get("output") or {}))
    print(f"Stored {count} node(s) from {len(items)} artifact(s)")


def _cmd_knowledge(args: argparse.Namespace) -> None:
    knowledge = _service(args).get_project_knowledge(args.project)
    if args.json:
        _print_json(knowledge.to_dict())
        return
    stats = knowledge.statistics
    print(f"\nProject {args.project}: {stats['total_nodes']} node(s), "
          f"{len(knowledge.connections)} stored edge(s)")
    print("-" * 60)
    for node_type, count in sorted(stats["node_types"].items()):
        print(f"  {node_type:<20} {count}")
    for conn in knowledge.connections:
        print(f"  {conn.source} -[{conn.type} {conn.weight:.2f}]-> {conn.target}")


def _cmd_related(args: argparse.Namespace) -> None:
    nodes = _service(args).find_related_nodes(args.project, args.node_id, args.depth)
    for node in nodes:
        print(f"  {node.node_type:<15} {node.node_id}")


def _cmd_similarity(args: argparse.Namespace) -> None:
    result = _service(args).analyze_semantic_similarity(
        args.project, args.node_a, args.node_b
    )
    _print_json(result.to_dict())


def _cmd_clusters(args: argparse.Namespace) -> None:
    clusters = _service(args).find_semantic_clusters(args.project, args.min_similarity)
    _print_json({"clusters": [c.to_dict() for c in clusters]})


def _cmd_suggest(args: argparse.Namespace) -> None:
    suggestions = _service(args).suggest_connections(
        args.project, args.node_id, args.max_suggestions
    )
    _print_json({"suggestions": [s.to_dict() for s in suggestions]})


def _cmd_metrics(args: argparse.Namespace) -> None:
    _print_json(_service(args).calculate_graph_metrics(args.project).to_dict())


def _cmd_evolve(args: argparse.Namespace) -> None:
    service = _service(args)
    pbar = tqdm(total=None, unit="node", desc="Evolving")

    def _progress(current: int, total: int, node_id: str) -> None:
        if pbar.total != total:
            pbar.total = total
            pbar.refresh()
        pbar.set_postfix_str(node_id, refresh=False)
        pbar.update(1)

    try:
        result = service.evolve_knowledge_graph(args.project, progress_callback=_progress)
    finally:
        pbar.close()
    _print_json(result.to_dict())
    if not result.completed:
        sys.exit(1)


def _cmd_connect(args: argparse.Namespace) -> None:
    node = _service(args).add_connection(
        args.project, args.from_node, args.to_node, args.type, args.weight
    )
    print(f"{node.node_id} now has {len(node.connections)} connection(s)")


def _cmd_health(args: argparse.Namespace) -> None:
    from .health import format_health, to_json

    health = _service(args).health(args.project)
    if args.json:
        print(to_json(health))
    else:
        print(format_health(health))


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--project", default="1", help="Project id (default: 1)")
    common.add_argument("--db", default=None, help="SQLite database path")
    common.add_argument("--config", default=None, help="Path to .kgengine.yaml")

    parser = argparse.ArgumentParser(
        prog="kgengine",
        description="Knowledge graph analytics for project artifacts",
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    ingest_p = subparsers.add_parser("ingest", parents=[common],
                                     help="Store {task, output} pairs from JSON")
    ingest_p.add_argument("file", help="JSON file with one object or a list")
    ingest_p.set_defaults(func=_cmd_ingest)

    knowledge_p = subparsers.add_parser("knowledge", parents=[common],
                                        help="Show nodes, edges and statistics")
    knowledge_p.add_argument("--json", action="store_true",
                             help="Machine-readable JSON output")
    knowledge_p.set_defaults(func=_cmd_knowledge)

    related_p = subparsers.add_parser("related", parents=[common],
                                      help="Nodes within N hops of a node")
    related_p.add_argument("node_id")
    related_p.add_argument("--depth", type=int, default=2,
                           help="Maximum hop count (default: 2)")
    related_p.set_defaults(func=_cmd_related)

    sim_p = subparsers.add_parser("similarity", parents=[common],
                                  help="Similarity between two nodes")
    sim_p.add_argument("node_a")
    sim_p.add_argument("node_b")
    sim_p.set_defaults(func=_cmd_similarity)

    clusters_p = subparsers.add_parser("clusters", parents=[common],
                                       help="Find semantic clusters")
    clusters_p.add_argument("--min-similarity", dest="min_similarity",
                            type=float, default=None,
                            help="Threshold in [0, 1] (default from config)")
    clusters_p.set_defaults(func=_cmd_clusters)

    suggest_p = subparsers.add_parser("suggest", parents=[common],
                                      help="Suggest new connections for a node")
    suggest_p.add_argument("node_id")
    suggest_p.add_argument("--max", dest="max_suggestions", type=int, default=5,
                           help="Number of suggestions (default: 5)")
    suggest_p.set_defaults(func=_cmd_suggest)

    metrics_p = subparsers.add_parser("metrics", parents=[common],
                                      help="Compute graph metrics")
    metrics_p.set_defaults(func=_cmd_metrics)

    evolve_p = subparsers.add_parser("evolve", parents=[common],
                                     help="Run one evolution pass")
    evolve_p.set_defaults(func=_cmd_evolve)

    connect_p = subparsers.add_parser("connect", parents=[common],
                                      help="Add an edge between two nodes")
    connect_p.add_argument("from_node")
    connect_p.add_argument("to_node")
    connect_p.add_argument("--type", default="relates_to",
                           help="Connection type (default: relates_to)")
    connect_p.add_argument("--weight", type=float, default=1.0,
                           help="Edge weight in [0, 1] (default: 1.0)")
    connect_p.set_defaults(func=_cmd_connect)

    health_p = subparsers.add_parser("health", parents=[common],
                                     help="Show graph health report")
    health_p.add_argument("--json", action="store_true",
                          help="Machine-readable JSON output")
    health_p.set_defaults(func=_cmd_health)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    """
    Main entry point for the ``kgengine`` console script.

    Parameters
    ----------
    argv:
        Argument list without the program name.  Defaults to sys.argv.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # Configure logging if not already configured
    if not logging.root.handlers:
        level = logging.DEBUG if args.verbose else Config.load(
            getattr(args, "config", None)).LOG_LEVEL
        logging.basicConfig(
            level=level,
            format="%(levelname)s  %(name)s  %(message)s",
        )

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        args.func(args)
    except KnowledgeGraphError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
