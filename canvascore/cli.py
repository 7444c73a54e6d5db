"""canvascore developer command-line interface"""

import argparse
import json
import sys
from pathlib import Path
from typing import NoReturn

from canvascore import __version__
from canvascore.common.config import Config, ConfigLoader
from canvascore.common.errors import InvalidDropTarget
from canvascore.common.types import DragMode, Point
from canvascore.drag.executor import DropExecutor
from canvascore.drag.zones import DropZone, DropZoneScorer
from canvascore.logging_setup import loggingFromConfig_setup
from canvascore.storage.store import store_create
from canvascore.tree.document import document_load
from canvascore.tree.mutations import MarkerFilter
from canvascore.tree.node import VisualNode, VisualTree
from canvascore.tree.serializer import IdGenerator, TreeSerializer, snapshotPayload_build, snapshot_fromJson


def parser_build() -> argparse.ArgumentParser:
    """
    Build the argument parser

    Returns:
        Parser with snapshot, zones and pending subcommands
    """
    parser = argparse.ArgumentParser(
        prog="canvascore",
        description="Inspect canvas documents, drop zones and unsynced work",
    )

    parser.add_argument("--version", action="version", version=f"canvascore {__version__}")

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config file (default: search standard locations)",
    )

    parser.add_argument(
        "--store",
        type=str,
        default=None,
        help="Path to the durable store file (overrides config)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        help="Log level name (overrides config)",
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging (overrides config)"
    )

    parser.add_argument(
        "--warning", action="store_true", help="Enable warning logging (overrides config)"
    )

    parser.add_argument(
        "--error", action="store_true", help="Enable error logging (overrides config)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    snapshot_parser = subparsers.add_parser(
        "snapshot", help="Print the canonical snapshot payload of a tree document"
    )
    snapshot_parser.add_argument("document", type=Path, help="Tree document (JSON)")
    snapshot_parser.add_argument(
        "--indent", type=int, default=None, help="Pretty-print with this indent"
    )

    zones_parser = subparsers.add_parser(
        "zones", help="Print ranked drop zones for a pointer position"
    )
    zones_parser.add_argument("document", type=Path, help="Tree document (JSON)")
    zones_parser.add_argument("--x", type=float, required=True, help="Pointer x in canvas pixels")
    zones_parser.add_argument("--y", type=float, required=True, help="Pointer y in canvas pixels")
    zones_parser.add_argument(
        "--dragged",
        type=str,
        default=None,
        help="Id of the dragged canvas element (omit for a palette drop)",
    )
    zones_parser.add_argument(
        "--tag", type=str, default="div", help="Palette component tag when --dragged is omitted"
    )
    zones_parser.add_argument(
        "--mode",
        type=str,
        choices=[DragMode.INTERNAL.value, DragMode.POSITIONING.value, DragMode.EXTERNAL.value],
        default=None,
        help="Drag mode (default: internal with --dragged, external without)",
    )
    zones_parser.add_argument(
        "--limit", type=int, default=10, help="Show at most this many zones"
    )

    pending_parser = subparsers.add_parser(
        "pending", help="Show or clear the persisted unsynced snapshot"
    )
    pending_parser.add_argument(
        "--clear", action="store_true", help="Remove the unsynced snapshot"
    )

    return parser


def logLevelOverride_get(args: argparse.Namespace) -> str | None:
    """
    Resolve explicit log level override flags.

    Args:
        args: Parsed CLI args.

    Returns:
        Selected log level or None.
    """
    if args.error:
        return "ERROR"
    if args.warning:
        return "WARNING"
    if args.debug:
        return "DEBUG"
    return args.log_level


def config_resolve(args: argparse.Namespace) -> Config:
    """
    Load configuration and apply command-line overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Validated configuration.
    """
    config_path = Path(args.config) if args.config else None
    return ConfigLoader.configWithOverrides_load(
        config_path,
        log_level=logLevelOverride_get(args),
        store_path=args.store,
    )


def snapshotCommand_run(args: argparse.Namespace, config: Config) -> int:
    """Print the snapshot payload of a document."""
    markers = config.markers
    tree: VisualTree = document_load(
        args.document, MarkerFilter(markers.node_markers, markers.state_markers)
    )
    serializer = TreeSerializer(
        IdGenerator(),
        node_markers=markers.node_markers,
        state_markers=markers.state_markers,
        non_content_tags=config.canvas.non_content_tags,
    )
    snapshot = serializer.snapshot_capture(tree.root)
    print(json.dumps(snapshotPayload_build(snapshot), indent=args.indent))
    return 0


def zoneLine_format(rank: int, zone: DropZone) -> str:
    """One human-readable line per zone."""
    index = "-" if zone.index is None else str(zone.index)
    status = "ok" if zone.valid else f"invalid ({zone.reason})"
    return (
        f"{rank:>3}  {zone.type.value:<10} target={zone.target_node.node_id or zone.target_node.tag:<16} "
        f"index={index:<3} score={zone.score:.3f}  {status}"
    )


def zonesCommand_run(args: argparse.Namespace, config: Config) -> int:
    """Print ranked drop zones for one pointer sample."""
    markers = config.markers
    tree: VisualTree = document_load(
        args.document, MarkerFilter(markers.node_markers, markers.state_markers)
    )
    scorer = DropZoneScorer(tree, config.zones, config.canvas, markers.node_markers)

    dragged: VisualNode | None
    if args.dragged:
        dragged = tree.node_find(args.dragged)
        if dragged is None:
            print(f"Error: no element with id '{args.dragged}'", file=sys.stderr)
            return 1
        mode = DragMode(args.mode or DragMode.INTERNAL.value)
    else:
        executor = DropExecutor(tree, scorer, IdGenerator(), void_tags=config.canvas.void_tags)
        dragged = executor.paletteNode_create(args.tag)
        mode = DragMode(args.mode or DragMode.EXTERNAL.value)

    pointer = Point(args.x, args.y)
    ranked: list[DropZone] = scorer.zones_score(pointer, dragged, mode)
    for rank, zone in enumerate(ranked[: args.limit], start=1):
        print(zoneLine_format(rank, zone))

    try:
        selection = scorer.zone_select(ranked)
    except InvalidDropTarget as exc:
        print(f"selection: none ({exc})")
        return 0
    print(f"selection: {selection.zone.id} auto_apply={selection.auto_apply}")
    return 0


def pendingCommand_run(args: argparse.Namespace, config: Config) -> int:
    """Show or clear the unsynced snapshot slot."""
    store = store_create(config.store.path)
    key: str = config.store.pending_key
    raw = store.value_get(key)
    if raw is None:
        print("No unsynced snapshot")
        return 0

    if args.clear:
        store.value_remove(key)
        print(f"Cleared unsynced snapshot from {store.path}")
        return 0

    try:
        snapshot = snapshot_fromJson(raw)
    except ValueError as exc:
        print(f"Stored snapshot is unreadable: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(snapshotPayload_build(snapshot), indent=2))
    return 0


COMMANDS = {
    "snapshot": snapshotCommand_run,
    "zones": zonesCommand_run,
    "pending": pendingCommand_run,
}


def main(argv: list[str] | None = None) -> NoReturn:
    """
    Main entry point for the canvascore command

    Args:
        argv: Argument list; defaults to sys.argv[1:].
    """
    args = parser_build().parse_args(argv)

    try:
        config = config_resolve(args)
        loggingFromConfig_setup(config.logging)
        sys.exit(COMMANDS[args.command](args, config))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
