"""CLI entrypoints for dotgallery commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .config import ConfigError, GalleryConfig, apply_overrides, load_config
from .logging import configure_logging, get_logger
from .render import GraphRenderer, RenderPipeline
from .watch import WatchError


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    _add_verbose_option(parser, suppress_default=True)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a .dotgallery.yml file (defaults to ./.dotgallery.yml if present).",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory receiving rendered images and wrapper pages.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write DEBUG-level logs to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dotgallery",
        description="Serve a live gallery of rendered pipeline-graph (DOT) files.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Watch a directory of .dot files and serve the rendered gallery.",
    )
    _add_common_options(serve_parser)
    serve_parser.add_argument(
        "-d",
        "--dotdir",
        default=None,
        help="Directory to watch for .dot files (defaults to $GST_DEBUG_DUMP_DOT_DIR or the current directory).",
    )
    serve_parser.add_argument(
        "-a",
        "--address",
        default=None,
        help="Server address (default 0.0.0.0).",
    )
    serve_parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Server port (default 3000).",
    )

    render_parser = subparsers.add_parser(
        "render",
        help="Render a single .dot file into its image and wrapper page.",
    )
    _add_common_options(render_parser)
    render_parser.add_argument("path", help="Description file to render.")

    return parser


def _load(args: argparse.Namespace) -> GalleryConfig:
    config = load_config(args.config)
    return apply_overrides(
        config,
        source_dir=getattr(args, "dotdir", None),
        output_dir=args.output_dir,
        address=getattr(args, "address", None),
        port=getattr(args, "port", None),
        log_file=args.log_file,
    )


def _render_once(config: GalleryConfig, path: Path) -> bool:
    renderer = GraphRenderer(
        config.renderer.executable,
        format=config.renderer.format,
        command=config.renderer.command,
    )
    pipeline = RenderPipeline(
        config.output_dir,
        renderer,
        config.template_path,
        image_suffix=config.renderer.image_suffix,
    )
    config.output_dir.mkdir(parents=True, exist_ok=True)
    result = asyncio.run(pipeline.render_description(path))
    return result is not None and result.success


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for dotgallery commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    verbose = bool(args.verbose)
    configure_logging(verbose=verbose)
    logger = get_logger("cli")

    try:
        config = _load(args)
        config.validate()
    except ConfigError as exc:
        parser.exit(1, f"dotgallery: {exc}\n")

    if config.log_file is not None:
        configure_logging(verbose=verbose, log_file=config.log_file)
        logger.debug("Logging to %s", config.log_file)

    if args.command == "serve":
        # Imported lazily so `render` does not pull in the web stack.
        from .service import run_service

        if not config.source_dir.is_dir():
            parser.exit(1, f"dotgallery: cannot watch {config.source_dir}: not a directory\n")
        try:
            run_service(config)
        except WatchError as exc:
            parser.exit(1, f"dotgallery: {exc}\n")
    elif args.command == "render":
        source = Path(args.path).expanduser().resolve()
        if not source.is_file():
            parser.exit(1, f"dotgallery: {source} does not exist\n")
        if _render_once(config, source):
            logger.info("Rendered %s into %s", source.name, config.output_dir)
        else:
            parser.exit(1, f"dotgallery: rendering {source.name} failed\n")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


if __name__ == "__main__":
    main(sys.argv[1:])
