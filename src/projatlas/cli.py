"""CLI entrypoint for the projatlas projection atlas."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from .app import MapSession
from .catalog import ProjectionCatalog, default_catalog, format_catalog_lines, load_projection_catalog
from .config import AppConfig, load_config
from .export import format_export_lines, run_export
from .models import CenterMode, ViewMode
from .util import prepare_build_tree, setup_logging, write_menu_json

LOGGER = logging.getLogger("projatlas.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="projatlas",
        description="World map projection atlas.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    list_p = subparsers.add_parser("list", help="List catalog projections in menu order.")
    add_common(list_p)
    list_p.add_argument(
        "--family",
        action="append",
        default=[],
        help="Only list projections of this family. Can be repeated.",
    )
    list_p.add_argument(
        "--json",
        action="store_true",
        help="Also write menu entries to <build_root>/projections.json.",
    )

    render_p = subparsers.add_parser("render", help="Render one projection to PNG.")
    add_common(render_p)
    render_p.add_argument("--projection", default=None, help="Projection id (default from config).")
    render_p.add_argument(
        "--center-mode",
        choices=[mode.value for mode in CenterMode],
        default=None,
        help="Center the map on the origin, the home country, or the fixed meridian.",
    )
    render_p.add_argument(
        "--view-mode",
        choices=[mode.value for mode in ViewMode],
        default=None,
        help="World view or home-country close-up.",
    )
    render_p.add_argument("--width", type=int, default=None, help="Canvas width in pixels.")
    render_p.add_argument("--height", type=int, default=None, help="Canvas height in pixels.")
    render_p.add_argument(
        "--output",
        default=None,
        help="Output PNG path (default <renders_dir>/<projection>.png).",
    )

    export_p = subparsers.add_parser("export", help="Export every projection into one PDF.")
    add_common(export_p)
    export_p.add_argument(
        "--projection",
        action="append",
        default=[],
        help="Export only this projection id. Can be repeated.",
    )
    export_p.add_argument("--output", default=None, help="Output PDF path (default from config).")
    export_p.add_argument("--no-caption", action="store_true", help="Do not caption pages.")

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir, verbose=args.verbose)
    for path in prepare_build_tree(cfg.paths):
        LOGGER.debug("Created %s", path)
    return cfg


def _load_catalog(cfg: AppConfig) -> ProjectionCatalog:
    if cfg.paths.catalog is not None:
        return load_projection_catalog(cfg.paths.catalog)
    return default_catalog()


def _run_list(cfg: AppConfig, *, families: Sequence[str], write_menu: bool) -> int:
    catalog = _load_catalog(cfg)
    wanted = {item.strip().casefold() for item in families if item and item.strip()}
    if wanted:
        catalog = ProjectionCatalog(item for item in catalog.all() if item.family.value in wanted)
    for line in format_catalog_lines(catalog):
        LOGGER.info(line)
    LOGGER.info("%d projections.", len(catalog))
    if write_menu:
        menu_path = write_menu_json(cfg.paths.build_root, catalog)
        LOGGER.info("Menu entries written to %s", menu_path)
    return 0


async def _render_async(
    session: MapSession,
    *,
    projection_id: str | None,
    center_mode: str | None,
    view_mode: str | None,
    output_path: Path | None,
    renders_dir: Path,
) -> int:
    if not await session.load_boundaries():
        return 1
    controller = session.controller
    if projection_id is not None and not await session.request_projection(projection_id):
        return 1
    if view_mode is not None and ViewMode(view_mode) is not controller.state.view_mode:
        controller.select_view_mode(view_mode)
    if center_mode is not None and not controller.select_center_mode(center_mode):
        LOGGER.warning("Center mode %s ignored for view mode %s.", center_mode, controller.state.view_mode.value)

    result = session.last_result
    if result is None:
        LOGGER.error("Nothing was rendered.")
        return 1
    target = output_path or renders_dir / f"{controller.state.projection_id}.png"
    session.renderer.save_png(target)
    LOGGER.info(
        "Rendered %s (%d countries, %d skipped%s) to %s",
        result.projection_id,
        result.drawn_count,
        result.skipped_count,
        ", fallback fit" if result.fallback else "",
        target,
    )
    return 0


def _run_render(
    cfg: AppConfig,
    *,
    projection_id: str | None,
    center_mode: str | None,
    view_mode: str | None,
    width: int | None,
    height: int | None,
    output: str | None,
) -> int:
    session = MapSession.from_config(cfg, catalog=_load_catalog(cfg))
    try:
        if width is not None or height is not None:
            session.renderer.resize(width or cfg.canvas.width_px, height or cfg.canvas.height_px)
        return asyncio.run(
            _render_async(
                session,
                projection_id=projection_id,
                center_mode=center_mode,
                view_mode=view_mode,
                output_path=Path(output) if output else None,
                renders_dir=cfg.paths.renders_dir,
            )
        )
    finally:
        session.close()


async def _export_async(
    session: MapSession,
    cfg: AppConfig,
    *,
    projection_ids: Sequence[str],
    output_path: Path,
    caption: bool,
) -> int:
    if not await session.load_boundaries():
        return 1
    report = await run_export(
        session,
        output_path,
        projection_ids=list(projection_ids) or None,
        caption=caption,
        resolution_dpi=cfg.export.resolution_dpi,
        settle_s=cfg.export.settle_s,
    )
    for line in format_export_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_export(
    cfg: AppConfig,
    *,
    projection_ids: Sequence[str],
    output: str | None,
    no_caption: bool,
) -> int:
    session = MapSession.from_config(cfg, catalog=_load_catalog(cfg))
    try:
        return asyncio.run(
            _export_async(
                session,
                cfg,
                projection_ids=projection_ids,
                output_path=Path(output) if output else cfg.export.output_pdf,
                caption=cfg.export.caption and not no_caption,
            )
        )
    finally:
        session.close()


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "list":
        families = [str(item) for item in args.family]
        return _run_list(cfg, families=families, write_menu=bool(args.json))
    if command == "render":
        return _run_render(
            cfg,
            projection_id=args.projection,
            center_mode=args.center_mode,
            view_mode=args.view_mode,
            width=args.width,
            height=args.height,
            output=args.output,
        )
    if command == "export":
        projection_ids = [str(item) for item in args.projection]
        return _run_export(
            cfg,
            projection_ids=projection_ids,
            output=args.output,
            no_caption=bool(args.no_caption),
        )
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
