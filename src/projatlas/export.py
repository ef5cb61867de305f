"""Multi-page atlas export: one captured frame per catalog projection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .app import MapSession
from .models import ProjectionDescriptor

_LOGGER = logging.getLogger("projatlas.export")

_CAPTION_OFFSET_PX = (12, 10)
_CAPTION_COLOR = (33, 33, 33)


@dataclass(slots=True)
class ExportReport:
    output_path: Path | None = None
    pages: list[str] = field(default_factory=list)
    fallbacks: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


async def run_export(
    session: MapSession,
    output_path: Path,
    *,
    projection_ids: Sequence[str] | None = None,
    caption: bool = True,
    resolution_dpi: float = 100.0,
    settle_s: float = 0.0,
) -> ExportReport:
    """Capture one page per projection and write them as a single PDF.

    Projections are applied one at a time through the view controller, each
    followed by a full render before capture. The view state in effect before
    the export is restored afterwards, including when a capture fails. A
    failed capture aborts the remaining batch and no document is written.
    """
    report = ExportReport(output_path=output_path)
    if not session.is_ready:
        report.add_error(f"Boundary data is {session.status.value}; nothing to export.")
        return report

    try:
        descriptors = _resolve_descriptors(session, projection_ids)
    except LookupError as exc:
        report.add_error(str(exc))
        return report
    if not descriptors:
        report.add_error("No projections selected for export.")
        return report

    controller = session.controller
    snapshot = controller.state
    pages: list[Any] = []
    try:
        for idx, descriptor in enumerate(descriptors, start=1):
            _LOGGER.info("(%d/%d) %s", idx, len(descriptors), descriptor.id)
            try:
                if not controller.select_projection(descriptor.id):
                    raise RuntimeError("projection was not applied")
                if settle_s > 0:
                    await asyncio.sleep(settle_s)
                result = session.last_result
                if result is None or result.projection_id != descriptor.id:
                    raise RuntimeError("no render pass completed")
                image = session.renderer.capture_image()
                if caption:
                    _draw_caption(image, descriptor)
            except Exception as exc:
                _LOGGER.exception("Capture failed for %s", descriptor.id)
                report.add_error(f"Capture failed for {descriptor.id}: {exc}")
                break
            pages.append(image)
            report.pages.append(descriptor.id)
            if result.fallback:
                report.fallbacks.append(descriptor.id)
    finally:
        controller.restore(snapshot)

    if not report.ok:
        remaining = len(descriptors) - len(report.pages) - 1
        if remaining > 0:
            report.add_warning(f"Export aborted; {remaining} projections were not captured.")
        return report

    if report.fallbacks:
        report.add_warning(
            "Rendered with the fallback fit: " + _format_id_list(report.fallbacks)
        )
    try:
        _write_pdf(pages, output_path, resolution_dpi=resolution_dpi)
    except OSError as exc:
        report.add_error(f"Failed writing {output_path}: {exc}")
        return report
    report.add_info(f"Wrote {len(pages)} pages to {output_path}")
    return report


def format_export_lines(report: ExportReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Export completed with no errors.")
    return lines


def _resolve_descriptors(
    session: MapSession,
    projection_ids: Sequence[str] | None,
) -> list[ProjectionDescriptor]:
    if projection_ids is None:
        return list(session.catalog.all())
    return [session.catalog.require(projection_id) for projection_id in projection_ids]


def _draw_caption(image: Any, descriptor: ProjectionDescriptor) -> None:
    image_draw, image_font = _require_pillow_draw()
    draw = image_draw.Draw(image)
    draw.text(
        _CAPTION_OFFSET_PX,
        f"{descriptor.display_name} ({descriptor.family.value})",
        fill=_CAPTION_COLOR,
        font=image_font.load_default(),
    )


def _write_pdf(pages: Sequence[Any], output_path: Path, *, resolution_dpi: float) -> None:
    if not pages:
        raise ValueError("No pages to write")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    first, *rest = pages
    first.save(
        output_path,
        format="PDF",
        save_all=True,
        append_images=rest,
        resolution=resolution_dpi,
    )


def _format_id_list(values: list[str], limit: int = 12) -> str:
    if len(values) <= limit:
        return ", ".join(values)
    shown = ", ".join(values[:limit])
    return f"{shown} (+{len(values) - limit} more)"


def _require_pillow_draw() -> tuple[Any, Any]:
    try:
        from PIL import ImageDraw, ImageFont
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("Pillow is required for export captions") from exc
    return (ImageDraw, ImageFont)
