from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich import print, print_json
from rich.table import Table

# If not installed in editable mode, add repo root to PYTHONPATH
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from charsheet.config import get_settings
from charsheet.errors import CharSheetError
from charsheet.export.exporters import export_json, export_sheet
from charsheet.importer import SheetImporter
from charsheet.logging_config import setup_logging
from charsheet.model.schema import SECTION_ATTRS, SectionId, export_json_schema
from charsheet.notify import Notification, NotificationBroker
from charsheet.repository import SheetRepository
from charsheet.store import SheetStore

app = typer.Typer(add_completion=False, help="Character sheet import / edit / export")

_STYLES = {"success": "green", "error": "red", "info": "cyan", "warning": "yellow"}


def _echo(note: Optional[Notification]) -> None:
    if note is None:
        return
    style = _STYLES.get(note.kind, "white")
    print(f"[{style}]{note.message}[/{style}]")


class _Services:
    """Broker, store, repository and importer wired from settings."""

    def __init__(self):
        cfg = get_settings()
        self.cfg = cfg
        self.broker = NotificationBroker(
            durations_ms={
                "success": cfg.notify_success_ms,
                "error": cfg.notify_error_ms,
                "info": cfg.notify_info_ms,
                "warning": cfg.notify_warning_ms,
            }
        )
        self.broker.subscribe(_echo)
        self.store = SheetStore(
            cfg.db_path,
            broker=self.broker,
            sheet_key=cfg.sheet_key,
            raw_text_key=cfg.raw_text_key,
        )
        self.repo = SheetRepository(self.store, self.broker)
        self.repo.rehydrate()
        self.importer = SheetImporter(self.repo, self.broker, self.store, cfg)

    def require_sheet(self):
        sheet = self.repo.current
        if sheet is None:
            typer.secho("No character sheet loaded; import one first", fg="yellow")
            raise typer.Exit(1)
        return sheet


@app.callback()
def main():
    cfg = get_settings()
    setup_logging(cfg.log_level, str(cfg.logs_path))


@app.command("import-pdf")
def import_pdf(
    path: Path = typer.Argument(..., help="PDF character sheet"),
    content_type: str = typer.Option(None, help="Declared MIME type, if known"),
):
    """Import a PDF character sheet and make it the current sheet."""
    svc = _Services()
    try:
        sheet = asyncio.run(svc.importer.import_pdf(path, content_type))
    except CharSheetError:
        raise typer.Exit(1)
    print(f"[green]✓[/green] {path.name} → {sheet.info.name or 'unnamed character'}")


@app.command("import-url")
def import_url(url: str = typer.Argument(..., help=".../characters/<id> profile URL")):
    """Fetch a character profile page and make it the current sheet."""
    svc = _Services()
    try:
        sheet = asyncio.run(svc.importer.import_url(url))
    except CharSheetError:
        raise typer.Exit(1)
    print(f"[green]✓[/green] {url} → {sheet.info.name or 'unnamed character'}")


@app.command("import-json")
def import_json(path: Path = typer.Argument(..., help="File written by export-json")):
    """Load a sheet from a JSON export."""
    svc = _Services()
    try:
        svc.importer.import_json(path.read_text(encoding="utf-8"))
    except CharSheetError:
        raise typer.Exit(1)


@app.command()
def reparse():
    """Re-run text extraction on the text cached from the last PDF import."""
    svc = _Services()
    try:
        svc.importer.reparse_cached_text()
    except CharSheetError:
        raise typer.Exit(1)


@app.command()
def show(as_json: bool = typer.Option(False, "--json", help="Dump the full record")):
    """Show the current sheet."""
    svc = _Services()
    sheet = svc.require_sheet()
    if as_json:
        print_json(export_json(sheet))
        return

    info = sheet.info
    hp = info.hit_points
    print(
        f"[bold]{info.name or 'Unnamed'}[/bold]  "
        f"Level {info.level if info.level is not None else '?'} "
        f"{info.race or ''} {info.character_class or ''}".rstrip()
    )
    if hp is not None:
        print(f"HP {hp.current}/{hp.maximum}  AC {info.armor_class}  Speed {info.speed}")

    table = Table(title=f"Layout ({sheet.layout.theme})")
    table.add_column("#", justify="right")
    table.add_column("Section")
    table.add_column("Id")
    table.add_column("Visible")
    table.add_column("Collapsed")
    for s in sheet.layout.ordered():
        table.add_row(str(s.order), s.title, s.id.value, str(s.visible), str(s.collapsed))
    print(table)


def _export(fmt: str, out: Optional[Path]) -> None:
    svc = _Services()
    sheet = svc.require_sheet()
    path = export_sheet(sheet, fmt, svc.cfg.output_dir, out)
    print(f"[green]✓[/green] wrote {path}")


@app.command("export-json")
def export_json_cmd(out: Path = typer.Option(None, "--out", help="Output file")):
    """Write the current sheet as JSON (<name>-sheet.json under output_dir)."""
    _export("json", out)


@app.command("export-pdf")
def export_pdf_cmd(out: Path = typer.Option(None, "--out", help="Output file")):
    """Render the current sheet to PDF (<name>-sheet.pdf under output_dir)."""
    _export("pdf", out)


def _parse_value(raw: str):
    # JSON literals (numbers, booleans, null, objects); plain text otherwise
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@app.command()
def edit(
    section: SectionId = typer.Argument(..., help="Section to edit"),
    field_path: str = typer.Argument(..., help="Dotted JSON path, e.g. hitPoints.current"),
    value: str = typer.Argument(..., help="New value (JSON literal or text)"),
):
    """Edit one field of a section and commit it."""
    svc = _Services()
    svc.require_sheet()
    session = svc.repo.begin_edit(section)
    try:
        session.update(field_path, _parse_value(value))
    except CharSheetError as e:
        svc.repo.cancel_edit()
        typer.secho(str(e), fg="red")
        raise typer.Exit(1)
    sheet = svc.repo.commit_edit()
    print_json(data=getattr(sheet, SECTION_ATTRS[section]).model_dump(mode="json", by_alias=True))


@app.command("move-section")
def move_section(
    section: SectionId = typer.Argument(..., help="Section to move"),
    index: int = typer.Argument(..., help="New 0-based position"),
):
    """Reorder the layout."""
    svc = _Services()
    svc.require_sheet()
    sheet = svc.repo.move_section(section, index)
    print(" > ".join(s.title for s in sheet.layout.ordered()))


@app.command()
def toggle(
    section: SectionId = typer.Argument(...),
    hide: bool = typer.Option(False, "--hide/--show", help="Hide or show the section"),
    collapse: Optional[bool] = typer.Option(None, "--collapse/--expand"),
):
    """Show/hide or collapse/expand a section."""
    svc = _Services()
    svc.require_sheet()
    svc.repo.set_section_visible(section, not hide)
    if collapse is not None:
        svc.repo.set_section_collapsed(section, collapse)


@app.command()
def theme(name: str = typer.Argument(..., help="light or dark")):
    """Switch the layout theme."""
    svc = _Services()
    svc.require_sheet()
    try:
        svc.repo.set_theme(name)
    except CharSheetError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(1)


@app.command()
def clear():
    """Forget the current sheet and its cached text."""
    svc = _Services()
    svc.repo.clear()
    print("[green]Cleared[/green]")


@app.command()
def schema(out: Path = typer.Option(None, "--out", help="Write to file instead of stdout")):
    """JSON Schema of the character sheet record."""
    text = json.dumps(export_json_schema(), indent=2)
    if out is None:
        print_json(text)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text, encoding="utf-8")
    print(f"Wrote {out}")


if __name__ == "__main__":
    app()
