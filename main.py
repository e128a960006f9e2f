"""Schulungs-Zuweisung — Haupt-CLI.

Verwendung:
  python main.py init                          Default-Konfiguration anlegen
  python main.py config show                   Konfiguration anzeigen
  python main.py config edit                   Konfiguration bearbeiten
  python main.py generate                      Demo-Datensatz erzeugen
  python main.py summary                       Datensatz-Übersicht
  python main.py categorize                    Teilnehmende nach Bedarf einteilen
  python main.py resolve <ref>                 Ziel-Referenz auflösen
  python main.py assign <person> <ref>         Eine Person zuweisen
  python main.py assign-bulk <ref> <p1> <p2>   Mehrere Personen zuweisen
  python main.py auto-assign                   Gesamtes Roster zuweisen
  python main.py remove group|course|all       Zuweisungen entfernen
  python main.py stats                         Kennzahlen & Kapazitäten
  python main.py validate                      Zuweisungen prüfen
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich import box

console = Console()
logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    """Richtet Logging einmalig über den RichHandler ein."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_config(ctx: click.Context):
    """Lädt die Konfiguration (ohne Datei: Defaults) und richtet Logging ein."""
    from config.manager import ConfigManager
    mgr = ConfigManager()
    try:
        config = mgr.load_or_default()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    _setup_logging("DEBUG" if verbose else config.log_level)
    return mgr, config


def _load_dataset(config, data_path: str = None):
    """Lädt den Datensatz oder bricht mit Fehlermeldung ab."""
    from models.schedule import TrainingDataset
    path = Path(data_path or config.storage.dataset_path)
    try:
        return TrainingDataset.load_json(path)
    except FileNotFoundError:
        console.print(
            f"[red]Kein Datensatz gefunden: {path}[/red]\n"
            "Führen Sie zunächst [bold]python main.py generate[/bold] aus."
        )
        sys.exit(1)


def _build_allocator(config, dataset):
    """Store, Autorisierung und Allokator für den Datensatz."""
    from data.assignment_store import JsonTrainingStore
    from engine.allocator import AssignmentAllocator
    from engine.authorization import PolicyAuthorizer
    from engine.errors import StorageFailure

    try:
        store = JsonTrainingStore(Path(config.storage.assignments_path),
                                  dataset.roster, dataset.role_mappings)
    except StorageFailure as e:
        console.print(f"[red]{e.reason}[/red]")
        sys.exit(1)
    return AssignmentAllocator(
        store=store,
        authorizer=PolicyAuthorizer(config.permissions),
        schedule=dataset.schedule,
        roster=dataset.roster,
        mappings=dataset.role_mappings,
        config=config.allocation,
        assigned_by="cli",
    )


def _run(coro):
    """Führt eine Engine-Operation aus; Engine-Fehler → Exit-Code 1."""
    from engine.errors import AssignmentEngineError
    try:
        return asyncio.run(coro)
    except AssignmentEngineError as e:
        color = "yellow" if not e.is_fault else "red"
        console.print(f"[{color}]{type(e).__name__}: {e.reason}[/{color}]")
        sys.exit(1)


def _print_placement(result) -> None:
    console.print(
        f"[green]✓[/green] {result.learner_id}: Gruppe {result.group_number} "
        f"({result.level.value}) – {len(result.created)} neu, "
        f"{result.skipped_duplicates} bereits vorhanden"
        + (f", {result.removed} umgebucht" if result.removed else "")
    )


# ─── INIT ─────────────────────────────────────────────────────────────────────

@click.command("init")
@click.pass_context
def cmd_init(ctx: click.Context):
    """Legt die Default-Konfiguration an."""
    from config.defaults import default_engine_config
    from config.manager import ConfigManager

    mgr = ConfigManager()
    if not mgr.first_run_check():
        console.print("[yellow]Eine Konfiguration existiert bereits.[/yellow]")
        if not click.confirm("Überschreiben?", default=False):
            return
    mgr.save(default_engine_config())
    console.print("Führen Sie jetzt [bold]python main.py generate[/bold] aus.")


# ─── CONFIG ───────────────────────────────────────────────────────────────────

@click.group("config")
def cmd_config():
    """Konfiguration anzeigen oder bearbeiten."""


@cmd_config.command("show")
@click.pass_context
def config_show(ctx: click.Context):
    """Zeigt die aktuelle Konfiguration an."""
    _, config = _load_config(ctx)
    console.print(Panel(f"[bold]{config.project_name}[/bold]",
                        title="Engine-Konfiguration", border_style="cyan"))

    table = Table(title="Zuweisung", box=box.ROUNDED)
    table.add_column("Einstellung")
    table.add_column("Wert")
    ac = config.allocation
    table.add_row("Max. pro Gruppe (Default)", str(ac.default_max_attendees))
    table.add_row("Standort-Platzhalter", ac.unknown_location)
    table.add_row("Bereich-Platzhalter", ac.default_functional_area)
    table.add_row("Ganze Gruppe: alle Teile", "ja" if ac.whole_group_all_parts else "nein")
    table.add_row("Kapazität vorladen", "ja" if ac.preload_capacity else "nein")
    console.print(table)

    pp = config.permissions
    table = Table(title="Berechtigungen", box=box.ROUNDED)
    table.add_column("Einstellung")
    table.add_column("Wert")
    table.add_row("Bearbeiten", "ja" if pp.can_edit else "nein")
    table.add_row("Super-Admin", "ja" if pp.is_super_admin else "nein")
    table.add_row("Bereiche", ", ".join(pp.functional_area_names) or "alle")
    table.add_row("Standorte", ", ".join(pp.training_location_names) or "alle")
    console.print(table)

    console.print(f"Datensatz: {config.storage.dataset_path}  |  "
                  f"Zuweisungen: {config.storage.assignments_path}  |  "
                  f"Log-Level: {config.log_level}")


@cmd_config.command("edit")
@click.pass_context
def config_edit(ctx: click.Context):
    """Konfiguration interaktiv bearbeiten."""
    mgr, config = _load_config(ctx)
    mgr.edit_interactive(config)


# ─── GENERATE ─────────────────────────────────────────────────────────────────

@click.command("generate")
@click.option("--seed", default=42, show_default=True, help="Zufalls-Seed")
@click.option("--learners", default=60, show_default=True, help="Anzahl Teilnehmende")
@click.option("--groups", default=3, show_default=True, help="Gruppen pro Standort")
@click.option("--max-attendees", default=12, show_default=True, help="Plätze pro Gruppe")
@click.option("--out", "out_path", default=None, help="Zielpfad (Default aus Config)")
@click.pass_context
def cmd_generate(ctx: click.Context, seed: int, learners: int, groups: int,
                 max_attendees: int, out_path: str):
    """Erzeugt einen Demo-Datensatz (Zeitplan, Roster, Rollen)."""
    from data.fake_data import FakeDataGenerator

    _, config = _load_config(ctx)
    gen = FakeDataGenerator(seed=seed, num_learners=learners,
                            groups_per_location=groups, max_attendees=max_attendees)
    dataset = gen.generate()
    path = Path(out_path or config.storage.dataset_path)
    dataset.save_json(path)
    gen.print_summary(dataset)
    console.print(f"[green]✓[/green] Datensatz gespeichert: {path}")


# ─── SUMMARY / CATEGORIZE / RESOLVE ───────────────────────────────────────────

@click.command("summary")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_summary(ctx: click.Context, data_path: str):
    """Übersicht über Datensatz, Standorte und Bereiche."""
    from engine.catalog import unique_functional_areas, unique_training_locations

    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    sessions = dataset.schedule.sessions()

    table = Table(title="Datensatz", box=box.ROUNDED)
    table.add_column("Kennzahl", style="bold cyan")
    table.add_column("Wert")
    for label, value in dataset.summary().items():
        table.add_row(label, str(value))
    table.add_row("Max. pro Gruppe",
                  str(dataset.schedule.max_attendees(config.allocation.default_max_attendees)))
    table.add_row("Standorte", ", ".join(unique_training_locations(sessions)))
    table.add_row("Bereiche", ", ".join(unique_functional_areas(sessions)))
    console.print(table)


@click.command("categorize")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_categorize(ctx: click.Context, data_path: str):
    """Teilt das Roster nach Kursbedarf ein."""
    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)

    async def _categorize():
        rows = await allocator.store.query_assignments(dataset.schedule.id)
        return allocator.categorize(rows)

    categories = _run(_categorize())

    table = Table(title="Einteilung", box=box.ROUNDED)
    table.add_column("Kategorie", style="bold cyan")
    table.add_column("Anzahl", justify="right")
    table.add_row("Alle Kurse benötigt", str(len(categories.all_courses_needed)))
    for course_id, learners in categories.some_courses_needed.items():
        name = categories.course_names.get(course_id, course_id)
        table.add_row(f"  Kurs {course_id} ({name})", str(len(learners)))
    table.add_row("Teilweise zugewiesen", str(len(categories.partially_assigned)))
    table.add_row("Ohne Kursbedarf im Zeitplan", str(len(categories.unassigned_eligible)))
    table.add_row("Vollständig zugewiesen", str(len(categories.fully_assigned)))
    table.add_row("Nicht relevant", str(len(categories.not_applicable)))
    console.print(table)


@click.command("resolve")
@click.argument("ref")
@click.option("--location", default=None, help="Heimat-Standort als Tie-Breaker")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_resolve(ctx: click.Context, ref: str, location: str, data_path: str):
    """Löst eine Ziel-Referenz auf Session und Gruppe auf."""
    from engine.errors import TargetNotFound
    from engine.identity import resolve_target

    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    try:
        target = resolve_target(dataset.schedule.sessions(), ref, location,
                                config.allocation.unknown_location,
                                config.allocation.default_functional_area)
    except TargetNotFound as e:
        console.print(f"[red]{e.reason}[/red]")
        sys.exit(1)

    data = target.assignment_data
    table = Table(title=f"Ziel: {ref}", box=box.ROUNDED)
    table.add_column("Feld", style="bold cyan")
    table.add_column("Wert")
    for field, value in data.model_dump().items():
        table.add_row(field, str(value))
    table.add_row("title", target.session.title)
    console.print(table)


# ─── ASSIGN ───────────────────────────────────────────────────────────────────

@click.command("assign")
@click.argument("learner_id")
@click.argument("ref")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_assign(ctx: click.Context, learner_id: str, ref: str, data_path: str):
    """Weist eine Person dem Ziel REF zu."""
    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)
    _print_placement(_run(allocator.assign_single(learner_id, ref)))


@click.command("assign-bulk")
@click.argument("ref")
@click.argument("learner_ids", nargs=-1, required=True)
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_assign_bulk(ctx: click.Context, ref: str, learner_ids: tuple, data_path: str):
    """Weist mehrere Personen dem Ziel REF zu."""
    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)
    result = _run(allocator.assign_bulk(list(learner_ids), ref))

    for placement in result.placements:
        _print_placement(placement)
    for f in result.failed:
        console.print(f"[red]✗[/red] {f.learner_id}: {f.error} – {f.reason}")
    console.print(f"Erfolgreich: {len(result.successful)} | "
                  f"Fehlgeschlagen: {len(result.failed)}")


@click.command("auto-assign")
@click.option("--max-attendees", default=None, type=int,
              help="Plätze pro Gruppe (Default aus Zeitplan)")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_auto_assign(ctx: click.Context, max_attendees: int, data_path: str):
    """Weist das gesamte Roster automatisch zu. Strg+C bricht nach der aktuellen Person ab."""
    from rich.progress import BarColumn, Progress, TextColumn, MofNCompleteColumn
    from engine.auto_assign import AutoAssignOrchestrator, CancelToken

    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)
    orchestrator = AutoAssignOrchestrator(allocator)
    token = CancelToken()

    with Progress(TextColumn("{task.description}"), BarColumn(),
                  MofNCompleteColumn(), console=console) as progress:
        task = progress.add_task("Auto-Zuweisung", total=None)

        def on_progress(p):
            progress.update(
                task, total=p.total, completed=p.processed,
                description=f"{p.current_learner or ''} "
                            f"[green]{p.successful}✓[/green] [red]{p.failed}✗[/red]",
            )

        async def _auto():
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, token.cancel)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal-Handler nicht verfügbar – Abbruch nur per Token")
            return await orchestrator.run(max_capacity=max_attendees,
                                          cancel_token=token, on_progress=on_progress)

        summary = _run(_auto())

    summary.print_rich()


# ─── REMOVE ───────────────────────────────────────────────────────────────────

@click.group("remove")
def cmd_remove():
    """Zuweisungen entfernen."""


@cmd_remove.command("group")
@click.argument("learner_id")
@click.argument("location")
@click.argument("group_number", type=int)
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def remove_group(ctx: click.Context, learner_id: str, location: str,
                 group_number: int, data_path: str):
    """Entfernt eine Person aus einer Gruppe an einem Standort."""
    _, config = _load_config(ctx)
    allocator = _build_allocator(config, _load_dataset(config, data_path))
    removed = _run(allocator.remove_from_group(learner_id, location, group_number))
    console.print(f"[green]✓[/green] {removed} Zuweisung(en) entfernt")


@cmd_remove.command("course")
@click.argument("learner_id")
@click.argument("course_id")
@click.argument("location")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def remove_course(ctx: click.Context, learner_id: str, course_id: str,
                  location: str, data_path: str):
    """Entfernt eine Person aus einem Kurs an einem Standort."""
    _, config = _load_config(ctx)
    allocator = _build_allocator(config, _load_dataset(config, data_path))
    removed = _run(allocator.remove_from_course(learner_id, course_id, location))
    console.print(f"[green]✓[/green] {removed} Zuweisung(en) entfernt")


@cmd_remove.command("all")
@click.option("--yes", is_flag=True, help="Ohne Rückfrage")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def remove_all(ctx: click.Context, yes: bool, data_path: str):
    """Entfernt alle Zuweisungen des Zeitplans."""
    _, config = _load_config(ctx)
    allocator = _build_allocator(config, _load_dataset(config, data_path))
    if not yes and not click.confirm("Wirklich ALLE Zuweisungen löschen?", default=False):
        return
    removed = _run(allocator.remove_all())
    console.print(f"[green]✓[/green] {removed} Zuweisung(en) entfernt")


# ─── STATS / VALIDATE ─────────────────────────────────────────────────────────

@click.command("stats")
@click.option("--capacity/--no-capacity", default=True, help="Kapazitätstabelle anzeigen")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_stats(ctx: click.Context, capacity: bool, data_path: str):
    """Kennzahlen zum Zuweisungsstand und Kapazitäten."""
    from analysis.assignment_stats import (
        capacity_overview,
        compute_assignment_stats,
        print_stats,
    )

    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)
    rows = _run(allocator.store.query_assignments(dataset.schedule.id))

    stats = compute_assignment_stats(allocator.categorize(rows))
    records = None
    if capacity:
        records = capacity_overview(allocator.sessions, rows, allocator.max_capacity,
                                    config.allocation.unknown_location)
    print_stats(stats, records)


@click.command("validate")
@click.option("--data", "data_path", default=None, help="Pfad zum Datensatz")
@click.pass_context
def cmd_validate(ctx: click.Context, data_path: str):
    """Prüft die gespeicherten Zuweisungen auf Verletzungen."""
    from analysis.assignment_validator import AssignmentValidator

    _, config = _load_config(ctx)
    dataset = _load_dataset(config, data_path)
    allocator = _build_allocator(config, dataset)
    rows = _run(allocator.store.query_assignments(dataset.schedule.id))
    report = AssignmentValidator().validate(rows, dataset, allocator.max_capacity)
    report.print_rich()
    if not report.is_valid:
        sys.exit(1)


# ─── HAUPT-CLI ────────────────────────────────────────────────────────────────

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug-Ausgaben aktivieren")
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """Schulungs-Zuweisung: Teilnehmende kapazitätsgerecht in Gruppen einteilen.

    Starten Sie mit: python main.py init
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def main():
    """Einstiegspunkt. Weist beim ersten Aufruf auf die Einrichtung hin."""
    from config.manager import ConfigManager
    mgr = ConfigManager()

    if len(sys.argv) == 1 and mgr.first_run_check():
        console.print(Panel(
            "[bold]Willkommen bei der Schulungs-Zuweisung![/bold]\n\n"
            "Keine Konfiguration gefunden.\n"
            "Legen Sie sie mit [bold]python main.py init[/bold] an.",
            border_style="cyan",
        ))

    cli()


# Befehle registrieren
cli.add_command(cmd_init)
cli.add_command(cmd_config)
cli.add_command(cmd_generate)
cli.add_command(cmd_summary)
cli.add_command(cmd_categorize)
cli.add_command(cmd_resolve)
cli.add_command(cmd_assign)
cli.add_command(cmd_assign_bulk)
cli.add_command(cmd_auto_assign)
cli.add_command(cmd_remove)
cli.add_command(cmd_stats)
cli.add_command(cmd_validate)


if __name__ == "__main__":
    main()
