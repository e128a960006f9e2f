"""Kennzahlen und Kapazitäts-Übersicht eines Zeitplans."""

from collections import defaultdict
from typing import Optional

from pydantic import BaseModel, Field

from engine.catalog import organize_by_location
from engine.categorizer import LearnerCategories, LearnerStatus
from engine.identity import UNKNOWN_LOCATION, resolve_location
from models.assignment import Assignment, course_group_identifier
from models.session import Session


class AssignmentStats(BaseModel):
    """Zuweisungsstand des Rosters."""

    total: int
    fully_assigned: int
    partially_assigned: int
    unassigned: int
    not_applicable: int = 0
    waitlisted: int = 0      # Warteliste ist nicht implementiert


class CapacityRecord(BaseModel):
    """Belegung einer Kursgruppe an einem Standort."""

    training_location: str
    functional_area: str
    course_id: str
    course_name: str
    group_number: int
    group_identifier: str
    sessions: int
    max_capacity: int
    current_count: int
    waitlist: list[str] = Field(default_factory=list)

    @property
    def available(self) -> int:
        return max(0, self.max_capacity - self.current_count)

    @property
    def is_full(self) -> bool:
        return self.current_count >= self.max_capacity


def compute_assignment_stats(categories: LearnerCategories) -> AssignmentStats:
    """Zählt Personen je Zuweisungsstand aus einer Einteilung."""
    counts: dict[LearnerStatus, int] = defaultdict(int)
    for status in categories.status.values():
        counts[status] += 1
    unassigned = (counts[LearnerStatus.NEEDS_ALL] + counts[LearnerStatus.NEEDS_SOME]
                  + counts[LearnerStatus.UNASSIGNED_ELIGIBLE])
    return AssignmentStats(
        total=len(categories.status),
        fully_assigned=counts[LearnerStatus.FULLY_ASSIGNED],
        partially_assigned=counts[LearnerStatus.PARTIALLY_ASSIGNED],
        unassigned=unassigned,
        not_applicable=counts[LearnerStatus.NOT_APPLICABLE],
    )


def capacity_overview(sessions: list[Session], assignments: list[Assignment],
                      max_capacity: int,
                      unknown_location: str = UNKNOWN_LOCATION) -> list[CapacityRecord]:
    """Belegung jeder (Standort, Kurs, Gruppe) aus Katalog und Zuweisungen."""
    members: dict[tuple[str, str, int], set[str]] = defaultdict(set)
    for a in assignments:
        gn = a.group_number
        if gn is not None:
            members[(a.training_location, a.course_id, gn)].add(a.learner_id)

    records: list[CapacityRecord] = []
    organized = organize_by_location(sessions, unknown_location)
    for location in sorted(organized):
        for course_id, groups in organized[location].items():
            for gn in sorted(groups):
                group_sessions = groups[gn]
                first = group_sessions[0]
                _, area = resolve_location(first, unknown_location)
                records.append(CapacityRecord(
                    training_location=location,
                    functional_area=area,
                    course_id=course_id,
                    course_name=first.course_name or course_id,
                    group_number=gn,
                    group_identifier=course_group_identifier(course_id, gn),
                    sessions=len(group_sessions),
                    max_capacity=max_capacity,
                    current_count=len(members.get((location, course_id, gn), set())),
                ))
    return records


def print_stats(stats: AssignmentStats, records: Optional[list[CapacityRecord]] = None) -> None:
    """Gibt Kennzahlen und Kapazitäten über Rich aus."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table
    from rich import box

    console = Console()
    console.print(Panel(
        f"Gesamt:              {stats.total}\n"
        f"[green]Vollständig:         {stats.fully_assigned}[/green]\n"
        f"[yellow]Teilweise:           {stats.partially_assigned}[/yellow]\n"
        f"[red]Nicht zugewiesen:    {stats.unassigned}[/red]\n"
        f"[dim]Nicht relevant:      {stats.not_applicable}[/dim]\n"
        f"Warteliste:          {stats.waitlisted}",
        title="Zuweisungsstand",
        border_style="cyan",
    ))
    if not records:
        return

    table = Table(title="Kapazitäten", box=box.ROUNDED)
    table.add_column("Standort")
    table.add_column("Kurs")
    table.add_column("Gruppe", justify="right")
    table.add_column("Belegt", justify="right")
    table.add_column("Frei", justify="right")
    for r in records:
        color = "red" if r.is_full else "green"
        table.add_row(
            r.training_location,
            f"{r.course_id} {r.course_name}",
            str(r.group_number),
            f"{r.current_count}/{r.max_capacity}",
            f"[{color}]{r.available}[/{color}]",
        )
    console.print(table)
