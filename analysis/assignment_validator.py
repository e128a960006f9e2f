"""Nachträgliche Validierung persistierter Zuweisungen.

Prüft die Zuweisungen eines Zeitplans auf Verletzungen als Sicherheitsnetz
unabhängig vom Allokator (z.B. nach Importen oder manuellen Änderungen).
"""

from collections import defaultdict
from typing import Literal, Optional

from pydantic import BaseModel

from engine.identity import stable_session_id
from models.assignment import Assignment
from models.schedule import TrainingDataset


class ValidationViolation(BaseModel):
    """Eine einzelne Verletzung."""

    severity: Literal["error", "warning"]
    constraint: str      # z.B. "duplicate_assignment"
    description: str
    entity: str          # learner_id / Gruppenschlüssel / session_identifier


class ValidationReport(BaseModel):
    """Ergebnis der Validierung."""

    violations: list[ValidationViolation]
    is_valid: bool       # True wenn keine Errors (Warnings ok)

    def print_rich(self) -> None:
        """Gibt den Report formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        errors = [v for v in self.violations if v.severity == "error"]
        warnings = [v for v in self.violations if v.severity == "warning"]

        status = (
            "[bold green]✓ VALIDE[/bold green]"
            if self.is_valid
            else "[bold red]✗ VERLETZUNGEN GEFUNDEN[/bold red]"
        )
        lines = [status, f"Fehler: {len(errors)} | Warnungen: {len(warnings)}"]
        console.print(Panel("\n".join(lines), title="Zuweisungs-Validierung",
                            border_style="cyan"))

        if not self.violations:
            console.print("[dim]Keine Verletzungen gefunden.[/dim]")
            return

        table = Table(box=box.ROUNDED, show_lines=True)
        table.add_column("Typ", width=8)
        table.add_column("Regel", width=22)
        table.add_column("Entität", width=24)
        table.add_column("Beschreibung")
        for v in self.violations:
            color = "red" if v.severity == "error" else "yellow"
            table.add_row(f"[{color}]{v.severity.upper()}[/{color}]",
                          v.constraint, v.entity, v.description)
        console.print(table)


class AssignmentValidator:
    """Prüft die Zuweisungen eines Datensatzes."""

    def validate(self, assignments: list[Assignment], dataset: TrainingDataset,
                 max_capacity: Optional[int] = None) -> ValidationReport:
        """Führt alle Checks durch und gibt einen ValidationReport zurück."""
        schedule = dataset.schedule
        rows = [a for a in assignments if a.schedule_id == schedule.id]
        max_cap = max_capacity or schedule.max_attendees()

        violations: list[ValidationViolation] = []
        violations.extend(self._check_duplicates(rows))
        violations.extend(self._check_location_mismatch(rows, dataset))
        violations.extend(self._check_capacity(rows, max_cap))
        violations.extend(self._check_unknown_sessions(rows, dataset))

        has_errors = any(v.severity == "error" for v in violations)
        return ValidationReport(violations=violations, is_valid=not has_errors)

    # ── Einzelne Prüfungen ────────────────────────────────────────────────────

    def _check_duplicates(self, rows: list[Assignment]) -> list[ValidationViolation]:
        """Kein (Person, Session)-Paar darf mehrfach vorkommen."""
        counts: dict[tuple[str, str], int] = defaultdict(int)
        for a in rows:
            counts[a.key] += 1
        return [
            ValidationViolation(
                severity="error",
                constraint="duplicate_assignment",
                description=f"{n}× dieselbe Session zugewiesen",
                entity=f"{learner_id} → {session_id}",
            )
            for (learner_id, session_id), n in counts.items() if n > 1
        ]

    def _check_location_mismatch(self, rows: list[Assignment],
                                 dataset: TrainingDataset) -> list[ValidationViolation]:
        """Session-Standort muss dem Heimat-Standort entsprechen."""
        homes = {l.id: l.training_location for l in dataset.roster}
        violations = []
        reported: set[tuple[str, str]] = set()
        for a in rows:
            home = homes.get(a.learner_id)
            if home is None or home == a.training_location:
                continue
            if (a.learner_id, a.training_location) in reported:
                continue
            reported.add((a.learner_id, a.training_location))
            violations.append(ValidationViolation(
                severity="error",
                constraint="location_mismatch",
                description=f"Heimat '{home}', Zuweisung in '{a.training_location}'",
                entity=a.learner_id,
            ))
        return violations

    def _check_capacity(self, rows: list[Assignment],
                        max_capacity: int) -> list[ValidationViolation]:
        """Pro (Standort, Kurs, Gruppe) höchstens max_capacity Personen."""
        members: dict[tuple[str, str, int], set[str]] = defaultdict(set)
        for a in rows:
            gn = a.group_number
            if gn is not None:
                members[(a.training_location, a.course_id, gn)].add(a.learner_id)
        return [
            ValidationViolation(
                severity="error",
                constraint="capacity_exceeded",
                description=f"{len(ids)} Personen bei max. {max_capacity}",
                entity=f"{loc} / {course} / Gruppe {gn}",
            )
            for (loc, course, gn), ids in sorted(members.items())
            if len(ids) > max_capacity
        ]

    def _check_unknown_sessions(self, rows: list[Assignment],
                                dataset: TrainingDataset) -> list[ValidationViolation]:
        """Zuweisungen auf Sessions, die es im Katalog nicht mehr gibt."""
        known = {stable_session_id(s) for s in dataset.schedule.sessions()}
        unknown = sorted({a.session_identifier for a in rows} - known)
        return [
            ValidationViolation(
                severity="warning",
                constraint="unknown_session",
                description="Session nicht (mehr) im Katalog",
                entity=sid,
            )
            for sid in unknown
        ]
