"""Auto-Zuweisung: greedy Platzierung des gesamten Rosters.

Reihenfolge: (1) Personen, die alle Kurse brauchen, (2) Personen mit
einzelnen fehlenden Kursen, gruppiert nach Kurs, (3) zugeordnete Rollen ohne
Kurs im Zeitplan (wie (1) behandelt). Abbruch wird nur zwischen zwei
Personen geprüft; bereits angelegte Zuweisungen bleiben bestehen.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from engine.allocator import AssignmentAllocator
from engine.catalog import SessionsByLocation
from engine.categorizer import categorize
from engine.errors import AssignmentEngineError
from models.assignment import AssignmentSource
from models.learner import Learner

logger = logging.getLogger(__name__)


class AutoAssignStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancelToken:
    """Kooperatives Abbruch-Signal; darf aus einem anderen Thread gesetzt werden."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AutoAssignProgress(BaseModel):
    current_learner: Optional[str] = None
    processed: int = 0
    total: int = 0
    successful: int = 0
    failed: int = 0
    cancelled: bool = False


class AutoAssignFailure(BaseModel):
    learner_id: str
    reason: str
    error: str
    course_id: Optional[str] = None


class AutoAssignCounts(BaseModel):
    all_courses_count: int = 0
    some_courses_count: int = 0
    total_processed: int = 0


class AutoAssignSummary(BaseModel):
    """Ergebnis eines Auto-Zuweisungs-Laufs."""

    status: AutoAssignStatus
    successful: list[str] = Field(default_factory=list)
    failed: list[AutoAssignFailure] = Field(default_factory=list)
    summary: AutoAssignCounts = Field(default_factory=AutoAssignCounts)
    created_count: int = 0

    def print_rich(self) -> None:
        """Gibt das Ergebnis formatiert über Rich aus."""
        from rich.console import Console
        from rich.panel import Panel
        from rich.table import Table
        from rich import box

        console = Console()
        colors = {
            AutoAssignStatus.COMPLETED: "green",
            AutoAssignStatus.CANCELLED: "yellow",
            AutoAssignStatus.FAILED: "red",
        }
        color = colors.get(self.status, "white")
        console.print(Panel(
            f"[bold {color}]{self.status.value.upper()}[/bold {color}]\n"
            f"Alle Kurse benötigt:      {self.summary.all_courses_count}\n"
            f"Einzelne Kurse benötigt:  {self.summary.some_courses_count}\n"
            f"Verarbeitet:              {self.summary.total_processed}\n"
            f"Erfolgreich (Personen):   {len(self.successful)}\n"
            f"Neue Zuweisungen:         {self.created_count}",
            title="Auto-Zuweisung",
            border_style="cyan",
        ))
        if self.failed:
            table = Table(title="Nicht platziert", box=box.SIMPLE)
            table.add_column("Teilnehmer")
            table.add_column("Kurs")
            table.add_column("Grund")
            for f in self.failed:
                table.add_row(f.learner_id, f.course_id or "alle", f.reason)
            console.print(table)


ProgressCallback = Callable[[AutoAssignProgress], None]


class AutoAssignOrchestrator:
    """Zustandsmaschine Idle → Running → {Completed, Cancelled, Failed}."""

    def __init__(self, allocator: AssignmentAllocator):
        self.allocator = allocator
        self.status = AutoAssignStatus.IDLE

    async def run(self, roster: Optional[list[Learner]] = None,
                  sessions_by_location: Optional[SessionsByLocation] = None,
                  max_capacity: Optional[int] = None,
                  cancel_token: Optional[CancelToken] = None,
                  on_progress: Optional[ProgressCallback] = None) -> AutoAssignSummary:
        """Platziert das gesamte Roster. Unerwartete Fehler setzen FAILED und werden weitergereicht."""
        if self.status == AutoAssignStatus.RUNNING:
            raise RuntimeError("Auto-Zuweisung läuft bereits")
        self.status = AutoAssignStatus.RUNNING
        try:
            summary = await self._run(roster, sessions_by_location, max_capacity,
                                      cancel_token, on_progress)
        except Exception as e:
            self.status = AutoAssignStatus.FAILED
            logger.error(f"Auto-Zuweisung abgebrochen: {e}")
            raise
        self.status = summary.status
        return summary

    async def _run(self, roster, sessions_by_location, max_capacity,
                   cancel_token, on_progress) -> AutoAssignSummary:
        alloc = self.allocator
        sbl = sessions_by_location if sessions_by_location is not None else alloc.sessions_by_location
        max_cap = max_capacity if max_capacity is not None else alloc.max_capacity

        batch = await alloc.open_batch(AssignmentSource.AUTOMATIC)
        if roster is None:
            categories = batch.categories
        else:
            categories = categorize(roster, alloc.mappings, batch.rows,
                                    list(alloc.course_names), alloc.course_names)

        # (Person, Kurs) – Kurs None = ganze Gruppe
        work: list[tuple[Learner, Optional[str]]] = []
        work += [(l, None) for l in categories.all_courses_needed]
        for course_id, learners in categories.some_courses_needed.items():
            work += [(l, course_id) for l in learners]
        work += [(l, None) for l in categories.unassigned_eligible]

        logger.info(
            f"Auto-Zuweisung: {len(categories.all_courses_needed)} alle Kurse, "
            f"{categories.some_courses_count} Einzelkurse, "
            f"{len(categories.unassigned_eligible)} ohne Kursbedarf im Zeitplan, "
            f"max. {max_cap} pro Gruppe"
        )

        progress = AutoAssignProgress(total=len(work))
        summary = AutoAssignSummary(
            status=AutoAssignStatus.RUNNING,
            summary=AutoAssignCounts(
                all_courses_count=len(categories.all_courses_needed),
                some_courses_count=categories.some_courses_count,
            ),
        )

        def notify():
            if on_progress is not None:
                on_progress(progress.model_copy())

        for learner, course_id in work:
            if cancel_token is not None and cancel_token.cancelled:
                logger.warning(f"Auto-Zuweisung abgebrochen nach {progress.processed} Personen")
                progress.cancelled = True
                summary.status = AutoAssignStatus.CANCELLED
                notify()
                break

            progress.current_learner = learner.name
            try:
                if course_id is None:
                    result = await alloc.assign_whole_group(learner, sbl, max_cap, batch=batch)
                else:
                    result = await alloc.assign_single_course(learner, course_id, sbl,
                                                              max_cap, batch=batch)
            except AssignmentEngineError as e:
                progress.failed += 1
                summary.failed.append(AutoAssignFailure(
                    learner_id=learner.id, reason=e.reason,
                    error=type(e).__name__, course_id=course_id,
                ))
                logger.info(f"{learner.name}: nicht platziert ({e.reason})")
            else:
                progress.successful += 1
                summary.created_count += len(result.created)
                if learner.id not in summary.successful:
                    summary.successful.append(learner.id)
            progress.processed += 1
            notify()

        if summary.status == AutoAssignStatus.RUNNING:
            summary.status = AutoAssignStatus.COMPLETED
        summary.summary.total_processed = progress.processed
        logger.info(
            f"Auto-Zuweisung {summary.status.value}: {progress.successful} erfolgreich, "
            f"{progress.failed} fehlgeschlagen, {summary.created_count} neue Zuweisungen"
        )
        return summary
