"""Schnittstellen der Engine nach außen: Datenzugriff und Autorisierung."""

from typing import Optional, Protocol

from pydantic import BaseModel

from models.assignment import Assignment
from models.learner import Learner, RoleCourseMapping
from models.session import Session


class AssignmentFilter(BaseModel):
    """Filter für Abfragen und Löschungen. None = beliebig."""

    schedule_id: str
    learner_id: Optional[str] = None
    course_id: Optional[str] = None
    training_location: Optional[str] = None
    group_number: Optional[int] = None
    session_identifier: Optional[str] = None

    def matches(self, a: Assignment) -> bool:
        if a.schedule_id != self.schedule_id:
            return False
        if self.learner_id is not None and a.learner_id != self.learner_id:
            return False
        if self.course_id is not None and a.course_id != self.course_id:
            return False
        if (self.training_location is not None
                and a.training_location != self.training_location):
            return False
        if self.group_number is not None and a.group_number != self.group_number:
            return False
        if (self.session_identifier is not None
                and a.session_identifier != self.session_identifier):
            return False
        return True


class RosterFilter(BaseModel):
    """Vorfilter für das Teilnehmerverzeichnis."""

    roles: Optional[list[str]] = None
    training_locations: Optional[list[str]] = None

    def matches(self, learner: Learner) -> bool:
        if self.roles is not None and learner.role not in self.roles:
            return False
        if (self.training_locations is not None
                and learner.training_location not in self.training_locations):
            return False
        return True


class AuthDecision(BaseModel):
    allowed: bool
    reason: str = ""


class AssignmentStore(Protocol):
    """Datenzugriff. Fehler werden als StorageFailure gemeldet,
    doppelte Einfügungen als DuplicateAssignment."""

    async def query_assignments(self, schedule_id: str,
                                filters: Optional[AssignmentFilter] = None
                                ) -> list[Assignment]: ...

    async def insert_assignment(self, record: Assignment) -> Assignment: ...

    async def delete_assignments(self, filters: AssignmentFilter) -> int: ...

    async def query_role_mappings(self, project_id: Optional[str]
                                  ) -> list[RoleCourseMapping]: ...

    async def query_roster(self, project_id: Optional[str],
                           filters: Optional[RosterFilter] = None) -> list[Learner]: ...


class Authorizer(Protocol):
    """Autorisierung von Zuweisungen und Entfernungen.

    can_remove(None, None) fragt nach dem Leeren des ganzen Zeitplans.
    """

    async def can_assign(self, learner: Learner, session: Session) -> AuthDecision: ...

    async def can_remove(self, learner: Optional[Learner],
                         session: Optional[Session]) -> AuthDecision: ...
