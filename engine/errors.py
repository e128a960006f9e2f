"""Fehler-Taxonomie der Zuweisungs-Engine.

Alle Fehler erben von AssignmentEngineError und tragen einen lesbaren Grund.
NoCapacity ist ein regulärer Ausgang (kein Fehler im System) und daher über
is_fault unterscheidbar.
"""

from typing import Optional


class AssignmentEngineError(Exception):
    """Basisklasse aller Engine-Fehler."""

    is_fault = True

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TargetNotFound(AssignmentEngineError):
    """Eine Ziel-Referenz passt zu keiner Session im Katalog."""

    def __init__(self, ref: str, known_ids: Optional[list[str]] = None):
        self.ref = ref
        self.known_ids = known_ids or []
        sample = ", ".join(self.known_ids[:5])
        super().__init__(
            f"Keine Session für Referenz '{ref}' gefunden"
            + (f" (bekannt u.a.: {sample})" if sample else "")
        )


class LearnerNotFound(AssignmentEngineError):
    """Die Person ist nicht im Teilnehmerverzeichnis."""

    def __init__(self, learner_id: str):
        self.learner_id = learner_id
        super().__init__(f"Teilnehmer '{learner_id}' nicht gefunden")


class AuthorizationDenied(AssignmentEngineError):
    """Die Autorisierung hat die Aktion abgelehnt."""


class LocationMismatch(AssignmentEngineError):
    """Session-Standort weicht vom Heimat-Standort der Person ab."""

    def __init__(self, learner_id: str, learner_location: Optional[str],
                 session_location: Optional[str]):
        self.learner_id = learner_id
        self.learner_location = learner_location
        self.session_location = session_location
        super().__init__(
            f"Standort passt nicht: Teilnehmer '{learner_id}' gehört zu "
            f"'{learner_location or '-'}', Session liegt in '{session_location or '-'}'"
        )


class NoCapacity(AssignmentEngineError):
    """Keine passende Gruppe mit freien Plätzen."""

    is_fault = False


class DuplicateAssignment(AssignmentEngineError):
    """Die Zuweisung (Person, Session) existiert bereits."""

    def __init__(self, learner_id: str, session_identifier: str):
        self.learner_id = learner_id
        self.session_identifier = session_identifier
        super().__init__(
            f"Zuweisung existiert bereits: {learner_id} → {session_identifier}"
        )


class StorageFailure(AssignmentEngineError):
    """Lesen oder Schreiben im Datenspeicher ist fehlgeschlagen."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"Speicherfehler bei '{operation}'" + (f": {cause}" if cause else "")
        )
