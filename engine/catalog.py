"""Session-Katalog: Flachklopfen und Gruppieren nach Standort."""

import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from engine.identity import UNKNOWN_LOCATION, DEFAULT_FUNCTIONAL_AREA, resolve_location
from models.session import Session

logger = logging.getLogger(__name__)

# Standort → Kurs → Gruppennummer → Sessions
SessionsByLocation = dict[str, dict[str, dict[int, list[Session]]]]


def _to_session(item: Any, **annotations) -> Optional[Session]:
    if isinstance(item, Session):
        return item.with_derived_fields(**annotations)
    if not isinstance(item, dict):
        return None
    try:
        session = Session.model_validate(item)
    except ValidationError as e:
        logger.warning(f"Ungültige Session im Katalog übersprungen: {e.error_count()} Fehler")
        return None
    return session.with_derived_fields(**annotations)


def flatten_catalog(catalog: Any) -> list[Session]:
    """Katalog → flache Session-Liste in Traversierungs-Reihenfolge.

    Akzeptiert eine flache Liste oder die Verschachtelung
    Funktionsbereich → Standort → Schulungsraum → [Sessions].
    Fehlende oder falsch typisierte Ebenen werden übersprungen.
    Die Eingabe wird nicht verändert.
    """
    result: list[Session] = []
    if isinstance(catalog, list):
        for item in catalog:
            s = _to_session(item)
            if s is not None:
                result.append(s)
        return result
    if not isinstance(catalog, dict):
        return result

    for area, locations in catalog.items():
        if not isinstance(locations, dict):
            continue
        for location, classrooms in locations.items():
            if not isinstance(classrooms, dict):
                continue
            for classroom, items in classrooms.items():
                if not isinstance(items, list):
                    continue
                for item in items:
                    s = _to_session(
                        item,
                        catalog_functional_area=area,
                        catalog_location=location,
                        catalog_classroom=classroom,
                    )
                    if s is not None:
                        result.append(s)
    return result


def organize_by_location(sessions: Iterable[Session],
                         unknown_location: str = UNKNOWN_LOCATION) -> SessionsByLocation:
    """Gruppiert Sessions: Standort → Kurs → Gruppennummer → [Sessions]."""
    organized: SessionsByLocation = {}
    for s in sessions:
        location, _ = resolve_location(s, unknown_location)
        (organized
            .setdefault(location, {})
            .setdefault(s.course_id, {})
            .setdefault(s.effective_group_number, [])
            .append(s))
    return organized


def unique_functional_areas(sessions: Iterable[Session]) -> list[str]:
    """Alle Funktionsbereiche des Katalogs, sortiert; leer → ['General']."""
    areas = {resolve_location(s)[1] for s in sessions}
    return sorted(areas) or [DEFAULT_FUNCTIONAL_AREA]


def unique_training_locations(sessions: Iterable[Session]) -> list[str]:
    """Alle Standorte des Katalogs, sortiert; leer → ['Default Location']."""
    locations = {resolve_location(s)[0] for s in sessions}
    return sorted(locations) or ["Default Location"]
