from config.schema import (
    AllocationConfig,
    EngineConfig,
    PermissionPolicy,
    StorageConfig,
)


# ─── Stammdaten für den Demo-Datensatz ────────────────────────────────────────

# Schulungsstandorte
TRAINING_LOCATIONS = [
    "North Training Centre",
    "South Training Centre",
    "East Training Centre",
]

# Funktionsbereiche
FUNCTIONAL_AREAS = ["Operations", "Maintenance"]

# Kursmetadaten: course_id → (Name, Anzahl Teile, Funktionsbereich)
COURSE_METADATA = {
    "SAF101": ("Arbeitssicherheit Grundlagen", 1, "Operations"),
    "OPS201": ("Anlagenbedienung", 2, "Operations"),
    "QMS110": ("Qualitätsmanagement", 1, "Operations"),
    "MNT301": ("Instandhaltung Mechanik", 2, "Maintenance"),
    "MNT320": ("Elektrische Sicherheit", 1, "Maintenance"),
}

# Rollen → verlangte Kurse
ROLE_REQUIREMENTS = {
    "Operator": ["SAF101", "OPS201", "QMS110"],
    "Shift Lead": ["SAF101", "OPS201", "QMS110", "MNT320"],
    "Technician": ["SAF101", "MNT301", "MNT320"],
    "Quality Inspector": ["QMS110"],
    "Planner": [],
}


def default_allocation() -> AllocationConfig:
    """Standardregeln: 25 Plätze pro Gruppe, Kapazität wird vorgeladen."""
    return AllocationConfig(
        default_max_attendees=25,
        unknown_location="Unknown Location",
        default_functional_area="General",
        whole_group_all_parts=False,
        preload_capacity=True,
    )


def default_engine_config() -> EngineConfig:
    """Vollständige Default-Konfiguration."""
    return EngineConfig(
        project_name="Schulungsprojekt",
        allocation=default_allocation(),
        storage=StorageConfig(),
        permissions=PermissionPolicy(can_edit=True),
        log_level="WARNING",
    )
