from pydantic import BaseModel, Field, field_validator, model_validator


# ─── ZUWEISUNG ───

class AllocationConfig(BaseModel):
    """Regeln für die Platzierung von Teilnehmenden in Gruppen."""
    # Max. Teilnehmende pro Gruppe, falls der Zeitplan nichts vorgibt
    default_max_attendees: int = Field(25, ge=1, le=1000,
        description="Max. Teilnehmende pro Gruppe (Default)")
    # Anzeigename für Sessions ohne Standort
    unknown_location: str = Field("Unknown Location",
        description="Standort-Platzhalter")
    # Funktionsbereich für Sessions ohne Bereichsangabe
    default_functional_area: str = Field("General",
        description="Funktionsbereich-Platzhalter")
    # False: pro Kurs nur die erste Session der Gruppe; True: alle Teile
    whole_group_all_parts: bool = Field(False,
        description="Ganze-Gruppe-Zuweisung legt alle Kursteile an")
    # Kapazitäten einmal pro Batch vorladen statt pro Gruppe abzufragen
    preload_capacity: bool = Field(True,
        description="Kapazitäten pro Batch vorladen")

    @field_validator("unknown_location", "default_functional_area")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Platzhalter darf nicht leer sein.")
        return v.strip()


# ─── SPEICHER ───

class StorageConfig(BaseModel):
    """Pfade der JSON-Dateien."""
    # Zeitplan, Roster und Rollen-Zuordnungen
    dataset_path: str = Field("output/training_data.json",
        description="Pfad des Datensatzes")
    # Persistierte Zuweisungen
    assignments_path: str = Field("output/assignments.json",
        description="Pfad der Zuweisungen")

    @model_validator(mode='after')
    def _check_distinct_paths(self):
        if self.dataset_path == self.assignments_path:
            raise ValueError(
                "dataset_path und assignments_path müssen verschieden sein."
            )
        return self


# ─── BERECHTIGUNGEN ───

class PermissionPolicy(BaseModel):
    """Rechte der bearbeitenden Person im Projekt."""
    # Darf Zuweisungen anlegen und entfernen
    can_edit: bool = Field(True, description="Darf Zuweisungen bearbeiten")
    # Super-Admins dürfen alles, auch ohne hinterlegte Rechte
    is_super_admin: bool = Field(False, description="Super-Admin")
    # Leere Liste = alle Funktionsbereiche erlaubt
    functional_area_names: list[str] = Field(default_factory=list,
        description="Erlaubte Funktionsbereiche (leer = alle)")
    # Leere Liste = alle Standorte erlaubt
    training_location_names: list[str] = Field(default_factory=list,
        description="Erlaubte Standorte (leer = alle)")


# ─── GESAMTKONFIGURATION ───

class EngineConfig(BaseModel):
    """Vollständige Konfiguration der Zuweisungs-Engine."""
    # Name des Projekts (nur Anzeige)
    project_name: str = Field("Schulungsprojekt", description="Projektname")
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    permissions: PermissionPolicy = Field(default_factory=PermissionPolicy)
    # DEBUG, INFO, WARNING, ERROR
    log_level: str = Field("WARNING", description="Log-Level der CLI")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unbekanntes Log-Level: {v}")
        return level
