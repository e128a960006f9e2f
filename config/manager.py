"""Konfigurationsmanager: Laden, Speichern, Validieren und interaktives Bearbeiten.

Nutzt ruamel.yaml für YAML-Serialisierung mit Kommentaren.
"""

import json
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap

from config.schema import AllocationConfig, EngineConfig, PermissionPolicy

console = Console()
yaml = YAML()
yaml.default_flow_style = False
yaml.width = 120


# ─── YAML-KOMMENTAR-AUFBAU ───

_YAML_HEADER = f"""\
# ============================================
# Schulungs-Zuweisung — Engine-Konfiguration
# Erstellt: {date.today().isoformat()}
# ============================================
"""

_SECTION_COMMENTS = {
    "allocation": (
        "Zuweisung",
        "Gruppengröße, Platzhalter für fehlende Standorte/Bereiche\n"
        "und ob Ganze-Gruppe-Zuweisungen alle Kursteile anlegen.",
    ),
    "storage": (
        "Speicher",
        "JSON-Dateien für Datensatz und Zuweisungen.",
    ),
    "permissions": (
        "Berechtigungen",
        "Leere Listen = keine Einschränkung.",
    ),
    "log_level": (
        "Logging",
        None,
    ),
}


class ConfigManager:
    CONFIG_DIR = Path("config")
    DEFAULT_CONFIG = CONFIG_DIR / "engine_config.yaml"

    def first_run_check(self) -> bool:
        """Gibt True zurück wenn noch keine Config existiert (Erstaufruf)."""
        return not self.DEFAULT_CONFIG.exists()

    # ─── Laden ───

    def load(self, path: Optional[Path] = None) -> EngineConfig:
        """Lade Config aus YAML. Validiert automatisch via Pydantic."""
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            raise FileNotFoundError(
                f"Konfigurationsdatei nicht gefunden: {target}\n"
                f"Führen Sie 'python main.py init' aus, um eine Konfiguration anzulegen."
            )
        with open(target, "r", encoding="utf-8") as f:
            raw = yaml.load(f)
        try:
            return EngineConfig.model_validate(dict(raw or {}))
        except Exception as e:
            raise ValueError(
                f"Konfigurationsdatei ungültig: {target}\n"
                f"Pydantic-Fehler: {e}"
            ) from e

    def load_or_default(self, path: Optional[Path] = None) -> EngineConfig:
        """Wie load(), aber ohne Datei die Default-Konfiguration."""
        target = path or self.DEFAULT_CONFIG
        if not target.exists():
            from config.defaults import default_engine_config
            return default_engine_config()
        return self.load(target)

    # ─── Speichern ───

    def save(self, config: EngineConfig, path: Optional[Path] = None) -> None:
        """Speichere Config als YAML mit deutschen Kommentaren."""
        target = path or self.DEFAULT_CONFIG
        target.parent.mkdir(parents=True, exist_ok=True)

        data = self._build_commented_yaml(config)

        with open(target, "w", encoding="utf-8") as f:
            f.write(_YAML_HEADER + "\n")
            yaml.dump(data, f)

        console.print(f"[green]✓[/green] Konfiguration gespeichert: {target}")

    def _build_commented_yaml(self, config: EngineConfig) -> CommentedMap:
        """Baut die YAML-Struktur mit Kommentaren auf."""
        raw = json.loads(config.model_dump_json())
        cm = CommentedMap(raw)

        for field, (label, comment) in _SECTION_COMMENTS.items():
            if field not in cm:
                continue
            cm.yaml_set_comment_before_after_key(
                field,
                before=f"\n─── {label} ───" + (f"\n{comment}" if comment else ""),
            )

        # Inline-Kommentar für die Gruppengröße
        if "allocation" in cm:
            alloc_map = CommentedMap(cm["allocation"])
            alloc_map.yaml_add_eol_comment(
                "gilt, wenn der Zeitplan nichts vorgibt", "default_max_attendees")
            cm["allocation"] = alloc_map

        return cm

    # ─── Interaktiv ───

    def edit_interactive(self, config: EngineConfig) -> EngineConfig:
        """Interaktives Bearbeitungsmenü für die Konfiguration."""
        while True:
            console.print()
            console.print(Panel(
                "[bold]Konfiguration bearbeiten[/bold]",
                border_style="cyan",
            ))
            console.print("  [bold]1.[/bold] Zuweisungsregeln")
            console.print("  [bold]2.[/bold] Berechtigungen")
            console.print("  [bold]3.[/bold] Log-Level")
            console.print("  [bold]0.[/bold] Speichern & Zurück")

            choice = Prompt.ask("\nAuswahl", default="0")

            if choice == "1":
                config = config.model_copy(
                    update={"allocation": self._edit_allocation(config.allocation)}
                )
            elif choice == "2":
                config = config.model_copy(
                    update={"permissions": self._edit_permissions(config.permissions)}
                )
            elif choice == "3":
                level = Prompt.ask(
                    "Log-Level", default=config.log_level,
                    choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                )
                config = config.model_copy(update={"log_level": level})
            elif choice == "0":
                self.save(config)
                break
            else:
                console.print("[yellow]Ungültige Auswahl.[/yellow]")

        return config

    def _edit_allocation(self, ac: AllocationConfig) -> AllocationConfig:
        """Zuweisungsregeln interaktiv anpassen."""
        max_att = IntPrompt.ask("Max. Teilnehmende pro Gruppe",
                                default=ac.default_max_attendees)
        all_parts = Confirm.ask("Ganze Gruppe: alle Kursteile zuweisen?",
                                default=ac.whole_group_all_parts)
        preload = Confirm.ask("Kapazitäten pro Batch vorladen?",
                              default=ac.preload_capacity)
        return ac.model_copy(update={
            "default_max_attendees": max(1, max_att),
            "whole_group_all_parts": all_parts,
            "preload_capacity": preload,
        })

    def _edit_permissions(self, pp: PermissionPolicy) -> PermissionPolicy:
        """Berechtigungen interaktiv anpassen (Listen kommagetrennt)."""
        can_edit = Confirm.ask("Darf Zuweisungen bearbeiten?", default=pp.can_edit)
        areas = Prompt.ask("Erlaubte Funktionsbereiche (leer = alle)",
                           default=", ".join(pp.functional_area_names))
        locations = Prompt.ask("Erlaubte Standorte (leer = alle)",
                               default=", ".join(pp.training_location_names))
        return pp.model_copy(update={
            "can_edit": can_edit,
            "functional_area_names": [a.strip() for a in areas.split(",") if a.strip()],
            "training_location_names": [l.strip() for l in locations.split(",") if l.strip()],
        })
