"""Tests für das Konfigurationssystem und die Datenmodelle."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.defaults import (
    COURSE_METADATA,
    ROLE_REQUIREMENTS,
    default_allocation,
    default_engine_config,
)
from config.manager import ConfigManager
from config.schema import AllocationConfig, EngineConfig, PermissionPolicy, StorageConfig
from models.assignment import (
    Assignment,
    course_group_identifier,
    group_number_from_identifier,
    location_group_identifier,
)
from models.learner import Learner, RoleCourseMapping, mapped_roles, required_courses_for_role
from models.session import Session, parse_group_number, parse_part_number


# ─── DEFAULT-KONFIGURATION ────────────────────────────────────────────────────

class TestDefaultConfig:
    def test_default_engine_config_valid(self):
        """Vollständige Default-Config ist valide."""
        config = default_engine_config()
        assert config.project_name == "Schulungsprojekt"
        assert config.allocation.default_max_attendees == 25
        assert config.allocation.preload_capacity is True
        assert config.permissions.can_edit is True
        assert config.log_level == "WARNING"

    def test_default_allocation_placeholders(self):
        ac = default_allocation()
        assert ac.unknown_location == "Unknown Location"
        assert ac.default_functional_area == "General"
        assert ac.whole_group_all_parts is False

    def test_role_requirements_reference_known_courses(self):
        """Alle verlangten Kurse existieren in den Kursmetadaten."""
        for role, courses in ROLE_REQUIREMENTS.items():
            for c in courses:
                assert c in COURSE_METADATA, f"{role}: unbekannter Kurs {c}"


# ─── VALIDIERUNG ──────────────────────────────────────────────────────────────

class TestPydanticValidation:
    def test_max_attendees_bounds(self):
        with pytest.raises(ValidationError):
            AllocationConfig(default_max_attendees=0)
        with pytest.raises(ValidationError):
            AllocationConfig(default_max_attendees=5000)

    def test_blank_placeholder_rejected(self):
        with pytest.raises(ValidationError):
            AllocationConfig(unknown_location="   ")

    def test_placeholder_stripped(self):
        assert AllocationConfig(default_functional_area=" Allgemein ").default_functional_area == "Allgemein"

    def test_storage_paths_must_differ(self):
        with pytest.raises(ValidationError):
            StorageConfig(dataset_path="x.json", assignments_path="x.json")

    def test_log_level_normalized(self):
        assert EngineConfig(log_level="debug").log_level == "DEBUG"
        with pytest.raises(ValidationError):
            EngineConfig(log_level="LAUT")

    def test_permission_defaults_unrestricted(self):
        pp = PermissionPolicy()
        assert pp.functional_area_names == []
        assert pp.training_location_names == []
        assert pp.is_super_admin is False


# ─── CONFIG-MANAGER ───────────────────────────────────────────────────────────

def make_manager(tmp_path: Path) -> ConfigManager:
    mgr = ConfigManager()
    mgr.CONFIG_DIR = tmp_path
    mgr.DEFAULT_CONFIG = tmp_path / "engine_config.yaml"
    return mgr


class TestConfigManager:
    def test_save_and_load_roundtrip(self, tmp_path: Path):
        """Config speichern, laden und validieren."""
        mgr = make_manager(tmp_path)
        config = default_engine_config().model_copy(update={
            "project_name": "Test-Werk",
            "permissions": PermissionPolicy(training_location_names=["North"]),
        })
        mgr.save(config)

        loaded = mgr.load(mgr.DEFAULT_CONFIG)
        assert loaded.project_name == "Test-Werk"
        assert loaded.permissions.training_location_names == ["North"]
        assert loaded.allocation == config.allocation

    def test_saved_file_has_comments(self, tmp_path: Path):
        mgr = make_manager(tmp_path)
        mgr.save(default_engine_config())
        text = mgr.DEFAULT_CONFIG.read_text(encoding="utf-8")
        assert "─── Zuweisung ───" in text
        assert "gilt, wenn der Zeitplan nichts vorgibt" in text

    def test_first_run_check(self, tmp_path: Path):
        mgr = make_manager(tmp_path)
        assert mgr.first_run_check() is True
        mgr.save(default_engine_config())
        assert mgr.first_run_check() is False

    def test_load_nonexistent_raises(self, tmp_path: Path):
        mgr = make_manager(tmp_path)
        with pytest.raises(FileNotFoundError):
            mgr.load(tmp_path / "not_there.yaml")

    def test_load_invalid_raises_value_error(self, tmp_path: Path):
        path = tmp_path / "engine_config.yaml"
        path.write_text("allocation:\n  default_max_attendees: -3\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Konfigurationsdatei ungültig"):
            make_manager(tmp_path).load(path)

    def test_load_or_default(self, tmp_path: Path):
        mgr = make_manager(tmp_path)
        assert mgr.load_or_default() == default_engine_config()


# ─── DATENMODELLE ─────────────────────────────────────────────────────────────

class TestModels:
    def test_parse_group_and_part(self):
        assert parse_group_number("Sicherheit - Group 3 (Part 2)") == 3
        assert parse_part_number("Sicherheit - Group 3 (Part 2)") == 2
        assert parse_group_number("Ohne Gruppe") is None
        assert parse_part_number(None) is None

    def test_session_number_defaults_to_one(self):
        assert Session(course_id="A", session_number=None).session_number == 1

    def test_effective_group_number(self):
        assert Session(course_id="A").effective_group_number == 1
        assert Session(course_id="A", group_number=4).effective_group_number == 4

    def test_group_identifiers(self):
        assert location_group_identifier("North", "Ops", 2) == "North-Ops-Group2"
        assert course_group_identifier("A", 3) == "A-group-3"

    def test_group_number_from_identifier(self):
        assert group_number_from_identifier("North-Ops-Group2") == 2
        assert group_number_from_identifier("A-group-3") == 3
        assert group_number_from_identifier("Group 1 - group_12") == 12
        assert group_number_from_identifier(None) is None
        assert group_number_from_identifier("ohne") is None

    def test_assignment_key_and_group(self):
        a = Assignment(learner_id="u1", schedule_id="S1", course_id="A",
                       session_identifier="A-session1-x-y", group_identifier="A-group-2",
                       training_location="X", functional_area="Y")
        assert a.key == ("u1", "A-session1-x-y")
        assert a.group_number == 2
        assert a.assignment_status == "enrolled"

    def test_learner_id_coerced(self):
        assert Learner(id=17, name="Zahl").id == "17"

    def test_mapped_roles_and_requirements(self):
        mappings = [
            RoleCourseMapping(role="Operator", course_id="B"),
            RoleCourseMapping(role="Operator", course_id="A"),
            RoleCourseMapping(role="Lead", course_id="A"),
            RoleCourseMapping(role="Operator", course_id="Z"),
        ]
        assert mapped_roles(mappings) == ["Operator", "Lead"]
        assert required_courses_for_role(mappings, "Operator", ["A", "B", "C"]) == ["A", "B"]
        assert required_courses_for_role(mappings, None, ["A"]) == []
