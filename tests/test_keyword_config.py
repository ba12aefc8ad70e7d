# tests/test_keyword_config.py
# YAML-backed keyword vocabularies and user directory with hot reload.

import pytest

from incident_desk.classification.application import ClassificationService
from incident_desk.classification.infrastructure import KeywordConfigManager, UserDirectoryManager
from incident_desk.classification.infrastructure.external import WatchedYAMLManager
from incident_desk.core import ConfigurationException

KEYWORDS_YAML = """
teams:
  IT:
    words: [internet, wifi]
    phrases: [no hay senal]
  man:
    words: [fuga]
confirmation:
  words: [listo, terminado]
"""

USERS_YAML = """
users:
  "5216620000002@c.us":
    display_name: Laura
    title: Gerente
    role: admin
  "5216620000003@c.us":
    display_name: Carlos
    title: Técnico
    team: IT
"""


def test_load_keywords(tmp_path):
    path = tmp_path / "keywords.yaml"
    path.write_text(KEYWORDS_YAML, encoding="utf-8")

    snapshot = KeywordConfigManager().load(path)

    assert set(snapshot.teams) == {"it", "man"}
    assert snapshot.teams["it"].phrases == ("no hay senal",)
    assert snapshot.confirmation.words == ("listo", "terminado")
    # Sections left out keep their built-in vocabularies
    assert "cancelar" in snapshot.cancellation.words
    assert "sistemas" in snapshot.references["it"]


def test_missing_file_uses_defaults(tmp_path):
    snapshot = KeywordConfigManager().load(tmp_path / "missing.yaml")
    assert snapshot.teams == {}
    assert "listo" in snapshot.confirmation.words


def test_malformed_file_fails_initial_load(tmp_path):
    path = tmp_path / "keywords.yaml"
    path.write_text("teams: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationException):
        KeywordConfigManager().load(path)


def test_reload_swaps_snapshot(tmp_path):
    path = tmp_path / "keywords.yaml"
    path.write_text(KEYWORDS_YAML, encoding="utf-8")
    manager = KeywordConfigManager()
    manager.load(path)

    path.write_text("teams:\n  seg:\n    words: [robo]\n", encoding="utf-8")

    assert manager.reload() is True
    assert set(manager.get_snapshot().teams) == {"seg"}


def test_bad_reload_keeps_previous_snapshot(tmp_path):
    path = tmp_path / "keywords.yaml"
    path.write_text(KEYWORDS_YAML, encoding="utf-8")
    manager = KeywordConfigManager()
    before = manager.load(path)

    path.write_text("teams: {it: {words: [", encoding="utf-8")

    assert manager.reload() is False
    assert manager.get_snapshot() is before


def test_non_mapping_document_rejected(tmp_path):
    path = tmp_path / "keywords.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationException):
        KeywordConfigManager().load(path)


def test_user_directory_formats(tmp_path):
    nested = tmp_path / "users.yaml"
    nested.write_text(USERS_YAML, encoding="utf-8")
    directory = UserDirectoryManager().load(nested)

    assert directory.is_admin("5216620000002@c.us")
    assert directory.team_of("5216620000003@c.us") == "it"
    assert directory.display_with_title("5216620000003@c.us") == "Carlos(Técnico)"
    assert directory.display_name("unknown@c.us") == "unknown@c.us"

    flat = tmp_path / "flat.yaml"
    flat.write_text('"1@c.us": {display_name: Rosa, team: seg}\n', encoding="utf-8")
    assert UserDirectoryManager().load(flat).team_of("1@c.us") == "seg"


def test_classification_follows_reloaded_files(tmp_path):
    keywords_path = tmp_path / "keywords.yaml"
    keywords_path.write_text(KEYWORDS_YAML, encoding="utf-8")
    users_path = tmp_path / "users.yaml"
    users_path.write_text(USERS_YAML, encoding="utf-8")

    keywords = KeywordConfigManager()
    keywords.load(keywords_path)
    users = UserDirectoryManager()
    users.load(users_path)
    service = ClassificationService(keywords, users)

    assert service.classify("hay una fuga").teams == ("man",)
    assert service.classify("revisen", ["5216620000003@c.us"]).teams == ("it",)

    keywords_path.write_text("teams:\n  ama:\n    words: [fuga]\n", encoding="utf-8")
    keywords.reload()

    assert service.classify("hay una fuga").teams == ("ama",)


def test_manager_base_requires_snapshot_hooks():
    with pytest.raises(TypeError):
        WatchedYAMLManager()

    class PartialManager(WatchedYAMLManager):
        def _default(self):
            return {}

    with pytest.raises(TypeError):
        PartialManager()
