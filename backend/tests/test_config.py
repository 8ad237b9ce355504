"""
Tests de la configuration (pydantic-settings, variables d'environnement).
"""

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_valeurs_par_defaut(monkeypatch):
    for name in ("VIDEO_COMPLETION_THRESHOLD", "WATCH_SESSIONS_LIMIT", "ATTENDANCE_TIMEZONE",
                 "AUTO_RECONCILE_INTERVAL_MINUTES"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings(_env_file=None)

    assert settings.VIDEO_COMPLETION_THRESHOLD == 80.0
    assert settings.WATCH_SESSIONS_LIMIT == 50
    assert settings.ATTENDANCE_TIMEZONE == "UTC"
    assert settings.AUTO_RECONCILE_INTERVAL_MINUTES == 0


def test_lecture_environnement(monkeypatch):
    monkeypatch.setenv("VIDEO_COMPLETION_THRESHOLD", "70")
    monkeypatch.setenv("ATTENDANCE_TIMEZONE", "Asia/Jakarta")
    settings = Settings(_env_file=None)

    assert settings.VIDEO_COMPLETION_THRESHOLD == 70.0
    assert settings.ATTENDANCE_TIMEZONE == "Asia/Jakarta"


@pytest.mark.parametrize("threshold", [0, -10, 100.1])
def test_seuil_hors_bornes(threshold):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, VIDEO_COMPLETION_THRESHOLD=threshold)


def test_seuil_100_accepte():
    assert Settings(_env_file=None, VIDEO_COMPLETION_THRESHOLD=100).VIDEO_COMPLETION_THRESHOLD == 100.0


def test_limite_sessions_positive():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, WATCH_SESSIONS_LIMIT=0)


def test_fuseau_inconnu():
    with pytest.raises(ValidationError, match="Fuseau horaire inconnu"):
        Settings(_env_file=None, ATTENDANCE_TIMEZONE="Mars/Olympus_Mons")
