import pytest

from uninav_core.domain.exceptions import ValidationError
from uninav_core.domain.models import StudentProfile
from uninav_core.infrastructure.storage.kv_store import MemoryKeyValueStore
from uninav_core.infrastructure.storage.preferences_store import LANGUAGE_KEY, PROFILE_KEY, PreferencesStore


def test_profile_roundtrip_and_clear():
    prefs = PreferencesStore(MemoryKeyValueStore())
    assert prefs.get_profile() is None
    prefs.save_profile(StudentProfile(z_score=1.5, district="Galle", district_id=7))
    assert prefs.get_profile() == StudentProfile(z_score=1.5, district="Galle", district_id=7)
    prefs.clear_profile()
    assert prefs.get_profile() is None


def test_corrupted_profile_is_ignored():
    prefs = PreferencesStore(MemoryKeyValueStore({PROFILE_KEY: "[1, 2"}))
    assert prefs.get_profile() is None


def test_language_default_and_validation():
    kv = MemoryKeyValueStore({LANGUAGE_KEY: "xx"})
    prefs = PreferencesStore(kv)
    assert prefs.get_language() == "en"
    prefs.set_language("ta")
    assert prefs.get_language() == "ta"
    with pytest.raises(ValidationError):
        prefs.set_language("de")
