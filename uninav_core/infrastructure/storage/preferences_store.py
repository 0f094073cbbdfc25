"""学生档案与界面语言的本地存储。"""

import json
from dataclasses import asdict
from typing import Optional

from uninav_core.config.settings import settings
from uninav_core.domain.conversation import KeyValueStore
from uninav_core.domain.exceptions import StorageError, ValidationError
from uninav_core.domain.models import LANGUAGES, Language, StudentProfile
from uninav_core.infrastructure.logging.logger import logger


PROFILE_KEY = "uninavigator_profile"
LANGUAGE_KEY = "uninavigator_language"


class PreferencesStore:
    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    def get_profile(self) -> Optional[StudentProfile]:
        """读取学生档案；不存在或数据损坏时返回 None。"""

        try:
            raw = self._kv.get(PROFILE_KEY)
            if raw is None:
                return None
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise StorageError(code="STORE_CORRUPTED", message="profile is not an object")
            return StudentProfile(
                z_score=_as_float(data.get("z_score")),
                district=data.get("district") if isinstance(data.get("district"), str) else None,
                district_id=data.get("district_id") if isinstance(data.get("district_id"), int) else None,
                stream=data.get("stream") if isinstance(data.get("stream"), str) else None,
            )
        except (StorageError, json.JSONDecodeError) as e:
            logger.warning("Profile unreadable, ignoring", extra={"extra": {"error": str(e)}})
            return None

    def save_profile(self, profile: StudentProfile) -> None:
        payload = {k: v for k, v in asdict(profile).items() if v is not None}
        self._kv.set(PROFILE_KEY, json.dumps(payload, ensure_ascii=False))

    def clear_profile(self) -> None:
        self._kv.remove(PROFILE_KEY)

    def get_language(self) -> Language:
        try:
            value = self._kv.get(LANGUAGE_KEY)
        except StorageError as e:
            logger.warning("Language preference unreadable", extra={"extra": {"error": e.message}})
            value = None
        if value in LANGUAGES:
            return value  # type: ignore[return-value]
        return settings.default_language

    def set_language(self, language: Language) -> None:
        if language not in LANGUAGES:
            raise ValidationError(code="UNSUPPORTED_LANGUAGE", message=f"unsupported language: {language!r}")
        self._kv.set(LANGUAGE_KEY, language)


def _as_float(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None
