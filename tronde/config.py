"""
Runtime settings, logging setup and API key storage
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_FILE = Path(os.getenv("TRONDE_SETTINGS_FILE", str(BASE_DIR / "ai_settings.json")))

API_KEY_PROVIDERS = ("gemini", "openai")


def _load_saved_settings(path: Path = SETTINGS_FILE) -> dict:
    if path.exists():
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings_to_file(data: dict, path: Path = SETTINGS_FILE) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


_saved = _load_saved_settings()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./question_bank.db")
GEMINI_MODEL = _saved.get("gemini_model") or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
LOG_LEVEL = os.getenv("TRONDE_LOG_LEVEL", "INFO")

DEFAULT_EXAM_TITLE = "ĐỀ THI TRẮC NGHIỆM TOÁN"
MAX_EXAM_COUNT = int(os.getenv("TRONDE_MAX_EXAM_COUNT", "20"))

PDF_FONT_CANDIDATES = [
    "/System/Library/Fonts/Supplemental/Times New Roman.ttf",
    "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    "/Library/Fonts/Arial Unicode.ttf",
    "/Library/Fonts/Times New Roman.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
]


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def mask_key(api_key: str) -> str:
    return api_key[:4] + "****" if len(api_key) > 4 else ""


class ApiKeyStore:
    """Per-provider API keys kept in the JSON settings file"""

    def __init__(self, path: Path = SETTINGS_FILE):
        self.path = Path(path)

    @staticmethod
    def _field(provider: str) -> str:
        if provider not in API_KEY_PROVIDERS:
            raise ValueError(f"Nhà cung cấp không hỗ trợ: {provider}")
        return f"{provider}_key"

    def get(self, provider: str) -> Optional[str]:
        value = _load_saved_settings(self.path).get(self._field(provider))
        return value or None

    def has(self, provider: str) -> bool:
        return self.get(provider) is not None

    def set(self, provider: str, api_key: str) -> None:
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key không được để trống")
        data = _load_saved_settings(self.path)
        data[self._field(provider)] = api_key
        _save_settings_to_file(data, self.path)

    def remove(self, provider: str) -> None:
        data = _load_saved_settings(self.path)
        if data.pop(self._field(provider), None) is not None:
            _save_settings_to_file(data, self.path)

    def masked(self, provider: str) -> str:
        return mask_key(self.get(provider) or "")
