from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_QUOTES = {"'", '"'}


def _read_dotenv(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        name, _, value = line.partition("=")
        name, value = name.strip(), value.strip()
        if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
            value = value[1:-1]
        if name:
            values[name] = value
    return values


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _number(name: str, default: float, floor: float) -> float:
    raw = (os.getenv(name) or "").strip()
    return max(floor, float(raw)) if raw else default


def _origins(raw: str) -> list[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    base_dir: Path
    allowed_origins: list[str]
    max_essay_chars: int
    round_timeout_seconds: float
    log_level: str
    log_json: bool
    openai_api_key: str | None
    openai_organization: str | None
    openai_project: str | None
    openai_model: str
    openai_timeout_seconds: float
    groq_api_key: str | None
    groq_model: str
    groq_base_url: str

    @classmethod
    def load(cls) -> "Settings":
        base_dir = Path(__file__).resolve().parents[1]
        # Values already in the environment win over the .env file.
        for name, value in _read_dotenv(base_dir / ".env").items():
            os.environ.setdefault(name, value)

        return cls(
            base_dir=base_dir,
            allowed_origins=_origins(
                os.getenv("FRICTION_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
            ),
            max_essay_chars=int(_number("FRICTION_MAX_ESSAY_CHARS", 200_000, floor=1)),
            round_timeout_seconds=_number("FRICTION_ROUND_TIMEOUT_SECONDS", 150.0, floor=1.0),
            log_level=(os.getenv("FRICTION_LOG_LEVEL") or "INFO").strip().upper() or "INFO",
            log_json=_flag("FRICTION_LOG_JSON", default=True),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_organization=os.getenv("OPENAI_ORGANIZATION") or None,
            openai_project=os.getenv("OPENAI_PROJECT") or None,
            openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
            openai_timeout_seconds=_number("OPENAI_TIMEOUT_SECONDS", 60.0, floor=1.0),
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            groq_model=os.getenv("GROQ_MODEL") or "llama-3.1-8b-instant",
            groq_base_url=os.getenv("GROQ_BASE_URL") or "https://api.groq.com/openai/v1",
        )


settings = Settings.load()
