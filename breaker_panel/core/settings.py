# breaker_panel/core/settings.py
# Centralized configuration using Pydantic BaseSettings.
# Every env var has a default so the API, the CLI and the tests start without a .env file.
from __future__ import annotations
from pathlib import Path
from typing import List

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[2]  # project root: breaker_panel/core -> breaker_panel -> ROOT


def _load_env_files() -> None:
    """
    Load `.env` from the project root, falling back to `.env.txt`.
    Real environment variables always win (override=False).
    """
    env_candidates = [ROOT / ".env", ROOT / ".env.txt"]
    for p in env_candidates:
        if p.exists():
            load_dotenv(dotenv_path=p, override=False)
            break  # prefer the first one found (.env over .env.txt)


_load_env_files()


class Settings(BaseSettings):
    # ---- Storage ----
    DATABASE_URL: str = Field(
        default=f"sqlite:///{ROOT / 'breaker_panel.db'}",
        description="SQLAlchemy URL of the panel/breaker/circuit/room store",
    )
    DATABASE_ECHO: bool = Field(False, description="Log every SQL statement")

    # ---- Logging ----
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # ---- HTTP ----
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # App paths
    ROOT: Path = ROOT
    STATIC: Path = Field(default=ROOT / "static")
    OUT: Path = Field(default=ROOT / "out")

    # ---- Importer ----
    IMPORT_PANEL_NAME: str = Field("Panneau Principal", description="Panel created by the CSV importer")
    IMPORT_PANEL_SIZE: int = Field(42, ge=12, le=42)

    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",       # Ignore unknown env vars instead of erroring
    )


# Instantiate once and reuse
try:
    settings = Settings()
except ValidationError as e:
    raise RuntimeError(
        "Invalid breaker panel configuration. "
        "Check DATABASE_URL / LOG_LEVEL / IMPORT_PANEL_SIZE in the environment or .env."
    ) from e
