"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

DEFAULT_NAMESPACE = "clocket"


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path("data")
    namespace: str = DEFAULT_NAMESPACE
    env: str = "prod"
    allowed_origins: List[str] = field(default_factory=list)

    @property
    def is_development(self) -> bool:
        return self.env in {"dev", "development"}

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        origins = environ.get("CLOCKET_ALLOWED_ORIGINS", "")
        return cls(
            data_dir=Path(environ.get("CLOCKET_DATA_DIR") or "data"),
            namespace=(environ.get("CLOCKET_NAMESPACE") or DEFAULT_NAMESPACE).strip(),
            env=environ.get("CLOCKET_ENV", "prod").lower(),
            allowed_origins=[origin.strip() for origin in origins.split(",") if origin.strip()],
        )
