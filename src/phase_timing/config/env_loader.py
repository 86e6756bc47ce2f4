"""Environment detection and ``.env`` file loading.

Environment-specific ``.env`` files are loaded before the settings object is
built, so deployments can tune status codes, label fields and sinks without
touching code.
"""

import os
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from phase_timing.telemetry import get_logger

log = get_logger(__name__)


class Environment(str, Enum):
    """Deployment environments."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


_ENVIRONMENT_ALIASES = {
    "production": Environment.PRODUCTION,
    "prod": Environment.PRODUCTION,
    "staging": Environment.STAGING,
    "stage": Environment.STAGING,
    "test": Environment.TEST,
}


def get_environment() -> Environment:
    """Detect the environment from APP_ENV.

    "prod" and "stage" are accepted as aliases; anything unrecognised means
    development. Reads os.environ directly because it runs before settings
    exist.
    """
    return _ENVIRONMENT_ALIASES.get(os.getenv("APP_ENV", "").lower(), Environment.DEVELOPMENT)


def load_env_files(project_root: Path | None = None) -> list[str]:
    """Load .env files, most specific first.

    Priority (highest first): ``.env.{environment}.local``,
    ``.env.{environment}``, ``.env.local``, ``.env``. Variables already set in
    the process environment are never overridden.

    Args:
        project_root: Directory holding the .env files; defaults to the
            working directory.

    Returns:
        Loaded file names relative to project_root, highest priority first.
    """
    root = project_root if project_root is not None else Path.cwd()
    env_name = get_environment().value
    candidates = [f".env.{env_name}.local", f".env.{env_name}", ".env.local", ".env"]

    loaded = []
    for name in candidates:
        path = root / name
        if path.exists():
            # override=False: whichever source set a variable first keeps it
            load_dotenv(path, override=False)
            loaded.append(name)

    if loaded:
        log.info("env_files_loaded", environment=env_name, files=loaded, project_root=str(root))
    else:
        log.debug("no_env_files_found", environment=env_name, project_root=str(root))
    return loaded
