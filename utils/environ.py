# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       ENVIRONMENT CONFIGURATION                            ║
# ║    Centralized access and type conversion for environment variables.       ║
# ║    Process-wide values (debug flag, log dir, credentials) live here;       ║
# ║    the validated bot settings are built in config/settings.py.             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import os
from pathlib import Path
from typing import Mapping, Optional

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ HELPER FUNCTIONS                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- get_bool_env ---
# Retrieves an environment variable and interprets it as a boolean.
# Considers '1', 'true', 'yes', 'on' (case-insensitive) as True.
# Args:
#     var_name: The name of the environment variable.
#     default: The default boolean value if the variable is not set or blank.
#     env: Mapping to read from (defaults to os.environ).
# Returns: The boolean value of the environment variable or the default.
def get_bool_env(var_name: str, default: bool = False, env: Optional[Mapping[str, str]] = None) -> bool:
    val = (os.environ if env is None else env).get(var_name)
    if val is None or not val.strip():
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")

# --- get_str_env ---
# Retrieves an environment variable as a stripped string.
# Args:
#     var_name: The name of the environment variable.
#     default: The default string value if the variable is unset or blank.
#     env: Mapping to read from (defaults to os.environ).
# Returns: The string value of the environment variable or the default.
def get_str_env(var_name: str, default: Optional[str] = "", env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    val = (os.environ if env is None else env).get(var_name)
    if val is None or not val.strip():
        return default
    return val.strip()

# --- get_default_service_account_path ---
# Determines the default path for the Google service account JSON file.
# Checks potential locations in order: Docker volume, project root, current directory.
# Returns: A string representing the determined file path.
def get_default_service_account_path() -> str:
    docker_path = "/app/service_account.json"
    if os.path.exists(docker_path):
        return docker_path
    project_root = Path(__file__).resolve().parent.parent
    local_path = project_root / "service_account.json"
    if local_path.exists():
        return str(local_path)
    return "./service_account.json"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ PROCESS-WIDE CONFIGURATION VARIABLES                                       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Debug mode flag (controls verbose logging)
DEBUG: bool = get_bool_env("DEBUG", False)

# Preferred log directory (often mounted in Docker)
LOG_DIR: str = get_str_env("LOG_DIR", "/data/logs")

