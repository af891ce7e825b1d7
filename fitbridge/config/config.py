"""
Centralised config for fitbridge.

OAuth client credentials and the local redirect listener settings are loaded
from environment variables (or an optional ``.env`` file) and exposed through
a singleton ``settings`` object.
"""

from pathlib import Path
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_FILE = Path(__file__).resolve()


def _discover_env_file(config_file: Path) -> Path:
    """Return the nearest ``.env`` above the package, or the cwd default.

    A missing ``.env`` is normal: credentials may come straight from the
    environment.
    """

    for parent in config_file.parents:
        env_file = parent / ".env"
        if env_file.exists():
            return env_file
    return Path.cwd() / ".env"


ENV_FILE_PATH = _discover_env_file(CONFIG_FILE)


class Settings(BaseSettings):
    """
    Centralised and validated application settings.
    """
    model_config = SettingsConfigDict(
        env_file=ENV_FILE_PATH, env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- API CREDENTIALS (from environment) ---
    FITBIT_CLIENT_ID: str = ""
    FITBIT_CLIENT_SECRET: SecretStr = SecretStr("")
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: SecretStr = SecretStr("")

    # --- CREDENTIAL STORE ---
    CREDENTIALS_FILE: Path = Path("credentials.json")

    # --- LOCAL REDIRECT LISTENER ---
    OAUTH_CALLBACK_HOST: str = "localhost"
    OAUTH_CALLBACK_PORT: int = 8080
    OAUTH_REDIRECT_URI: Optional[str] = None
    OAUTH_CALLBACK_TIMEOUT_SECONDS: float = 300.0
    OAUTH_SHUTDOWN_GRACE_SECONDS: float = 1.0

    # --- HTTP ---
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # --- LOGGING ---
    FITBRIDGE_LOG_LEVEL: str = "INFO"
    FITBRIDGE_LOG_TO_CONSOLE: bool = True
    FITBRIDGE_LOG_DIR: Optional[Path] = None

    @property
    def redirect_uri(self) -> str:
        """Redirect URL registered with the providers."""
        if self.OAUTH_REDIRECT_URI:
            return self.OAUTH_REDIRECT_URI
        return f"http://{self.OAUTH_CALLBACK_HOST}:{self.OAUTH_CALLBACK_PORT}/callback"

    @property
    def log_path(self) -> Path:
        """
        Path for the main application log file.

        Falls back to ``~/.fitbridge/logs`` when no directory is configured.
        """
        log_dir = self.FITBRIDGE_LOG_DIR or Path.home() / ".fitbridge" / "logs"
        return Path(log_dir) / "fitbridge.log"


# Create a single, importable instance of the settings for the entire application.
settings = Settings()

