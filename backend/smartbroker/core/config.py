# smartbroker/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from loguru import logger
from pathlib import Path
from typing import List, Literal, Optional, Tuple
import warnings

DEFAULT_SECRET_KEY = "!!!GENERATE_A_STRONG_SECRET_KEY_32_BYTES_HEX!!!"


def find_dotenv_path(filename: str = '.env', usecwd: bool = False) -> Optional[str]:
    """Procura o arquivo .env subindo a partir do pacote (ou do CWD)."""
    start_dir = Path.cwd() if usecwd else Path(__file__).resolve().parent
    current_dir = start_dir
    for _ in range(10):
        env_path = current_dir / filename
        if env_path.is_file():
            logger.debug(f"Found {filename} file at: {env_path}")
            return str(env_path)
        parent_dir = current_dir.parent
        if parent_dir == current_dir:
            break
        current_dir = parent_dir
    if not usecwd:
        env_path_cwd = Path.cwd() / filename
        if env_path_cwd.is_file():
            logger.debug(f"Found {filename} file at CWD: {env_path_cwd}")
            return str(env_path_cwd)
    return None


def dotenv_files() -> Optional[Tuple[str, ...]]:
    """Arquivos .env existentes, na ordem de precedência (.env.local sobrescreve .env)."""
    found = tuple(p for p in (find_dotenv_path('.env'), find_dotenv_path('.env.local')) if p)
    return found or None


class Settings(BaseSettings):
    PROJECT_NAME: str = "SmartBroker API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]

    # Database
    MONGODB_URI: str = "mongodb://localhost:27017/smartbroker"

    # Security
    SECRET_KEY: str = DEFAULT_SECRET_KEY  # For JWT
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    BOOTSTRAP_ADMIN_EMAILS: List[str] = Field(default_factory=list)

    # Rate limiting (slowapi)
    RATE_LIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT: str = "10/minute"
    DEFAULT_RATE_LIMIT: str = "300/minute"

    # AI Services
    AI_PROVIDER: Literal["openai", "google"] = "openai"
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash-exp"
    AI_REQUEST_TIMEOUT_SECONDS: float = 60.0

    # Agent orchestration
    AGENT_MAX_TURNS: int = Field(default=8, ge=1)
    AGENT_PROVIDER_CACHE_SIZE: int = Field(default=64, ge=1)
    AGENT_SESSION_LIST_LIMIT: int = 50

    # Evolution API / WhatsApp
    EVOLUTION_API_URL: str = "http://localhost:8080"
    EVOLUTION_API_KEY: Optional[str] = None
    WHATSAPP_DEFAULT_INSTANCE: str = "default"

    # Campaigns
    CAMPAIGN_DEFAULT_RATE_LIMIT_MS: int = 1000

    model_config = SettingsConfigDict(
        env_file=dotenv_files(),
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    @property
    def ai_enabled(self) -> bool:
        if self.AI_PROVIDER == "google":
            return bool(self.GEMINI_API_KEY)
        return bool(self.OPENAI_API_KEY)


@lru_cache()
def get_settings() -> Settings:
    """Carrega e valida as configurações da aplicação."""
    logger.info("Loading application settings...")
    env_files_found = dotenv_files()
    if env_files_found:
        logger.info(f"Loading environment variables from: {', '.join(env_files_found)}")
    else:
        logger.warning("No .env file found. Loading settings from system environment variables only.")

    try:
        settings_instance = Settings()
    except ValueError as val_err:
        logger.critical(f"CRITICAL ERROR in settings validation: {val_err}")
        raise SystemExit(f"Settings validation failed: {val_err}")

    if settings_instance.SECRET_KEY == DEFAULT_SECRET_KEY:
        logger.warning("SECURITY WARNING: Using default SECRET_KEY. Generate a strong key (e.g., `openssl rand -hex 32`) and set it in your environment!")
        warnings.warn("SECURITY WARNING: Using default SECRET_KEY. Please generate and set a strong secret key!")

    if not settings_instance.ai_enabled:
        logger.warning(
            f"No API key configured for AI provider '{settings_instance.AI_PROVIDER}'. "
            "Agents will answer in demo mode unless an agency supplies its own key."
        )
    if not settings_instance.EVOLUTION_API_KEY:
        logger.warning("EVOLUTION_API_KEY missing. WhatsApp sends will likely be rejected by the gateway.")

    logger.info("Settings loaded and validated successfully.")
    return settings_instance


# Instância global das configurações para fácil importação
settings = get_settings()
