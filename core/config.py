"""
Configurazione per employee-contacts usando pydantic-settings.

Gestisce tutte le variabili d'ambiente del servizio (database, paginazione,
limiti upload, regole di validazione, logging).
"""
import logging
import re
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Carica .env
load_dotenv()

logger = logging.getLogger(__name__)


class ServiceConfig(BaseSettings):
    """Configurazione completa del servizio."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./employees.db",
        description="URL connessione SQLite (driver aiosqlite)"
    )
    db_busy_timeout_sec: float = Field(default=30.0, gt=0.0, description="Attesa massima su lock SQLite")

    # Server
    host: str = Field(default="0.0.0.0", description="Host server FastAPI")
    port: int = Field(default=8080, description="Porta server FastAPI")

    # Paginazione
    default_page_size: int = Field(default=10, ge=1, description="Dimensione pagina di default")
    max_page_size: int = Field(default=100, ge=1, description="Dimensione pagina massima")

    # Upload
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1, description="Dimensione massima payload (10MB)")

    # Validazione
    name_max_length: int = Field(default=100, ge=1, description="Lunghezza massima nome dipendente")
    phone_pattern: str = Field(
        default=r"^(01[016789])-?\d{3,4}-?\d{4}$",
        description="Regex numero di telefono (cellulare coreano)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Livello log root")

    # Service info
    service_name: str = Field(default="employee-contacts", description="Nome servizio")
    service_version: str = Field(default="1.0.0", description="Versione servizio")

    def validate_config(self) -> bool:
        """Valida configurazione critica."""
        errors = []

        if not self.database_url:
            errors.append("DATABASE_URL non configurato")
        elif not self.database_url.startswith("sqlite"):
            errors.append(f"DATABASE_URL deve usare SQLite, ricevuto: {self.database_url.split(':', 1)[0]}")

        try:
            re.compile(self.phone_pattern)
        except re.error as e:
            errors.append(f"PHONE_PATTERN non valido: {e}")

        if self.default_page_size > self.max_page_size:
            errors.append("DEFAULT_PAGE_SIZE non può superare MAX_PAGE_SIZE")

        if errors:
            error_msg = "❌ Configurazione servizio non valida:\n" + "\n".join(f"  - {error}" for error in errors)
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.info("✅ Configurazione servizio validata con successo")
        return True


# Istanza globale configurazione
_config: ServiceConfig | None = None


def get_config() -> ServiceConfig:
    """Ottiene istanza configurazione (singleton)."""
    global _config
    if _config is None:
        _config = ServiceConfig()
        _config.validate_config()
    return _config
