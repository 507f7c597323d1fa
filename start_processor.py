import uvicorn
import logging
from dotenv import load_dotenv

# Carica variabili ambiente
load_dotenv()

# Configurazione logging colorato PRIMA di qualsiasi altro import che usa logging
from core.config import get_config
from core.logger import setup_colored_logging

config = get_config()
setup_colored_logging(config.service_name, config.log_level)

logger = logging.getLogger(__name__)


def main():
    if ":memory:" in config.database_url:
        logger.warning("DATABASE_URL points to an in-memory database - data will not persist")
    else:
        logger.info("Database URL configured")

    logger.info(f"Starting {config.service_name} {config.service_version} on {config.host}:{config.port}")

    try:
        # Un solo worker: il record store SQLite vive nel processo
        uvicorn.run(
            "api.main:app",
            host=config.host,
            port=config.port,
            reload=False,
            log_level=config.log_level.lower(),
            access_log=True,
            use_colors=False  # Disabilita colori di uvicorn, usiamo colorlog
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise


if __name__ == "__main__":
    main()
