"""Process entrypoint: validate configuration, prepare storage, serve HTTP."""

from __future__ import annotations

import sys

from core.env_utils import load_dotenv_if_available
from core.logging import get_logger, setup_logging

logger = get_logger("server")


def main() -> None:
    load_dotenv_if_available()
    setup_logging()

    try:
        from core.config import load_server_config

        config = load_server_config()

        import models  # noqa: F401
        from database import Base, engine
        from web.main import create_app

        app = create_app(config)
    except (RuntimeError, ValueError) as exc:
        # Missing keys, missing DATABASE_URL or an undecodable private key.
        logger.error("Error on startup: %s", exc)
        sys.exit(1)

    import uvicorn

    logger.info("Preparing database schema...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready.")

    if config.enable_cluster_bootstrap:
        logger.info("Cluster bootstrap enabled; handled by the deployment orchestrator.")

    logger.info("Node listening on port %d", config.port)
    uvicorn.run(app, host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
