"""Entry point for cloudai-server: run the relay HTTP app."""

from __future__ import annotations

import logging

from cloudai.config import get_config
from cloudai.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    config = get_config()
    setup_logging(level=config.logging.level, use_json=config.logging.json_format)
    if not config.provider.api_key:
        logger.warning("OPENAI_API_KEY / LLM_API_KEY not set; stream requests will be refused")

    from cloudai.api.app import app

    logger.info("relay listening", extra={"host": config.server.host, "port": config.server.port})
    app.run(host=config.server.host, port=config.server.port, threaded=True)


if __name__ == "__main__":
    main()
