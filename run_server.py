#!/usr/bin/env python
"""
EmotionWave API Server Runner.

Usage:
    python run_server.py

Or with PM2:
    pm2 start run_server.py --interpreter python
"""

import sys
import logging
import uvicorn

from emotionwave.config import ServerConfig

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


def main():
    """Run the EmotionWave API server."""
    config = ServerConfig.from_env()
    logging.getLogger().setLevel(config.log_level.upper())

    logger.info(f"Starting EmotionWave API on {config.host}:{config.port}")

    try:
        uvicorn.run(
            "emotionwave.api:app",
            host=config.host,
            port=config.port,
            reload=config.reload,
            log_level=config.log_level,
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
