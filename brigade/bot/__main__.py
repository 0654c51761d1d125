"""
brigade.bot.__main__ — Entry point for ``python -m brigade.bot``
================================================================

Reads secrets from ``.env`` and tuning from ``config.yaml`` (or the file
named by ``BRIGADE_CONFIG``), makes sure the roster tables exist, then hands
everything to :class:`~brigade.bot.core.BrigadeBot` and blocks on its event
loop.  ``BRIGADE_LOG_LEVEL`` overrides the default INFO level.

Run with::

    python -m brigade.bot        # or the ``brigade-bot`` console script
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from brigade.bot.core import BrigadeBot
from brigade.config import load_config
from brigade.database.engine import check_connection, create_db_engine, init_db

logger = logging.getLogger("brigade")

_TOKEN_PLACEHOLDER = "your-discord-bot-token-here"


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("BRIGADE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    # gateway chatter drowns out roster events at INFO
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)


def main() -> None:
    """Bootstrap and run the Brigade bot."""
    load_dotenv()
    _configure_logging()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == _TOKEN_PLACEHOLDER:
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    config_path = os.getenv("BRIGADE_CONFIG", "config.yaml")
    try:
        cfg = load_config(config_path)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logger.critical("Cannot load %s: %s", config_path, exc)
        sys.exit(1)
    logger.info(
        "Config loaded for %s: %d mapped roles, approval above %d points",
        cfg.community_name, len(cfg.role_tiers), cfg.approval_threshold,
    )

    engine = create_db_engine()
    check_connection(engine)
    init_db(engine)

    bot = BrigadeBot(cfg=cfg, engine=engine)
    logger.info("Starting Brigade bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down…")


if __name__ == "__main__":
    main()
