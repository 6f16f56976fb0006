"""
joyrewards.api.__main__ — Entry point for ``python -m joyrewards.api``
=======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (port).
3. Serve the FastAPI app with uvicorn; schema and seed data are ensured by
   the app's lifespan hook.
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from joyrewards.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("joyrewards")


def main() -> None:
    """Bootstrap and run the JoyRewards API."""
    load_dotenv()
    cfg = load_config()
    logger.info("Starting JoyRewards API for %s on port %d", cfg.community_name, cfg.api_port)
    uvicorn.run("joyrewards.api.main:app", host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
