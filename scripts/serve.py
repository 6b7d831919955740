#!/usr/bin/env python3
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from ghrunner.config.load_config import ConfigError, load_config  # noqa: E402


def main() -> int:
    log_level = os.getenv("GH_RUNNER_LOG_LEVEL", "info").strip().lower() or "info"
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    try:
        cfg = load_config()
    except ConfigError as e:
        logging.getLogger("ghrunner").error("%s", e)
        return 1

    import uvicorn

    host = os.getenv("GH_RUNNER_HOST", "0.0.0.0")
    logging.getLogger("ghrunner").info("Starting GitHub webhook server on port %d", cfg.port)
    uvicorn.run(
        "ghrunner.api.app:app",
        host=host,
        port=cfg.port,
        log_level=log_level,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
