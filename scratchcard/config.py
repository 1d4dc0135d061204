# scratchcard/config.py
import logging
import os

# Database (SQLite file in project root by default, "sqlite://" for in-memory)
DATABASE_URL = os.environ.get("SCRATCHCARD_DATABASE_URL", "sqlite:///./scratchcard.db")

LOG_LEVEL = os.environ.get("SCRATCHCARD_LOG_LEVEL", "INFO")

# Scratch surface
OCCLUSION_GRID_SIZE = int(os.environ.get("SCRATCHCARD_OCCLUSION_GRID", "20"))
SCRATCH_RADIUS = float(os.environ.get("SCRATCHCARD_SCRATCH_RADIUS", "15"))
REVEAL_THRESHOLD = float(os.environ.get("SCRATCHCARD_REVEAL_THRESHOLD", "50"))

# Game rules
DEFAULT_MATCHING_TILES = 3
TILE_MIN = 1
TILE_MAX = 9

# Hex encoded 32 byte seed for the issuer's Ed25519 key (generated when unset)
ISSUER_SEED = os.environ.get("SCRATCHCARD_ISSUER_SEED")

# Player client
API_BASE_URL = os.environ.get("SCRATCHCARD_API_URL", "http://localhost:8000")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None):
    """Install a single stream handler on the package logger."""
    logger = logging.getLogger("scratchcard")
    logger.setLevel((level or LOG_LEVEL).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
