import logging
import colorlog
from callbridge.config.environment import config

LOG_FORMAT = '%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def resolve_level(level=None) -> int:
    """Accepts a logging constant or a name like "debug"; falls back to logging.level, then INFO."""
    if level is None:
        level = config.get("logging.level", logging.INFO)
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level=None):
    """Colored root logger for the bridge process."""
    handler = colorlog.StreamHandler()
    handler.setFormatter(colorlog.ColoredFormatter(LOG_FORMAT, datefmt='%H:%M:%S', log_colors=LOG_COLORS))

    logger = colorlog.getLogger()
    # uvicorn reload imports main twice
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))

    for name in config.get("logging.quiet", []):
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
