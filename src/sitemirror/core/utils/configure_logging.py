import logging
import sys
from tqdm import tqdm

# Third party loggers that flood the output at INFO level during asset downloads.
DEFAULT_SILENCED_LOGGERS = {
    "urllib3": "WARNING",
    "sklearn": "WARNING",
}


class LogWithTqdm(logging.Handler):
    """
    A logging handler that routes records through `tqdm.write()` so log lines
    do not break the asset download progress bars.
    """
    def emit(self, record):
        try:
            msg = self.format(record)
            tqdm.write(msg, file=sys.stderr)
            self.flush()
        except Exception:
            self.handleError(record)


def _to_level(level, fallback):
    if isinstance(level, str):
        return getattr(logging, level.upper(), fallback)
    return level if level is not None else fallback


def configure_logger(general_level='INFO', module_specific_levels=None, silenced_loggers=None):
    """
    Configures the root logger with a tqdm-friendly handler and applies
    per-module levels.
    """
    handler = LogWithTqdm()
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - [%(name)s:%(lineno)d] - %(message)s"
    ))

    root_logger = logging.getLogger()
    root_logger.setLevel(_to_level(general_level, logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if module_specific_levels:
        for name, level in module_specific_levels.items():
            logging.getLogger(name).setLevel(_to_level(level, logging.INFO))

    silenced = dict(DEFAULT_SILENCED_LOGGERS)
    if silenced_loggers:
        silenced.update(silenced_loggers)
    for name, level in silenced.items():
        logging.getLogger(name).setLevel(_to_level(level, logging.CRITICAL))
