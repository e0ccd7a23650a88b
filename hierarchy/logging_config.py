"""
Logging configuration for the hierarchy engine.

Engine modules only create module loggers (`logging.getLogger(__name__)`)
and never configure handlers themselves. Applications call
`setup_logging()` once, early, to route those records:

    ```python
    from hierarchy.logging_config import setup_logging
    setup_logging(logging.DEBUG, log_dir="logs")
    ```
"""

import logging
import logging.config
from pathlib import Path
from typing import Optional, Union


def setup_logging(default_level: int = logging.INFO,
                  log_dir: Optional[Union[str, Path]] = None) -> None:
    """
    Setup logging configuration for the engine.

    Parameters
    ----------
    default_level : int, optional
        Level of the root and `hierarchy` loggers. Default is logging.INFO.
    log_dir : str or Path, optional
        When given, also write a rotating `hierarchy.log` (everything at
        DEBUG) and `error.log` (ERROR only) into this directory.
    """
    handlers = ['console']
    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
            'detailed': {
                'format': '%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': default_level,
                'formatter': 'standard',
                'stream': 'ext://sys.stderr',
            },
        },
        'loggers': {
            '': {
                'handlers': handlers,
                'level': default_level,
            },
            'hierarchy': {
                'level': default_level,
                'propagate': True
            },
        }
    }

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': 'DEBUG',
            'formatter': 'detailed',
            'filename': str(log_path / 'hierarchy.log'),
            'maxBytes': 10485760,  # 10 MB
            'backupCount': 5,
            'encoding': 'utf8'
        }
        config['handlers']['error_file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': 'ERROR',
            'formatter': 'detailed',
            'filename': str(log_path / 'error.log'),
            'maxBytes': 10485760,
            'backupCount': 5,
            'encoding': 'utf8'
        }
        handlers.extend(['file', 'error_file'])

    logging.config.dictConfig(config)

    logger = logging.getLogger(__name__)
    logger.debug("Logging configuration applied")
