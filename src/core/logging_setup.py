import logging
import sys
import os
from logging.handlers import TimedRotatingFileHandler
from pythonjsonlogger import jsonlogger

CONSOLE_HANDLER_NAME = 'gorillabot.console'
FILE_HANDLER_NAME = 'gorillabot.file'

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ('discord', 'discord.http', 'discord.gateway', 'aiosqlite')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"{name}={raw!r} is not an integer, using {default}", file=sys.stderr)
        return default


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(CONSOLE_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    return handler


def _json_file_handler(log_dir: str) -> logging.Handler:
    """Midnight-rotated file, one JSON object per record. `extra=` keys become top-level fields."""
    os.makedirs(log_dir, exist_ok=True)
    handler = TimedRotatingFileHandler(
        os.path.join(log_dir, 'bot.log'),
        when='midnight',
        interval=_env_int('LOG_ROTATION_INTERVAL_DAYS', 1),
        backupCount=_env_int('LOG_BACKUP_COUNT', 7),
        encoding='utf-8',
    )
    handler.set_name(FILE_HANDLER_NAME)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={'asctime': 'timestamp', 'levelname': 'level', 'name': 'logger'},
        json_ensure_ascii=False
    ))
    return handler


def setup_logging():
    """
    Attach the bot's console and JSON file handlers to the root logger.

    Handlers added by someone else (a test runner, an embedding app) are left
    alone; only our own named handlers decide whether this already ran.
    """
    root_logger = logging.getLogger()
    if any(h.get_name() in (CONSOLE_HANDLER_NAME, FILE_HANDLER_NAME) for h in root_logger.handlers):
        return

    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    log_dir = os.getenv('LOG_DIR', 'logs')

    # Handlers filter; the root lets everything through to them
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(_console_handler(level))
    root_logger.addHandler(_json_file_handler(log_dir))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging ready: console at {logging.getLevelName(level)}, JSON file in {log_dir}/")
