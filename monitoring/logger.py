import logging
import sys
import os
import json
import datetime
import colorama
from colorama import Fore, Style

# Windows terminal renkleri için init
colorama.init(autoreset=True)

# LogRecord'un kendi alanlari; bunlarin disindakiler extra= ile gelmistir
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    JSON logging
    """
    def format(self, record):
        log_record = {
            "timestamp": datetime.datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.name,
            "file": record.filename,
            "line": record.lineno
        }
        # extra={"strategy": ..., "inference_time_ms": ...}
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                log_record[key] = value

        # Hata durumunda traceback ekle
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)


class ColoredFormatter(logging.Formatter):
    """
    renkli loglar
    """
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    FORMATS = {
        logging.DEBUG: Fore.CYAN + format_str + Style.RESET_ALL,
        logging.INFO: Fore.GREEN + format_str + Style.RESET_ALL,
        logging.WARNING: Fore.YELLOW + format_str + Style.RESET_ALL,
        logging.ERROR: Fore.RED + format_str + Style.RESET_ALL,
        logging.CRITICAL: Fore.RED + Style.BRIGHT + format_str + Style.RESET_ALL
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt, datefmt="%H:%M:%S")
        return formatter.format(record)


def get_logger(name="FaceAPI", log_type=None):
    """
    Logger oluşturur. Seviye LOG_LEVEL, format LOG_TYPE (json | colored) ile ayarlanir.
    """
    log_type = os.getenv("LOG_TYPE", log_type or "json")
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(level)

        if log_type == "json":
            ch.setFormatter(JSONFormatter())
        else:
            ch.setFormatter(ColoredFormatter())

        logger.addHandler(ch)
        logger.propagate = False

    return logger
