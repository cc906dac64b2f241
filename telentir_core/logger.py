import logging, json, sys, time, os


class JsonFormatter(logging.Formatter):
    """One JSON object per line; message and traceback are escaped properly."""

    converter = time.gmtime  # UTC timestamps

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _resolve_level(level):
    if level is not None:
        return level
    name = os.getenv("TELENTIR_LOG_LEVEL", "INFO").upper()
    return logging.getLevelName(name) if isinstance(logging.getLevelName(name), int) else logging.INFO


def get_logger(name="Telentir", level=None, to_file=None):
    """Structured logger shared by every Telentir component.

    Handlers are attached once per logger name, so repeated calls from
    module scope are cheap. ``TELENTIR_LOG_LEVEL`` sets the default level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not logger.handlers:
        formatter = JsonFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        to_file = to_file or os.getenv("TELENTIR_LOG_FILE")
        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
