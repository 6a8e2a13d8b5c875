import json
import logging
import os


# Configuração de Logs (JSON Estruturado para Cloud Logging)
class JsonFormatter(logging.Formatter):
    def format(self, record):
        json_log = {
            "severity": record.levelname,
            "message": record.getMessage(),
            "timestamp": self.formatTime(record, self.datefmt),
            "logger": record.name,
            "module": record.module,
        }
        if hasattr(record, "props"):
            json_log.update(record.props)

        if record.exc_info:
            json_log["exception"] = self.formatException(record.exc_info)

        return json.dumps(json_log, default=str)


def configure_logging(level=None):
    """JSON handler on the root logger."""
    level = level or os.getenv("LOG_LEVEL", "INFO")
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
    return logging.getLogger("analysis-app")
