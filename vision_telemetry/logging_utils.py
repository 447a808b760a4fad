"""Per-sensor loggers.

Every record carries the sensor name in ``%(sensor)s`` so that output from
several sensors polled by one process stays separable in a shared console.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(sensor)s] %(message)s"


class SensorNameFilter(logging.Filter):
    def __init__(self, sensor_name: str):
        super().__init__()
        self.sensor_name = sensor_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.sensor = self.sensor_name
        return True


def _tagged(handler: logging.Handler, sensor_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(SensorNameFilter(sensor_name))
    return handler


def setup_logger(sensor_name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"vision_telemetry.{sensor_name}")
    logger.setLevel(level)

    if not logger.handlers:
        logger.addHandler(_tagged(logging.StreamHandler(), sensor_name))

    return logger


def add_file_handler(logger: logging.Logger, sensor_name: str, log_path: str) -> logging.Handler:
    """Mirror ``logger`` into ``log_path``; undo with :func:`remove_handler`."""
    handler = _tagged(logging.FileHandler(log_path), sensor_name)
    logger.addHandler(handler)
    return handler


def remove_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    handler.close()
