# image_optimizer/logging_config.py
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    # Root handler for the app and uvicorn loggers
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("image_optimizer").setLevel(level)
