import logging

LOGGER_NAME = "judge"


def logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)
