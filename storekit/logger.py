"""Loguru setup shared by every storekit module."""

import os
import sys

import typing as t
from loguru import logger
from pydantic import Field
from pydantic_settings import SettingsConfigDict

from .config import Settings, get_settings


class LoggerSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="STOREKIT_LOGGER_")

    config_name: t.ClassVar[str | None] = "logger"

    log_level: str = Field(default="INFO", description="Minimum level emitted")
    format: dict[str, str] = {
        "time": "<b><e>[</e> <w>{time:YYYY-MM-DD HH:mm:ss.SSS}</w> <e>]</e></b>",
        "level": " <level>{level:>8}</level>",
        "sep": " <b><w>in</w></b> ",
        "name": "<b>{extra[mod_name]:>20}</b>",
        "line": "<b><e>[</e><w>{line:^5}</w><e>]</e></b>",
        "message": "  <level>{message}</level>",
    }
    backtrace: bool = False
    diagnose: bool = False
    colorize: bool = True


def is_testing_mode() -> bool:
    return "pytest" in sys.modules or os.getenv("TESTING", "False").lower() == "true"


def _patch(record: t.Any) -> None:
    record["extra"].setdefault("mod_name", record["name"].split(".")[-1])


def configure_logging(
    settings: LoggerSettings | None = None,
    *,
    force: bool = False,
) -> int | None:
    """Replace loguru's handlers with the storekit console sink.

    In testing mode no sink is installed unless ``force`` is set.

    Returns:
        The handler id of the installed sink, or ``None`` when none was added.
    """
    settings = settings or get_settings(LoggerSettings)
    logger.remove()
    logger.configure(patcher=_patch)
    if is_testing_mode() and not force:
        return None
    return logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format="".join(settings.format.values()),
        backtrace=settings.backtrace,
        diagnose=settings.diagnose,
        colorize=settings.colorize,
    )


def get_logger(name: str) -> t.Any:
    return logger.bind(mod_name=name.rsplit(".", 1)[-1])
