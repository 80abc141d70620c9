from app.core.logging_config import QUIET_LOGGERS, WORKER_LOGGER, build_logging_config


def test_worker_level_defaults_to_application_level():
    config = build_logging_config("warning")

    assert config["root"]["level"] == "WARNING"
    assert config["loggers"]["app"]["level"] == "WARNING"
    assert config["loggers"][WORKER_LOGGER]["level"] == "WARNING"


def test_worker_level_can_be_raised_independently():
    config = build_logging_config("INFO", worker_level="debug")

    assert config["loggers"]["app"]["level"] == "INFO"
    assert config["loggers"][WORKER_LOGGER]["level"] == "DEBUG"


def test_chatty_libraries_are_held_at_warning():
    loggers = build_logging_config("DEBUG")["loggers"]

    for name in QUIET_LOGGERS:
        assert loggers[name]["level"] == "WARNING"


def test_format_includes_thread_name():
    formatter = build_logging_config()["formatters"]["standard"]

    assert "%(threadName)s" in formatter["format"]
    assert build_logging_config()["disable_existing_loggers"] is False
