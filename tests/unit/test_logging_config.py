"""Unit tests for logging configuration."""

import logging
import logging.config

import pytest

from jpg2png.logging_config import (
    LOGGER_NAMESPACE,
    PlatformIndependentFormatter,
    get_logger,
    log_operation_complete,
    log_operation_error,
    log_operation_start,
    set_log_level,
    setup_logging,
    uvicorn_log_config,
)


def _record(msg: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


@pytest.fixture
def package_logger():
    """Configure the package logger and reset it afterwards."""
    yield setup_logging()
    logger = logging.getLogger(LOGGER_NAMESPACE)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


class TestPlatformIndependentFormatter:
    """Test the platform-independent formatter."""

    @pytest.mark.parametrize("msg", ["Line 1\r\nLine 2\r\nLine 3", "Line 1\rLine 2\rLine 3"])
    def test_normalizes_line_endings(self, msg):
        formatted = PlatformIndependentFormatter("%(message)s").format(_record(msg))
        assert "\r" not in formatted
        assert "Line 1\nLine 2\nLine 3" in formatted

    def test_preserves_lf(self):
        formatted = PlatformIndependentFormatter("%(message)s").format(_record("a\nb"))
        assert formatted == "a\nb"


class TestSetupLogging:
    """Test the setup_logging function."""

    def teardown_method(self):
        logger = logging.getLogger(LOGGER_NAMESPACE)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    def test_default_configuration(self):
        logger = setup_logging()

        assert logger.name == "jpg2png"
        assert logger.level == logging.INFO
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, PlatformIndependentFormatter)

    def test_verbose_mode(self):
        logger = setup_logging(level=logging.WARNING, verbose=True)

        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG
        assert "%(lineno)d" in logger.handlers[0].formatter._fmt

    def test_standard_format_is_concise(self):
        logger = setup_logging()
        assert "%(filename)s" not in logger.handlers[0].formatter._fmt

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_file_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "jpg2png.log"
        logger = setup_logging(log_file=log_file)

        assert len(logger.handlers) == 2
        logger.info("Test message")
        for handler in logger.handlers:
            handler.flush()

        assert "Test message" in log_file.read_text(encoding="utf-8")

    def test_file_logging_failure_does_not_crash(self, tmp_path):
        blocker = tmp_path / "not_a_directory"
        blocker.write_text("x")
        logger = setup_logging(log_file=blocker / "test.log")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)


class TestGetLogger:
    """Test the get_logger function."""

    def test_adds_namespace(self):
        assert get_logger("pipeline").name == "jpg2png.pipeline"

    def test_preserves_existing_namespace(self):
        assert get_logger("jpg2png.api").name == "jpg2png.api"


class TestSetLogLevel:
    """Test the set_log_level function."""

    def test_set_level_with_int(self, package_logger):
        set_log_level(logging.WARNING)

        assert package_logger.level == logging.WARNING
        assert all(h.level == logging.WARNING for h in package_logger.handlers)

    def test_set_level_case_insensitive(self, package_logger):
        set_log_level("debug")
        assert package_logger.level == logging.DEBUG

    def test_invalid_string_level_raises_error(self, package_logger):
        with pytest.raises(ValueError, match="Invalid log level"):
            set_log_level("LOUD")


class TestOperationLogging:
    """Test the operation logging helpers."""

    def test_log_operation_start(self, package_logger, caplog):
        caplog.set_level(logging.INFO)
        log_operation_start(package_logger, "reduce-noise", size=1024)

        assert "Starting reduce-noise: size=1024" in caplog.text

    def test_log_operation_complete_success(self, package_logger, caplog):
        caplog.set_level(logging.INFO)
        log_operation_complete(package_logger, "pipeline", success=True, duration=1.5, size=10)

        assert "Pipeline completed successfully in 1.50s: size=10" in caplog.text

    def test_log_operation_complete_failure(self, package_logger, caplog):
        caplog.set_level(logging.INFO)
        log_operation_complete(package_logger, "encode", success=False)

        assert caplog.records[-1].levelno == logging.ERROR
        assert "Encode failed" in caplog.text

    def test_log_operation_error(self, package_logger, caplog):
        caplog.set_level(logging.ERROR)
        log_operation_error(package_logger, "optimize-size", ValueError("bad bound"), size=5)

        assert "Error during optimize-size: ValueError: bad bound - size=5" in caplog.text

    def test_log_operation_error_includes_stack_trace_in_debug(self, caplog):
        logger = setup_logging(verbose=True)
        caplog.set_level(logging.DEBUG)
        log_operation_error(logger, "improve-quality", ValueError("x"))

        assert "Stack trace for improve-quality error" in caplog.text
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)


class TestUvicornLogConfig:
    """Test the server logging configuration."""

    def test_covers_server_loggers(self):
        config = uvicorn_log_config()

        assert set(config["loggers"]) == {"uvicorn", "uvicorn.error", "uvicorn.access"}
        assert all(entry["level"] == "INFO" for entry in config["loggers"].values())
        assert config["formatters"]["default"]["()"] is PlatformIndependentFormatter

    def test_verbose_uses_detailed_format(self):
        config = uvicorn_log_config(verbose=True)

        assert "%(lineno)d" in config["formatters"]["default"]["fmt"]
        assert config["loggers"]["uvicorn"]["level"] == "DEBUG"

    def test_accepted_by_dict_config(self):
        logging.config.dictConfig(uvicorn_log_config())

        handler = logging.getLogger("uvicorn.access").handlers[0]
        assert isinstance(handler.formatter, PlatformIndependentFormatter)
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
            logging.getLogger(name).handlers.clear()
