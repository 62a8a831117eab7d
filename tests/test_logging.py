"""
Tests for logging setup.
"""

import logging

from rich.logging import RichHandler

from modtree.utils.logging import PlainFormatter, get_logger, setup_logging, setup_logging_from_config


class TestSetupLogging:
    """Handlers attached to the modtree logger."""

    def test_rich_console_handler(self):
        """Test the default console handler is a RichHandler."""
        logger = setup_logging(level="DEBUG")
        assert logger.name == "modtree"
        assert logger.level == logging.DEBUG
        assert any(isinstance(h, RichHandler) for h in logger.handlers)

    def test_plain_console_handler(self):
        """Test the plain handler uses PlainFormatter."""
        logger = setup_logging(use_rich=False)
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, PlainFormatter)

    def test_no_duplicate_handlers(self):
        """Test repeated setup replaces handlers."""
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_console_disabled(self):
        """Test only a NullHandler remains when nothing is enabled."""
        handlers = setup_logging(console_enabled=False).handlers
        assert [type(h) for h in handlers] == [logging.NullHandler]

    def test_file_handler(self, tmp_path):
        """Test child logger records reach the log file."""
        log_file = tmp_path / "logs" / "modtree.log"
        logger = setup_logging(log_file=log_file, console_enabled=False)
        get_logger("modtree.test").info("hello file")
        for handler in logger.handlers:
            handler.flush()
        assert "hello file" in log_file.read_text()
        assert "modtree.test" in log_file.read_text()

    def test_unknown_level_defaults_to_info(self):
        """Test an unknown level name falls back to INFO."""
        assert setup_logging(level="verbose").level == logging.INFO

    def test_from_config(self, tmp_path):
        """Test the ``logging`` config section, with the file relative to the project."""
        logger = setup_logging_from_config(
            {"logging": {"level": "warning", "file": "out.log", "console_type": "plain"}}, project_dir=tmp_path
        )
        assert logger.level == logging.WARNING
        assert (tmp_path / "out.log").exists()

    def test_child_logger_propagates(self):
        """Test child loggers propagate to the modtree logger."""
        assert get_logger("modtree.scheduler").propagate is True
