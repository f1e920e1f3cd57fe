import logging

import pytest

from capture.orchestrator import scrape_all
from capture.session import fixed_engine_factory
from extensions.logging import LoggingExtension

from fakes import FakeEngine, make_cfg


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


def test_console_handler_replaces_existing(restore_root_logging):
    root = logging.getLogger()
    root.addHandler(logging.NullHandler())
    LoggingExtension(None, global_level=logging.WARNING)
    stream_handlers = [h for h in root.handlers if type(h) is logging.StreamHandler]
    assert len(stream_handlers) == 1
    assert stream_handlers[0].level == logging.WARNING
    assert not any(isinstance(h, logging.NullHandler) for h in root.handlers)


@pytest.mark.asyncio
async def test_per_target_files_only_hold_their_own_records(restore_root_logging, tmp_path):
    cfg = make_cfg(tmp_path)
    log_ext = LoggingExtension(cfg.log_dir, global_level=logging.DEBUG)
    factory = fixed_engine_factory(
        lambda t: FakeEngine(fail_on="evaluate") if "b.test" in t else FakeEngine()
    )

    try:
        await scrape_all("https://a.test,https://b.test", cfg, session_factory=factory, log_ext=log_ext)
    finally:
        log_ext.close()

    a_log = (cfg.log_dir / "a.test.log").read_text(encoding="utf-8")
    b_log = (cfg.log_dir / "b.test.log").read_text(encoding="utf-8")

    assert "[a.test] Navigating..." in a_log
    assert "[b.test]" not in a_log
    assert "[b.test] Error: Failed to scrape (extracting_links)" in b_log
    assert "[a.test]" not in b_log


def test_target_context_routes_only_records_inside_it(restore_root_logging, tmp_path):
    log_ext = LoggingExtension(tmp_path / "logs", global_level=logging.DEBUG)
    log = logging.getLogger("capture.test")

    log.info("before")
    with log_ext.target_context("a.test"):
        log.info("inside a")
        with log_ext.target_context("b.test"):
            log.info("inside b")
        log.info("back in a")
    log.info("after")
    log_ext.close()

    a_log = (tmp_path / "logs" / "a.test.log").read_text(encoding="utf-8")
    b_log = (tmp_path / "logs" / "b.test.log").read_text(encoding="utf-8")
    assert "inside a" in a_log and "back in a" in a_log
    assert "inside b" not in a_log
    assert "before" not in a_log and "after" not in a_log
    assert "inside b" in b_log and "inside a" not in b_log


def test_close_detaches_target_files(restore_root_logging, tmp_path):
    log_ext = LoggingExtension(tmp_path / "logs")
    with log_ext.target_context("a.test"):
        pass
    assert any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
    log_ext.close()
    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)


def test_disabled_per_target_logs_create_no_files(restore_root_logging, tmp_path):
    log_ext = LoggingExtension(None)
    with log_ext.target_context("a.test"):
        logging.getLogger("capture.test").info("hello")
    assert not (tmp_path / "logs").exists()
    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
    log_ext.close()
