import os
import stat
from datetime import datetime

import pytest

import capture.utils as utils_mod
from capture.pipeline import PipelineState, ScrapeResult
from capture.utils import DeadlineExceeded, PersistenceFailure, atomic_write_text
from capture.writer import format_links, persist
from extensions.output_paths import artifact_path

from fakes import PAGE_HTML, PNG_BYTES, make_cfg


def _result(**kw):
    base = dict(
        target="https://a.test/start",
        host_key="a.test",
        html=PAGE_HTML,
        screenshot=PNG_BYTES,
        links=["https://a.test/1", "https://a.test/2"],
        state=PipelineState.DONE,
    )
    base.update(kw)
    return ScrapeResult(**base)


def _failed(**kw):
    err = DeadlineExceeded("deadline of 45s exceeded during capturing_screenshot", host="a.test")
    return _result(
        screenshot=b"",
        links=[],
        state=PipelineState.FAILED,
        failed_step=PipelineState.CAPTURING_SCREENSHOT,
        error=err,
        **kw,
    )


def test_writes_all_three_artifacts(tmp_path):
    cfg = make_cfg(tmp_path)
    report = persist("a.test", "https://a.test/start", _result(), cfg)

    assert report.ok
    assert set(report.written) == {"html", "screenshot", "urls"}
    assert (tmp_path / "html" / "a.test_site_data.html").read_text(encoding="utf-8") == PAGE_HTML
    assert (tmp_path / "screenshots" / "a.test_screenshot.png").read_bytes() == PNG_BYTES
    assert (tmp_path / "url" / "a.test_urls.txt").exists()


def test_link_file_format_filters_empties_and_keeps_order(tmp_path):
    cfg = make_cfg(tmp_path)
    links = ["https://a.test/b", "", "https://a.test/a", "https://a.test/b", ""]
    persist("a.test", "https://a.test/start", _result(links=links), cfg)

    lines = (tmp_path / "url" / "a.test_urls.txt").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "Scraped URL: https://a.test/start"
    assert lines[1].startswith("Timestamp: ")
    stamp = datetime.fromisoformat(lines[1][len("Timestamp: "):])
    assert stamp.tzinfo is not None
    assert lines[2] == "--- Extracted URLs ---"
    assert lines[3:] == ["https://a.test/b", "https://a.test/a", "https://a.test/b"]


def test_format_links_with_fixed_timestamp():
    text = format_links("https://x.test", ["https://x.test/1", ""], timestamp="2026-01-02T03:04:05+00:00")
    assert text == (
        "Scraped URL: https://x.test\n"
        "Timestamp: 2026-01-02T03:04:05+00:00\n"
        "--- Extracted URLs ---\n"
        "https://x.test/1\n"
    )


def test_empty_screenshot_and_links_are_not_written(tmp_path):
    cfg = make_cfg(tmp_path)
    report = persist("a.test", "https://a.test", _result(screenshot=b"", links=["", ""]), cfg)

    assert set(report.written) == {"html"}
    assert set(report.skipped) == {"screenshot", "urls"}
    assert not (tmp_path / "screenshots" / "a.test_screenshot.png").exists()
    assert not (tmp_path / "url" / "a.test_urls.txt").exists()


def test_failed_pipeline_persists_partial_capture(tmp_path):
    cfg = make_cfg(tmp_path, persist_partial=True)
    report = persist("a.test", "https://a.test", _failed(), cfg)

    assert set(report.written) == {"html"}
    assert (tmp_path / "html" / "a.test_site_data.html").exists()
    assert not (tmp_path / "screenshots" / "a.test_screenshot.png").exists()
    assert not (tmp_path / "url" / "a.test_urls.txt").exists()


def test_failed_pipeline_writes_nothing_without_partial(tmp_path):
    cfg = make_cfg(tmp_path, persist_partial=False)
    report = persist("a.test", "https://a.test", _failed(), cfg)

    assert report.written == {}
    assert set(report.skipped) == {"html", "screenshot", "urls"}
    assert not (tmp_path / "html" / "a.test_site_data.html").exists()


def test_rerun_overwrites_instead_of_appending(tmp_path):
    cfg = make_cfg(tmp_path)
    persist("a.test", "https://a.test/start", _result(), cfg)
    first_urls = (tmp_path / "url" / "a.test_urls.txt").read_text(encoding="utf-8").splitlines()

    persist("a.test", "https://a.test/start", _result(), cfg)
    second_urls = (tmp_path / "url" / "a.test_urls.txt").read_text(encoding="utf-8").splitlines()

    assert (tmp_path / "html" / "a.test_site_data.html").read_text(encoding="utf-8") == PAGE_HTML
    assert (tmp_path / "screenshots" / "a.test_screenshot.png").read_bytes() == PNG_BYTES
    assert len(first_urls) == len(second_urls)
    # everything but the timestamp line is identical
    assert first_urls[0] == second_urls[0]
    assert first_urls[2:] == second_urls[2:]
    # no temp files left behind
    assert sorted(p.name for p in (tmp_path / "html").iterdir()) == ["a.test_site_data.html"]


def test_one_failed_artifact_does_not_block_the_others(tmp_path):
    cfg = make_cfg(tmp_path)
    # a directory squatting on the html path makes that write fail
    artifact_path(tmp_path, "html", "a.test").mkdir(parents=True)

    report = persist("a.test", "https://a.test", _result(), cfg)

    assert not report.ok
    assert isinstance(report.failed["html"], PersistenceFailure)
    assert report.failed["html"].host == "a.test"
    assert set(report.written) == {"screenshot", "urls"}
    assert (tmp_path / "screenshots" / "a.test_screenshot.png").read_bytes() == PNG_BYTES
    leftovers = [p.name for p in (tmp_path / "html").iterdir() if p.name.startswith(".")]
    assert leftovers == []


def test_jpeg_screenshot_uses_jpg_extension(tmp_path):
    cfg = make_cfg(tmp_path, screenshot_type="jpeg")
    report = persist("a.test", "https://a.test", _result(), cfg)
    assert report.written["screenshot"] == tmp_path / "screenshots" / "a.test_screenshot.jpg"


@pytest.mark.skipif(os.name != "posix", reason="file modes are POSIX-only")
def test_artifacts_are_world_readable(tmp_path):
    cfg = make_cfg(tmp_path)
    persist("a.test", "https://a.test/start", _result(), cfg)

    for kind in ("html", "screenshot", "urls"):
        mode = stat.S_IMODE(os.stat(artifact_path(tmp_path, kind, "a.test")).st_mode)
        assert mode == 0o644


def test_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    def _disk_full(fd):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(utils_mod.os, "fsync", _disk_full)
    target = tmp_path / "out" / "page.html"

    with pytest.raises(OSError):
        atomic_write_text(target, PAGE_HTML)

    assert list((tmp_path / "out").iterdir()) == []
