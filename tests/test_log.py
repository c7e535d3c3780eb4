import re

import pytest

from emberweb import log as logmod
from emberweb.log import Log, LogLevel, instance

LINE_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{6} ")


def _log_files(directory):
    return sorted(directory.glob("*.log"))


def test_not_open_before_init():
    log = Log()
    assert log.is_open() is False


def test_write_before_init_raises():
    log = Log()
    with pytest.raises(RuntimeError):
        log.write(LogLevel.INFO, "nothing")


def test_sync_write_format(tmp_path):
    log = Log()
    log.init(LogLevel.DEBUG, str(tmp_path), ".log", 0)
    assert log.is_open() is True
    log.write(LogLevel.INFO, "hello %d", 5)
    log.write(LogLevel.ERROR, "bad %s", "thing")
    log.close()
    files = _log_files(tmp_path)
    assert len(files) == 1
    lines = files[0].read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert LINE_RE.match(lines[0])
    assert lines[0].endswith("[info] : hello 5")
    assert lines[1].endswith("[error]: bad thing")


def test_unknown_level_uses_info_title(tmp_path):
    log = Log()
    log.init(LogLevel.DEBUG, str(tmp_path), ".log", 0)
    log.write(LogLevel.DEBUG, "d")
    log.write(LogLevel.WARN, "w")
    log.write(9, "x")
    log.close()
    lines = _log_files(tmp_path)[0].read_text(encoding="utf-8").splitlines()
    assert lines[0].endswith("[debug]: d")
    assert lines[1].endswith("[warn] : w")
    assert lines[2].endswith("[info] : x")


def test_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "logs"
    log = Log()
    log.init(LogLevel.INFO, str(target), ".txt", 0)
    log.write(LogLevel.INFO, "made")
    log.close()
    files = list(target.glob("*.txt"))
    assert len(files) == 1
    assert "made" in files[0].read_text(encoding="utf-8")


def test_rolls_over_after_max_lines(tmp_path):
    log = Log()
    log.init(LogLevel.DEBUG, str(tmp_path), ".log", 0)
    log.max_lines = 3
    for n in range(7):
        log.write(LogLevel.INFO, "n%d", n)
    log.close()
    files = _log_files(tmp_path)
    assert len(files) == 3
    names = [f.name for f in files]
    base = [name for name in names if "-" not in name]
    assert len(base) == 1
    assert any(name.endswith("-1.log") for name in names)
    assert any(name.endswith("-2.log") for name in names)
    counts = sorted(len(f.read_text(encoding="utf-8").splitlines()) for f in files)
    assert counts == [1, 3, 3]


def test_set_and_get_level():
    log = Log()
    log.set_level(LogLevel.ERROR)
    assert log.get_level() == LogLevel.ERROR
    log.set_level(0)
    assert log.get_level() == LogLevel.DEBUG


def test_instance_is_shared():
    previous = instance().get_level()
    try:
        instance().set_level(LogLevel.ERROR)
        assert instance().get_level() == LogLevel.ERROR
        instance().set_level(LogLevel.DEBUG)
        assert instance().get_level() == LogLevel.DEBUG
    finally:
        instance().set_level(previous)


def test_module_functions_respect_level(tmp_path):
    log = instance()
    log.init(LogLevel.WARN, str(tmp_path), ".log", 0)
    try:
        logmod.debug("hidden")
        logmod.info("hidden too")
        logmod.warn("shown %s", "x")
        logmod.error("also shown")
    finally:
        log.close()
    text = _log_files(tmp_path)[0].read_text(encoding="utf-8")
    assert "hidden" not in text
    assert "[warn] : shown x" in text
    assert "[error]: also shown" in text