import logging

import pytest

from nodekeeper.logging.log import LOG_DIR_ENV, init_logging


@pytest.fixture
def run_log():
    started = []

    def _init(**kw):
        result = init_logging(name="nodekeeper-test", **kw)
        started.append(result[0])
        return result

    yield _init
    for logger in started:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)


def _flush(logger):
    for h in logger.handlers:
        h.flush()


def test_init_logging_writes_a_run_log(tmp_path, run_log):
    logger, run_id, log_path = run_log(base_dir=tmp_path)
    logger.debug("hello from the test")
    _flush(logger)

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    text = log_path.read_text()
    assert "hello from the test" in text
    # every line carries the short run id
    assert f"| {run_id[:8]} |" in text.splitlines()[-1]


def test_log_dir_from_environment(tmp_path, monkeypatch, run_log):
    monkeypatch.setenv(LOG_DIR_ENV, str(tmp_path / "runs"))

    _, _, log_path = run_log()

    assert log_path.parent == tmp_path / "runs"
    assert log_path.is_file()


def test_reinit_replaces_handlers(tmp_path, run_log):
    logger, _, first = run_log(base_dir=tmp_path)
    logger, _, second = run_log(base_dir=tmp_path)
    logger.info("second run only")
    _flush(logger)

    assert len(logger.handlers) == 2
    assert "second run only" not in first.read_text()
    assert "second run only" in second.read_text()


@pytest.mark.parametrize("verbose,level", [(False, logging.WARNING), (True, logging.DEBUG)])
def test_library_loggers_follow_verbosity(tmp_path, run_log, verbose, level):
    run_log(base_dir=tmp_path, verbose=verbose)
    assert logging.getLogger("paramiko").level == level
    assert logging.getLogger("kubernetes").level == level
