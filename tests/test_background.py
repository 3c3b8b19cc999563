"""Tests for the background reporter thread."""

import threading

from coverwatch.background import BackgroundReporter


class CountingCollector:
    def __init__(self, error=None):
        self.calls = 0
        self.error = error
        self.called = threading.Event()

    def report_coverage(self):
        self.calls += 1
        self.called.set()
        if self.error is not None:
            raise self.error
        return {}


def test_reports_on_interval():
    collector = CountingCollector()
    reporter = BackgroundReporter(collector, interval=0.01)
    reporter.start()
    assert collector.called.wait(2)
    reporter.stop()
    assert collector.calls >= 2  # at least one tick plus the final flush
    assert not reporter.running


def test_stop_flushes_once_more():
    collector = CountingCollector()
    reporter = BackgroundReporter(collector, interval=60)
    reporter.start()
    assert reporter.running
    reporter.stop()
    assert collector.calls == 1


def test_stop_without_final_flush():
    collector = CountingCollector()
    reporter = BackgroundReporter(collector, interval=60)
    reporter.start()
    reporter.stop(flush=False)
    assert collector.calls == 0
    assert not reporter.running


def test_thread_is_daemon():
    reporter = BackgroundReporter(CountingCollector(), interval=60)
    reporter.start()
    try:
        assert reporter._thread.daemon
        assert reporter._thread.name == "coverwatch-reporter"
    finally:
        reporter.stop()


def test_start_twice_keeps_one_thread():
    reporter = BackgroundReporter(CountingCollector(), interval=60)
    reporter.start()
    thread = reporter._thread
    reporter.start()
    assert reporter._thread is thread
    reporter.stop()


def test_failures_do_not_kill_thread(caplog):
    collector = CountingCollector(error=RuntimeError("store down"))
    reporter = BackgroundReporter(collector, interval=0.01)
    reporter.start()
    assert collector.called.wait(2)
    collector.called.clear()
    assert collector.called.wait(2)
    assert reporter.running
    reporter.stop()
    assert "Background coverage report failed" in caplog.text


def test_stop_without_start():
    BackgroundReporter(CountingCollector(), interval=1).stop()
