"""
Log sink tests
"""
import re

import pytest

from aiproxy.core.log_sink import LogSink


@pytest.mark.unit
class TestLogSink:
    """Bounded log buffer"""

    def test_lines_are_timestamped(self):
        sink = LogSink(capacity=10)
        line = sink.append("server ready")

        assert re.fullmatch(r"\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] server ready", line)
        assert sink.lines() == [line]

    def test_overflow_drops_exactly_the_oldest_line(self):
        sink = LogSink(capacity=500)
        for i in range(1, 502):
            sink.append(f"line {i}")

        lines = sink.lines()
        assert len(lines) == 500
        assert not any(line.endswith("] line 1") for line in lines)
        assert [line.split("] ", 1)[1] for line in lines] == [
            f"line {i}" for i in range(2, 502)
        ]

    def test_filter_is_case_insensitive_substring(self):
        sink = LogSink(capacity=10)
        sink.append("GET /health")
        sink.append("POST /v1/chat/completions")
        sink.append("Unknown path: /Health/extra")

        matches = sink.filter("health")

        assert len(matches) == 2
        assert matches[0].endswith("GET /health")
        assert matches[1].endswith("Unknown path: /Health/extra")

    def test_empty_filter_returns_everything(self):
        sink = LogSink(capacity=10)
        sink.append("a")
        sink.append("b")
        assert sink.filter("") == sink.lines()

    def test_clear(self):
        sink = LogSink(capacity=10)
        sink.append("a")
        sink.clear()

        assert sink.lines() == []
        assert len(sink) == 0
        sink.append("b")
        assert len(sink) == 1

    def test_observers_receive_lines_until_unsubscribed(self):
        sink = LogSink(capacity=10)
        seen = []
        unsubscribe = sink.subscribe(seen.append)

        first = sink.append("first")
        unsubscribe()
        sink.append("second")

        assert seen == [first]

    def test_failing_observer_does_not_break_append(self):
        sink = LogSink(capacity=10)

        def broken(line):
            raise RuntimeError("observer down")

        sink.subscribe(broken)
        sink.append("still stored")

        assert len(sink) == 1
