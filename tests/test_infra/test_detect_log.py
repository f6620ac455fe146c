"""Tests for the CLI detection diagnostics log."""

import json

from agentdeck.infra.detect_log import DetectionLog, DetectLogRecord


class TestDetectLogRecord:
    def test_line_format(self):
        record = DetectLogRecord(level="warn", message="failed", details={"agentId": "claude"}, timestamp="T")
        line = record.to_line()
        assert line == '[T] [warn] failed {"agentId": "claude"}\n'

    def test_line_without_details(self):
        record = DetectLogRecord(level="debug", message="start", timestamp="T")
        assert record.to_line() == "[T] [debug] start\n"


class TestDetectionLog:
    def test_file_created_lazily(self, tmp_path):
        path = tmp_path / "logs" / "cli-detect.log"
        log = DetectionLog(path)
        assert not path.exists()
        log.warn("command detection failed", {"agentId": "codex"})
        lines = path.read_text().splitlines()
        assert len(lines) == 1
        assert "[warn] command detection failed" in lines[0]
        assert json.loads(lines[0].split(" failed ", 1)[1]) == {"agentId": "codex"}

    def test_debug_suppressed_without_flag(self, tmp_path):
        path = tmp_path / "cli-detect.log"
        log = DetectionLog(path)
        log.debug("start")
        assert not path.exists()

    def test_debug_written_with_flag(self, tmp_path):
        path = tmp_path / "cli-detect.log"
        log = DetectionLog(path, debug_enabled=True)
        log.debug("start")
        log.warn("failed")
        assert len(path.read_text().splitlines()) == 2

    def test_appends(self, tmp_path):
        path = tmp_path / "cli-detect.log"
        DetectionLog(path).warn("one")
        DetectionLog(path).warn("two")
        assert len(path.read_text().splitlines()) == 2

    def test_observers_only_in_debug(self, tmp_path):
        seen = []
        quiet = DetectionLog(tmp_path / "a.log")
        quiet.subscribe(seen.append)
        quiet.warn("failed")
        assert seen == []

        loud = DetectionLog(tmp_path / "b.log", debug_enabled=True)
        sub = loud.subscribe(seen.append)
        loud.warn("failed")
        sub.dispose()
        loud.warn("again")
        assert [r.message for r in seen] == ["failed"]

    def test_write_failure_never_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        log = DetectionLog(blocker / "logs" / "cli-detect.log")
        log.warn("one")
        log.warn("two")
