import io
import re
import threading

from config         import LOG_COLOR_RESET, LOG_COLORS
from ui.console_log import ConsoleLog


LINE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \[(\w+)\s*\] (.*)$")


def test_plain_line_format():
    stream = io.StringIO()
    log    = ConsoleLog(stream=stream)
    log("ok", "done")

    match = LINE.match(stream.getvalue().rstrip("\n"))
    assert match.groups() == ("OK", "done")
    assert log.entries[0][1:] == ("OK", "done")


def test_color_when_enabled():
    stream = io.StringIO()
    ConsoleLog(stream=stream, use_color=True)("ERROR", "boom")
    line = stream.getvalue()
    assert line.startswith(LOG_COLORS["ERROR"])
    assert line.rstrip("\n").endswith(LOG_COLOR_RESET)


def test_lines_from_many_threads_stay_whole():
    stream = io.StringIO()
    log    = ConsoleLog(stream=stream)

    def worker(n):
        for i in range(50):
            log("INFO", f"worker {n} message {i}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    lines = stream.getvalue().splitlines()
    assert len(lines) == 400
    assert all(LINE.match(line) for line in lines)


def test_summary_and_export(tmp_path):
    stream = io.StringIO()
    target = tmp_path / "run.log"
    log    = ConsoleLog(stream=stream, log_file=str(target))
    log("INFO", "start")
    log.set_summary("테이블 2개")
    log.close()

    exported = target.read_text(encoding="utf-8").splitlines()
    assert exported[0].endswith("[INFO ] start")
    assert exported[-1] == "테이블 2개"
    assert "로그 내보내기 완료" in stream.getvalue()


def test_export_failure_is_logged(tmp_path):
    stream = io.StringIO()
    log    = ConsoleLog(stream=stream)
    log("INFO", "x")
    assert not log.export(str(tmp_path / "missing" / "run.log"))
    assert "로그 내보내기 실패" in stream.getvalue()
