"""
콘솔 로그 출력.

서비스 로그 콜백(tag, message)을 받아 타임스탬프 + 색상 구분 로그를 터미널에 출력하고,
실행 요약을 마지막에 표시한다. 로그 내보내기 기능을 제공한다.

로그 형식:
    "YYYY-MM-DD HH:MM:SS [TAG  ] 메시지"
    TAG별 색상: INFO(회색), OK(민트), ERROR(빨강), WARN(주황) - TTY일 때만

여러 워커 스레드가 동시에 호출해도 한 줄이 섞이지 않도록 내부 락으로 보호한다.

사용처:
    - main : ConsoleLog 인스턴스를 SchemaDumper / CsvExporter의 log 인자로 전달
"""

import datetime
import sys
import threading
from typing import List, Optional, TextIO, Tuple

from config import LOG_COLOR_RESET, LOG_COLORS, LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_OK


class ConsoleLog:
    """
    로그 출력 및 내보내기.

    호출 가능 객체이므로 서비스의 LogCallback으로 그대로 전달할 수 있다.

    내부 상태:
        _log_entries : (timestamp, tag, message) 튜플 리스트
        _summary     : 마지막으로 설정된 요약 문자열
    """

    def __init__(
        self,
        stream:    Optional[TextIO] = None,
        use_color: Optional[bool]   = None,
        log_file:  Optional[str]    = None,
    ):
        """
        ConsoleLog를 초기화한다.

        @param stream     출력 스트림 (기본값: sys.stderr)
        @param use_color  ANSI 색상 사용 여부 (None이면 스트림이 TTY일 때만)
        @param log_file   지정 시 close()에서 전체 로그를 이 파일로 내보낸다
        """
        self._stream = stream if stream is not None else sys.stderr
        if use_color is None:
            isatty    = getattr(self._stream, "isatty", None)
            use_color = bool(isatty and isatty())
        self._use_color = use_color
        self._log_file  = log_file
        self._lock      = threading.Lock()

        self._log_entries: List[Tuple[str, str, str]] = []
        self._summary = ""

    def __call__(self, tag: str, message: str):
        self.append(tag, message)

    @property
    def entries(self) -> List[Tuple[str, str, str]]:
        with self._lock:
            return list(self._log_entries)

    @property
    def summary(self) -> str:
        return self._summary

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, tag: str, message: str):
        """
        로그 엔트리를 추가하고 스트림에 한 줄로 출력한다.

        @param tag      로그 레벨 태그 (INFO, OK, ERROR, WARN)
        @param message  로그 메시지 문자열
        """
        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        tag_upper = tag.upper()
        log_line  = f"{timestamp} [{tag_upper:<5}] {message}"

        if self._use_color:
            color    = LOG_COLORS.get(tag_upper, LOG_COLORS[LOG_TAG_INFO])
            log_line = f"{color}{log_line}{LOG_COLOR_RESET}"

        with self._lock:
            self._log_entries.append((timestamp, tag_upper, message))
            self._stream.write(log_line + "\n")
            self._stream.flush()

    def set_summary(self, summary: str):
        """
        실행 요약을 설정하고 구분선과 함께 출력한다.

        @param summary  요약 문자열 (DumpResult.summary 등)
        """
        self._summary = summary
        with self._lock:
            self._stream.write(f"{'-' * 60}\n{summary}\n")
            self._stream.flush()

    def export(self, file_path: str) -> bool:
        """
        보관 중인 로그를 텍스트 파일로 내보낸다.

        내보내기 결과를 로그에 추가한다.

        @param file_path  저장 경로
        @returns          성공 여부
        """
        entries = self.entries
        try:
            with open(file_path, "w", encoding="utf-8") as f:
                for timestamp, tag, message in entries:
                    f.write(f"{timestamp} [{tag:<5}] {message}\n")
                if self._summary:
                    f.write(f"{self._summary}\n")
            self.append(LOG_TAG_OK, f"로그 내보내기 완료: {file_path}")
            return True
        except OSError as e:
            self.append(LOG_TAG_ERROR, f"로그 내보내기 실패: {e}")
            return False

    def close(self):
        """log_file이 지정되어 있으면 내보낸다."""
        if self._log_file:
            self.export(self._log_file)
