"""
덤프 출력 작성기.

여러 워커 스레드가 만든 텍스트 블록을 하나의 출력 스트림에 기록한다.
bounded queue.Queue 기반 producer/consumer 구조이며, 스트림에 쓰는 스레드는
소비자 스레드 하나뿐이므로 각 블록은 다른 블록과 섞이지 않고 연속으로 기록된다.

순서 정책(OutputOrder):
    COMPLETION : 큐에 도착한 순서(= 워커 완료 순서)대로 기록
    SUBMISSION : reserve()로 발급한 티켓 순서대로 기록 (재정렬 버퍼 사용)

사용 흐름:
    writer = OutputWriter(stream, OutputOrder.SUBMISSION)
    writer.start()
    ticket = writer.reserve()          # 배치 제출 시점에 입력 순서대로 예약
    writer.submit(ticket, text)        # 워커 완료 시 (실패 시 None)
    writer.append(text)                # 단일 스레드 구간 (뷰, 함수 섹션)
    writer.close()                     # 큐 비우기 + 소비자 종료 + flush
"""

import queue
import threading
from typing import Optional, TextIO

from config              import OUTPUT_QUEUE_SIZE
from models.dump_models  import OutputOrder
from services.exceptions import OutputWriteError


# 소비자 스레드 종료 신호
_STOP = object()


class OutputWriter:
    """
    단일 소비자 스레드를 가진 출력 작성기.

    내부 상태:
        _stream       : 기록 대상 텍스트 스트림 (소비자 스레드만 접근)
        _order        : 순서 정책
        _queue        : (ticket, text) 항목 큐
        _next_ticket  : 다음에 발급할 티켓 번호
        _error        : 첫 기록 실패 예외 (이후 기록은 버린다)
        _written      : 실제 기록된 블록 수
    """

    def __init__(
        self,
        stream:      TextIO,
        order:       OutputOrder = OutputOrder.COMPLETION,
        max_pending: int         = OUTPUT_QUEUE_SIZE,
    ):
        self._stream      = stream
        self._order       = order
        self._queue       = queue.Queue(maxsize=max(1, max_pending))
        self._lock        = threading.Lock()
        self._next_ticket = 0
        self._thread: Optional[threading.Thread] = None
        self._error:  Optional[BaseException]    = None
        self._written     = 0

    @property
    def written_count(self) -> int:
        return self._written

    @property
    def failed(self) -> bool:
        return self._error is not None

    def start(self):
        """소비자 스레드를 시작한다. 두 번째 호출은 무시한다."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name="dump-output-writer",
            daemon=True,
        )
        self._thread.start()

    # ==================================================================
    # 생산자 API
    # ==================================================================

    def reserve(self) -> int:
        """
        출력 슬롯 하나를 예약하고 티켓 번호를 반환한다.

        예약한 티켓은 반드시 submit()으로 한 번 해제해야 한다
        (SUBMISSION 정책에서 미해제 티켓 뒤의 블록은 close() 전까지 보류된다).
        """
        with self._lock:
            ticket = self._next_ticket
            self._next_ticket += 1
            return ticket

    def submit(self, ticket: int, text: Optional[str]):
        """
        예약한 슬롯에 텍스트 블록을 제출한다.

        큐가 가득 차 있으면 자리가 날 때까지 호출 스레드가 대기한다.

        @param ticket  reserve()가 발급한 티켓
        @param text    기록할 블록 (None이면 아무것도 기록하지 않고 슬롯만 해제)
        """
        self._queue.put((ticket, text))

    def append(self, text: str):
        """슬롯 예약과 제출을 한 번에 수행한다. 단일 스레드 구간용."""
        self.submit(self.reserve(), text)

    def close(self):
        """
        남은 블록을 모두 기록하고 소비자 스레드를 종료한 뒤 스트림을 flush한다.

        @throws  OutputWriteError 기록 중 실패가 있었던 경우
        """
        if self._thread is not None:
            self._queue.put(_STOP)
            self._thread.join()
            self._thread = None
        if self._error is None:
            try:
                self._stream.flush()
            except (OSError, ValueError) as e:
                self._error = e
        self.raise_if_failed()

    def raise_if_failed(self):
        """@throws  OutputWriteError 기록 실패가 기록되어 있으면"""
        if self._error is not None:
            raise OutputWriteError(f"출력 기록 실패: {self._error}") from self._error

    # ------------------------------------------------------------------
    # 소비자 스레드
    # ------------------------------------------------------------------

    def _run(self):
        held     = {}
        expected = 0

        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            ticket, text = item

            if self._order is OutputOrder.SUBMISSION:
                held[ticket] = text
                while expected in held:
                    self._write(held.pop(expected))
                    expected += 1
            else:
                self._write(text)

        # 해제되지 않은 티켓이 남아 있으면 보류 블록을 티켓 순서대로 기록
        for ticket in sorted(held):
            self._write(held[ticket])

    def _write(self, text: Optional[str]):
        if text is None or self._error is not None:
            return
        try:
            self._stream.write(text)
            self._written += 1
        except (OSError, ValueError) as e:
            self._error = e
