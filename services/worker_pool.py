"""
배치 단위 병렬 작업 실행기.

스키마 덤프와 CSV 내보내기가 공유하는 유한 크기 스레드 풀.
한 번의 run() 호출이 한 배치이며, 배치의 모든 작업이 끝나야 반환한다 (배치 장벽).

오류 정책(ErrorPolicy):
    CONTINUE : 실패를 수집하고 나머지 작업을 끝까지 실행
    ABORT    : 첫 실패에서 취소 이벤트를 세우고 아직 시작하지 않은 작업을 취소

작업 함수 시그니처:
    task(item, cancel_event) -> result
    - cancel_event.is_set()을 체크포인트마다 확인하고, 세워져 있으면 TaskCancelled를 발생시킨다.
    - TaskCancelled는 실패가 아닌 취소(cancelled)로 분류된다.
    - 시작 전에 취소된 작업은 skipped로 분류된다.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses        import dataclass, field
from typing             import Any, Callable, List, Optional, Sequence, Tuple

from models.dump_models  import ErrorPolicy
from services.exceptions import TaskCancelled


Task = Callable[[Any, threading.Event], Any]


@dataclass
class TaskFailure:
    item:  Any
    error: BaseException


@dataclass
class BatchOutcome:
    """
    한 배치의 실행 결과.

    @param completed    (item, result) 리스트, 입력 순서
    @param failures     실패한 작업 리스트, 완료 순서
    @param cancelled    취소 신호를 보고 스스로 중단한 item 리스트
    @param skipped      시작 전에 취소되어 실행되지 않은 item 리스트
    @param aborted      ABORT 정책으로 배치가 중단되었는지 여부
    @param first_error  처음 관측된 실패 원인
    """
    completed:   List[Tuple[Any, Any]]   = field(default_factory=list)
    failures:    List[TaskFailure]       = field(default_factory=list)
    cancelled:   List[Any]               = field(default_factory=list)
    skipped:     List[Any]               = field(default_factory=list)
    aborted:     bool                    = False
    first_error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return not self.failures


class BoundedWorkerPool:
    """
    동시 실행 수가 max_workers를 넘지 않는 배치 실행기.

    run()마다 새 ThreadPoolExecutor를 만들고 종료하므로
    배치 사이에 살아남는 스레드는 없다.
    """

    def __init__(
        self,
        max_workers:  int,
        error_policy: ErrorPolicy = ErrorPolicy.CONTINUE,
        name:         str         = "dump-worker",
    ):
        self._max_workers  = max(1, max_workers)
        self._error_policy = error_policy
        self._name         = name

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def error_policy(self) -> ErrorPolicy:
        return self._error_policy

    def run(self, items: Sequence[Any], task: Task) -> BatchOutcome:
        """
        items 각각에 대해 task를 병렬 실행하고 모두 끝날 때까지 기다린다.

        @param items  작업 대상 시퀀스 (한 배치)
        @param task   task(item, cancel_event) -> result
        @returns      BatchOutcome

        @example
            pool    = BoundedWorkerPool(4, ErrorPolicy.ABORT)
            outcome = pool.run(["a", "b"], lambda t, ev: export(t, ev))
            if outcome.aborted:
                raise ExportAbortedError(str(outcome.first_error))
        """
        outcome = BatchOutcome()
        if not items:
            return outcome

        cancel_event = threading.Event()
        results      = {}
        workers      = min(self._max_workers, len(items))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=self._name) as executor:
            futures = {
                executor.submit(task, item, cancel_event): index
                for index, item in enumerate(items)
            }

            for future in as_completed(futures):
                index = futures[future]
                item  = items[index]

                if future.cancelled():
                    outcome.skipped.append(item)
                    continue

                error = future.exception()
                if error is None:
                    results[index] = future.result()
                elif isinstance(error, TaskCancelled):
                    outcome.cancelled.append(item)
                else:
                    outcome.failures.append(TaskFailure(item, error))
                    if outcome.first_error is None:
                        outcome.first_error = error
                    if self._error_policy is ErrorPolicy.ABORT and not outcome.aborted:
                        outcome.aborted = True
                        cancel_event.set()
                        for pending in futures:
                            pending.cancel()

        outcome.completed = [(items[i], results[i]) for i in sorted(results)]
        return outcome
