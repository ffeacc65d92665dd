"""
덤프 서비스 예외 정의.

치명적 오류(접속, 출력 생성, 테이블 목록 조회, 헤더/푸터 기록)는 DumpError로,
카탈로그 조회 단계 오류는 CatalogQueryError로 구분한다.
psycopg2 / OSError 원인 예외는 raise ... from 으로 연결한다.
"""


class DumpError(Exception):
    """덤프 작업 전체를 중단시키는 오류."""


class CatalogQueryError(DumpError):
    """
    테이블 파이프라인의 한 단계(카탈로그 조회) 실패.

    @param stage  실패한 단계명 (예: "constraints", "rows")
    @param table  대상 테이블명 (스키마 전체 조회는 None)
    @param cause  원인 예외
    """

    def __init__(self, stage: str, table, cause: BaseException):
        self.stage = stage
        self.table = table
        self.cause = cause
        target = table if table is not None else "<schema>"
        super().__init__(f"{stage} 조회 실패 ({target}): {cause}")


class TableDumpError(DumpError):
    """ABORT 정책에서 테이블 스크립트 생성 실패로 스키마 덤프를 중단할 때 발생."""


class ExportAbortedError(DumpError):
    """CSV 내보내기 배치에서 워커가 실패하여 전체 내보내기를 중단할 때 발생."""


class OutputWriteError(DumpError):
    """출력 스트림 기록 실패."""


class TaskCancelled(Exception):
    """
    취소 신호를 확인한 워커가 작업을 중단할 때 발생.

    실패로 집계되지 않고 BatchOutcome.cancelled로 분류된다.
    """
