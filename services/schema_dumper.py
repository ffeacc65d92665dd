"""
PostgreSQL 스키마 덤프 서비스 (Dump Coordinator).

pg_dump 바이너리에 의존하지 않고, psycopg2 카탈로그 쿼리로
한 스키마의 정의(DDL)와 데이터(COPY)를 하나의 SQL 스크립트로 추출한다.

덤프 순서:
    1. 커넥션 풀 생성, 서버 버전 / 테이블 목록 조회
    2. 헤더 (DumpMetadata)
    3. 테이블 블록 : 배치 단위 병렬 처리, 워커당 테이블 1개
                     create -> sequences -> constraints -> indexes -> triggers -> data
    4. Views       : 모든 배치 완료 후 단일 스레드
    5. Functions   : 모든 배치 완료 후 단일 스레드
    6. 푸터

배치 장벽:
    한 배치의 모든 워커가 끝나야 다음 배치를 시작한다.
    동시 실행 워커 수는 DumpJob.parallels를 넘지 않는다.

실패 처리:
    - 접속, 출력 생성, 목록 조회, 헤더/푸터/출력 기록 실패 : DumpError (전체 중단)
    - 테이블 / 뷰 / 함수 단위 실패 : DumpJob.on_table_error 정책
        CONTINUE : 해당 블록을 건너뛰고 DumpResult.failures에 기록 + ERROR 로그
        ABORT    : 현재 배치를 마친 뒤 TableDumpError

사용처:
    - main.run_schema_dump() : CLI schema 서브커맨드
"""

import os
import time
from contextlib import contextmanager
from typing     import Callable, List, Optional

from config                        import LOG_TAG_ERROR, LOG_TAG_INFO, LOG_TAG_OK, LOG_TAG_WARNING
from models.dump_models            import (
    DumpFailure,
    DumpJob,
    DumpMetadata,
    DumpResult,
    ErrorPolicy,
    TableFilterOptions,
    TableScript,
)
from services.catalog_introspector import CatalogIntrospector
from services.chunker              import chunk_tables
from services.connection_service   import ConnectionService
from services.exceptions           import DumpError, OutputWriteError, TableDumpError, TaskCancelled
from services.metadata_writer      import write_footer, write_header
from services.output_writer        import OutputWriter
from services.script_pipeline      import TableScriptPipeline
from services.table_sources        import TableSources
from services.worker_pool          import BoundedWorkerPool


# 로그 콜백 타입 alias
LogCallback = Callable[[str, str], None]


class SchemaDumper:
    """
    배치 병렬 스키마 덤프를 수행한다.

    작업(DumpJob)마다 하나씩 생성한다. 커넥션 풀과 출력 작성기는
    dump_schema() 호출 동안만 존재하며 워커에게 인자로 전달된다.

    내부 상태:
        _job          : 덤프 작업 설정
        _log          : 로그 콜백 (tag, message)
        _service      : 커넥션 풀 관리자
        _introspector : 뷰/함수 섹션용 카탈로그 조회기
        _pipeline     : 테이블 스크립트 파이프라인
    """

    def __init__(
        self,
        job:                DumpJob,
        log:                Optional[LogCallback]       = None,
        connection_service: Optional[ConnectionService] = None,
    ):
        """
        SchemaDumper를 초기화한다.

        @param job                 덤프 작업 설정
        @param log                 로그 콜백 (None이면 출력하지 않음)
        @param connection_service  커넥션 풀 관리자 (None이면 job.connection으로 생성)
        """
        if log is None:
            log = lambda tag, msg: None

        self._job          = job
        self._log          = log
        self._service      = connection_service or ConnectionService(job.connection, job.parallels)
        self._introspector = CatalogIntrospector(job.schema)
        self._pipeline     = TableScriptPipeline(
            introspector      = self._introspector,
            sources           = TableSources(job.schema),
            include_data      = job.include_data,
            split_constraints = job.split_constraints,
        )

    # ==================================================================
    # 스키마 덤프
    # ==================================================================

    def dump_schema(self, output, options: Optional[TableFilterOptions] = None) -> DumpResult:
        """
        스키마 전체를 하나의 SQL 스크립트로 덤프한다.

        @param output   출력 파일 경로 또는 쓰기 가능한 텍스트 스트림
        @param options  테이블 필터 옵션 (None이면 스키마 내 전체 테이블)
        @returns        DumpResult (성공/실패 테이블, 소요시간)
        @throws         DumpError 치명적 오류 시
        @throws         TableDumpError ABORT 정책에서 테이블/섹션 실패 시

        @example
            job    = DumpJob(connection=info, parallels=8)
            result = SchemaDumper(job, log=console).dump_schema("shop.sql")
            print(result.summary)
        """
        job     = self._job
        log     = self._log
        started = time.monotonic()
        result  = DumpResult(output=_output_name(output))

        log(LOG_TAG_INFO, f"접속 중: {job.connection.display_name}")
        self._service.open()
        try:
            server_version = self._service.server_version()
            tables         = self._service.get_tables(options, job.schema)
            result.tables  = tables
            log(LOG_TAG_INFO, f"서버 버전 {server_version} | [{job.schema}] 대상 테이블 {len(tables)}개")
            _warn_missing_tables(options, tables, log)

            metadata = DumpMetadata.create(job, server_version)

            with _open_output(output) as stream:
                write_header(stream, metadata)

                writer = OutputWriter(stream, job.output_order)
                writer.start()
                try:
                    self._dump_tables(writer, tables, result)
                    self._dump_section(writer, "views", "VIEWS", self._introspector.script_views, result)
                    self._dump_section(writer, "functions", "FUNCTIONS", self._introspector.script_functions, result)
                except BaseException:
                    _close_after_error(writer, log)
                    raise
                writer.close()

                write_footer(stream, metadata)
        finally:
            self._service.close()

        result.elapsed_sec = time.monotonic() - started
        if result.ok:
            log(LOG_TAG_OK, f"스키마 덤프 완료: {result.summary}")
        else:
            log(LOG_TAG_WARNING, f"스키마 덤프 완료 (일부 실패 {len(result.failures)}건): {result.summary}")
        return result

    # ==================================================================
    # Private: 테이블 배치
    # ==================================================================

    def _dump_tables(self, writer: OutputWriter, tables: List[str], result: DumpResult):
        """
        테이블 목록을 배치로 나누어 순차 실행한다.

        배치 제출 시점에 테이블마다 출력 티켓을 입력 순서대로 예약하고,
        워커는 완성된 블록(실패 시 None)으로 자신의 티켓을 해제한다.
        """
        job     = self._job
        log     = self._log
        batches = chunk_tables(tables, job.parallels)
        pool    = BoundedWorkerPool(job.parallels, job.on_table_error, name="schema-dump")

        for number, batch in enumerate(batches, 1):
            log(LOG_TAG_INFO, f"배치 {number}/{len(batches)} 시작 (테이블 {len(batch)}개)")
            tickets = {table: writer.reserve() for table in batch}

            def task(table, cancel_event):
                return self._dump_table(writer, tickets[table], table, cancel_event)

            outcome = pool.run(batch, task)

            # 시작 전에 취소된 작업의 티켓은 코디네이터가 해제
            for table in outcome.skipped:
                writer.submit(tickets[table], None)

            for table, _ in outcome.completed:
                result.written_tables.append(table)
                log(LOG_TAG_OK, f"테이블 덤프: {job.schema}.{table}")

            for failure in outcome.failures:
                stage = getattr(failure.error, "stage", "table")
                result.failures.append(DumpFailure(failure.item, stage, failure.error))
                log(LOG_TAG_ERROR, f"테이블 덤프 실패: {job.schema}.{failure.item} - {failure.error}")

            writer.raise_if_failed()

            if outcome.aborted:
                first = outcome.failures[0]
                raise TableDumpError(
                    f"테이블 덤프 중단 ({first.item}): {outcome.first_error}"
                ) from outcome.first_error

    def _dump_table(self, writer: OutputWriter, ticket: int, table: str, cancel_event) -> TableScript:
        """
        워커 스레드 본문: 커넥션을 빌려 테이블 스크립트를 만들고 출력 작성기에 제출한다.

        블록은 모든 단계가 성공한 뒤에만 제출되므로 부분 블록은 출력되지 않는다.
        어떤 경우든 티켓은 정확히 한 번 해제된다.
        """
        text = None
        try:
            if cancel_event.is_set():
                raise TaskCancelled(table)
            with self._service.connection() as conn:
                script = self._pipeline.build(conn, table)
            text = script.render()
            return script
        finally:
            writer.submit(ticket, text)

    # ==================================================================
    # Private: 스키마 전체 섹션 (Views, Functions)
    # ==================================================================

    def _dump_section(
        self,
        writer: OutputWriter,
        name:   str,
        title:  str,
        render: Callable,
        result: DumpResult,
    ):
        """
        뷰 / 함수 섹션을 단일 스레드로 생성하여 출력 끝에 덧붙인다.

        @param name    실패 기록용 대상명 ("views" / "functions")
        @param title   섹션 배너 제목
        @param render  conn -> str 스크립트 생성 함수
        """
        log = self._log
        try:
            with self._service.connection() as conn:
                text = render(conn)
        except DumpError as e:
            stage = getattr(e, "stage", name)
            result.failures.append(DumpFailure(name, stage, e))
            log(LOG_TAG_ERROR, f"{title} 섹션 덤프 실패: {e}")
            if self._job.on_table_error is ErrorPolicy.ABORT:
                raise TableDumpError(f"{title} 섹션 덤프 중단: {e}") from e
            return

        if not text:
            log(LOG_TAG_INFO, f"{title} 없음")
            return

        writer.append(
            "-- ===========================================\n"
            f"-- {title}\n"
            "-- ===========================================\n"
            "\n"
            f"{text}\n"
        )
        log(LOG_TAG_OK, f"{title} 섹션 덤프 완료")


# ----------------------------------------------------------------------
# 모듈 헬퍼
# ----------------------------------------------------------------------

@contextmanager
def _open_output(output):
    """
    출력 대상을 텍스트 스트림으로 연다.

    스트림이 주어지면 그대로 사용하고 닫지 않는다.
    경로가 주어지면 UTF-8로 생성하고 블록 종료 시 닫는다.

    @throws  DumpError 파일 생성 실패 시
    """
    if hasattr(output, "write"):
        yield output
        return

    try:
        stream = open(output, "w", encoding="utf-8", newline="\n")
    except OSError as e:
        raise DumpError(f"출력 파일 생성 실패 ({output}): {e}") from e
    with stream:
        yield stream


def _close_after_error(writer: OutputWriter, log: LogCallback):
    """
    이미 예외가 전파 중일 때 작성기를 종료한다.

    종료 중 기록 실패는 로그로만 남기고, 원래 예외가 그대로 전파되게 한다.
    """
    try:
        writer.close()
    except OutputWriteError as e:
        log(LOG_TAG_ERROR, f"출력 종료 실패: {e}")


def _output_name(output) -> str:
    if hasattr(output, "write"):
        return str(getattr(output, "name", "<stream>"))
    return os.fspath(output)


def _warn_missing_tables(options: Optional[TableFilterOptions], tables: List[str], log: LogCallback):
    """명시적으로 요청했지만 목록에 없는 테이블을 경고 로그로 남긴다."""
    if options is None or not options.tables:
        return
    found    = set(tables)
    excluded = set(options.exclude_tables)
    for table in options.tables:
        if table not in found and table not in excluded:
            log(LOG_TAG_WARNING, f"테이블을 찾을 수 없음: {table}")
