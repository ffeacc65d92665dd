"""
테이블 데이터 CSV 내보내기 서비스 (CSV Export Coordinator).

스키마 내 테이블마다 "<output_dir>/<테이블명>.csv" 파일 하나를 만들고,
별도의 메타데이터 파일에 헤더와 푸터만 기록한다.

처리 순서:
    1. 커넥션 풀 생성, 서버 버전 조회
    2. 메타데이터 파일 작성 (헤더 + 푸터, 즉시)
    3. 테이블 목록 조회 후 배치 분할
    4. 배치 단위 병렬 내보내기 (ErrorPolicy.ABORT)

실패 처리 (fail-fast):
    배치 안에서 첫 실패가 나면 취소 이벤트가 세워지고, 같은 배치의 다른 워커는
    다음 체크포인트(행 페치 전, 파일 기록 전, 일정 행마다)에서 중단한다.
    코디네이터는 ExportAbortedError를 발생시키며 이후 배치는 실행하지 않는다.

파일 원자성:
    "<테이블명>.csv.part"에 먼저 기록하고 성공 시 os.replace()로 이름을 바꾼다.
    실패/취소 시 임시 파일은 삭제되므로 실패한 테이블의 .csv 파일은 남지 않는다.
"""

import csv
import os
import time
from typing import Callable, Optional

from config                      import (
    CSV_DELIMITER,
    CSV_FILE_EXTENSION,
    CSV_PARTIAL_SUFFIX,
    LOG_TAG_ERROR,
    LOG_TAG_INFO,
    LOG_TAG_OK,
    ROW_FETCH_BATCH_SIZE,
)
from models.dump_models          import (
    DumpFailure,
    DumpJob,
    DumpMetadata,
    ErrorPolicy,
    ExportedTable,
    ExportResult,
    TableFilterOptions,
)
from services.chunker            import chunk_tables
from services.connection_service import ConnectionService
from services.exceptions         import DumpError, ExportAbortedError, TaskCancelled
from services.metadata_writer    import write_footer, write_header
from services.table_sources      import TableSources
from services.worker_pool        import BoundedWorkerPool


# 로그 콜백 타입 alias
LogCallback = Callable[[str, str], None]


class CsvExporter:
    """
    배치 병렬 CSV 내보내기를 수행한다.

    내부 상태:
        _job       : 작업 설정 (parallels, schema, connection 사용)
        _log       : 로그 콜백 (tag, message)
        _service   : 커넥션 풀 관리자
        _sources   : 행 데이터 페처
        _delimiter : CSV 구분자
    """

    def __init__(
        self,
        job:                DumpJob,
        log:                Optional[LogCallback]       = None,
        connection_service: Optional[ConnectionService] = None,
        delimiter:          str                         = CSV_DELIMITER,
    ):
        if log is None:
            log = lambda tag, msg: None

        self._job       = job
        self._log       = log
        self._service   = connection_service or ConnectionService(job.connection, job.parallels)
        self._sources   = TableSources(job.schema)
        self._delimiter = delimiter

    def dump_data_to_directory(
        self,
        output_dir:    str,
        metadata_file: str,
        options:       Optional[TableFilterOptions] = None,
    ) -> ExportResult:
        """
        테이블별 CSV 파일과 메타데이터 파일을 생성한다.

        @param output_dir     CSV 파일을 둘 디렉토리 (없으면 생성)
        @param metadata_file  헤더/푸터를 기록할 메타데이터 파일 경로
        @param options        테이블 필터 옵션 (None이면 스키마 내 전체 테이블)
        @returns              ExportResult
        @throws               DumpError 접속/메타데이터/디렉토리 생성 실패 시
        @throws               ExportAbortedError 테이블 내보내기 실패 시 (이후 배치 미실행)

        @example
            exporter = CsvExporter(DumpJob(connection=info, parallels=4), log=console)
            result   = exporter.dump_data_to_directory("out/", "out/metadata.sql")
            # out/customers.csv, out/orders.csv, out/metadata.sql
        """
        job     = self._job
        log     = self._log
        started = time.monotonic()
        result  = ExportResult(
            output_dir    = os.fspath(output_dir),
            metadata_file = os.fspath(metadata_file),
        )

        log(LOG_TAG_INFO, f"접속 중: {job.connection.display_name}")
        self._service.open()
        try:
            server_version = self._service.server_version()
            metadata       = DumpMetadata.create(job, server_version)
            _write_metadata_file(metadata_file, metadata)
            log(LOG_TAG_OK, f"메타데이터 파일 작성: {metadata_file}")

            tables        = self._service.get_tables(options, job.schema)
            result.tables = tables
            log(LOG_TAG_INFO, f"[{job.schema}] 대상 테이블 {len(tables)}개")

            try:
                os.makedirs(output_dir, exist_ok=True)
            except OSError as e:
                raise DumpError(f"출력 디렉토리 생성 실패 ({output_dir}): {e}") from e

            batches = chunk_tables(tables, job.parallels)
            pool    = BoundedWorkerPool(job.parallels, ErrorPolicy.ABORT, name="csv-export")

            for number, batch in enumerate(batches, 1):
                log(LOG_TAG_INFO, f"배치 {number}/{len(batches)} 시작 (테이블 {len(batch)}개)")
                outcome = pool.run(
                    batch,
                    lambda table, cancel_event: self._export_table(output_dir, table, cancel_event),
                )

                for table, exported in outcome.completed:
                    result.exported.append(exported)
                    log(LOG_TAG_OK, f"{table}: {exported.row_count}건 -> {exported.path}")

                for failure in outcome.failures:
                    stage = getattr(failure.error, "stage", "write")
                    result.failures.append(DumpFailure(failure.item, stage, failure.error))
                    log(LOG_TAG_ERROR, f"CSV 내보내기 실패: {failure.item} - {failure.error}")

                if outcome.failures:
                    first = outcome.failures[0]
                    raise ExportAbortedError(
                        f"CSV 내보내기 중단 ({first.item}): {outcome.first_error}"
                    ) from outcome.first_error
        finally:
            self._service.close()

        result.elapsed_sec = time.monotonic() - started
        log(LOG_TAG_OK, f"CSV 내보내기 완료: {result.summary}")
        return result

    # ------------------------------------------------------------------
    # Private Methods
    # ------------------------------------------------------------------

    def _export_table(self, output_dir: str, table: str, cancel_event) -> ExportedTable:
        """
        워커 스레드 본문: 테이블 한 개를 CSV 파일로 기록한다.

        @returns  ExportedTable (row_count는 헤더를 제외한 데이터 행 수)
        @throws   TaskCancelled 체크포인트에서 취소 이벤트를 본 경우
        @throws   DumpError 테이블명을 파일명으로 쓸 수 없는 경우
        """
        _check_cancelled(cancel_event, table)
        path    = _csv_path(output_dir, table)
        partial = f"{path}{CSV_PARTIAL_SUFFIX}"

        row_count = 0
        try:
            with self._service.connection() as conn:
                rows = self._sources.fetch_rows(conn, table)
                header = next(rows)
                _check_cancelled(cancel_event, table)

                with open(partial, "w", encoding="utf-8", newline="") as f:
                    writer = csv.writer(f, delimiter=self._delimiter)
                    writer.writerow(header)
                    for row in rows:
                        writer.writerow(row)
                        row_count += 1
                        if row_count % ROW_FETCH_BATCH_SIZE == 0:
                            _check_cancelled(cancel_event, table)
            os.replace(partial, path)
        except Exception:
            _remove_partial(partial)
            raise

        return ExportedTable(table=table, path=path, row_count=row_count)


def _csv_path(output_dir: str, table: str) -> str:
    """
    테이블의 CSV 파일 경로를 만든다.

    인용 식별자 테이블명에는 "/"나 ".."이 들어갈 수 있으므로
    파일이 output_dir 바로 아래에 놓이는지 확인한다.

    @throws  DumpError 테이블명이 output_dir 밖의 경로를 가리키는 경우
    """
    file_name = f"{table}{CSV_FILE_EXTENSION}"
    base      = os.path.realpath(output_dir)
    resolved  = os.path.realpath(os.path.join(base, file_name))
    if os.path.dirname(resolved) != base:
        raise DumpError(f"CSV 파일명으로 쓸 수 없는 테이블명: {table!r}")
    return os.path.join(output_dir, file_name)


def _check_cancelled(cancel_event, table: str):
    if cancel_event.is_set():
        raise TaskCancelled(table)


def _remove_partial(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def _write_metadata_file(path: str, metadata: DumpMetadata):
    """
    메타데이터 파일에 헤더와 푸터를 바로 이어서 기록한다.

    @throws  DumpError 파일 생성/기록 실패 시
    """
    try:
        stream = open(path, "w", encoding="utf-8", newline="\n")
    except OSError as e:
        raise DumpError(f"메타데이터 파일 생성 실패 ({path}): {e}") from e
    with stream:
        write_header(stream, metadata)
        write_footer(stream, metadata)
