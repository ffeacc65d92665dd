"""
PostgreSQL Parallel Dump Tool - Entry Point

pg_dump 바이너리 없이 psycopg2 카탈로그 쿼리만으로 스키마를 추출하는 CLI 유틸리티.
테이블 단위 작업을 배치로 나누어 병렬 처리한다.

주요 기능:
    - schema : 한 스키마의 DDL(+COPY 데이터)을 단일 SQL 스크립트로 추출
    - csv    : 테이블마다 CSV 파일 하나 + 메타데이터 파일 생성

접속 정보 우선순위:
    --dsn 접속 문자열 > 개별 플래그(-H, -p, -U, -d) > PG* 환경변수 > config 기본값
    비밀번호는 PGPASSWORD 환경변수 또는 --password로 전달한다.

Usage:
    pgdumper schema -d shop -j 8 -o shop.sql
    pgdumper schema --dsn postgresql://pg@db/shop --no-data --order submission
    pgdumper csv -d shop --output-dir export/ --tables customers orders

종료 코드:
    0 : 성공
    1 : 치명적 오류 또는 일부 테이블 실패
"""

import argparse
import os
import sys
from typing import Mapping, Optional, Sequence

import psycopg2

from config             import (
    APP_NAME,
    APP_VERSION,
    CSV_DELIMITER,
    DEFAULT_PARALLELS,
    DEFAULT_SCHEMA,
    LOG_TAG_ERROR,
)
from models             import (
    ConnectionInfo,
    DumpJob,
    ErrorPolicy,
    OutputOrder,
    TableFilterOptions,
)
from services           import CsvExporter, DumpError, SchemaDumper
from ui                 import ConsoleLog


METADATA_FILE_NAME = "metadata.sql"


def build_parser() -> argparse.ArgumentParser:
    """
    CLI 인자 파서를 생성한다.

    접속/작업 공통 인자는 부모 파서에 두고 schema / csv 서브커맨드가 상속한다.
    """
    common = argparse.ArgumentParser(add_help=False)

    conn_group = common.add_argument_group("connection")
    conn_group.add_argument("--dsn", help="libpq 접속 문자열 또는 postgresql:// URI")
    conn_group.add_argument("-H", "--host", help="서버 호스트 (기본값: PGHOST)")
    conn_group.add_argument("-p", "--port", type=int, help="서버 포트 (기본값: PGPORT)")
    conn_group.add_argument("-U", "--user", help="접속 사용자 (기본값: PGUSER)")
    conn_group.add_argument("-d", "--dbname", help="데이터베이스명 (기본값: PGDATABASE)")
    conn_group.add_argument("--password", help="비밀번호 (기본값: PGPASSWORD)")

    job_group = common.add_argument_group("job")
    job_group.add_argument("-n", "--schema", default=DEFAULT_SCHEMA, help="대상 스키마")
    job_group.add_argument(
        "-j", "--jobs", type=int, default=DEFAULT_PARALLELS,
        help="배치 크기 = 동시 실행 워커 수 (0 이하이면 기본값)",
    )
    job_group.add_argument("-t", "--tables", nargs="+", default=[], help="포함할 테이블")
    job_group.add_argument("-T", "--exclude-tables", nargs="+", default=[], help="제외할 테이블")
    job_group.add_argument("--pattern", help="테이블명 LIKE 패턴 (예: 'order%%')")
    job_group.add_argument("--log-file", help="실행 종료 시 로그를 저장할 파일")
    job_group.add_argument("--no-color", action="store_true", help="로그 색상 비활성화")

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="PostgreSQL catalog-driven parallel dump tool",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    schema_parser = subparsers.add_parser(
        "schema", parents=[common], help="스키마를 단일 SQL 스크립트로 덤프",
    )
    schema_parser.add_argument(
        "-o", "--output", default="-",
        help="출력 파일 경로 ('-'이면 표준 출력)",
    )
    schema_parser.add_argument("--no-data", action="store_true", help="COPY 데이터 제외")
    schema_parser.add_argument(
        "--split-constraints", action="store_true",
        help="제약조건을 PK/UNIQUE/CHECK/FK 단계로 분리",
    )
    schema_parser.add_argument(
        "--order", choices=[o.value for o in OutputOrder], default=OutputOrder.COMPLETION.value,
        help="테이블 블록 출력 순서",
    )
    schema_parser.add_argument(
        "--on-error", choices=[p.value for p in ErrorPolicy], default=ErrorPolicy.CONTINUE.value,
        help="테이블 덤프 실패 시 처리 정책",
    )

    csv_parser = subparsers.add_parser(
        "csv", parents=[common], help="테이블 데이터를 CSV 파일로 내보내기",
    )
    csv_parser.add_argument("--output-dir", required=True, help="CSV 파일 디렉토리")
    csv_parser.add_argument(
        "--metadata-file",
        help=f"메타데이터 파일 경로 (기본값: <output-dir>/{METADATA_FILE_NAME})",
    )
    csv_parser.add_argument("--delimiter", default=CSV_DELIMITER, help="CSV 구분자")

    return parser


def connection_from_args(
    args:    argparse.Namespace,
    environ: Optional[Mapping[str, str]] = None,
) -> ConnectionInfo:
    """
    CLI 인자와 PG* 환경변수로 ConnectionInfo를 만든다.

    @param args     파싱된 인자
    @param environ  환경변수 매핑 (기본값: os.environ)
    @returns        ConnectionInfo
    @throws         psycopg2.ProgrammingError --dsn 파싱 실패 시
    """
    if environ is None:
        environ = os.environ

    data = {
        "host":     args.host or environ.get("PGHOST"),
        "port":     args.port or environ.get("PGPORT"),
        "user":     args.user or environ.get("PGUSER"),
        "password": args.password or environ.get("PGPASSWORD"),
        "dbname":   args.dbname or environ.get("PGDATABASE"),
        "sslmode":  environ.get("PGSSLMODE"),
    }
    if args.dsn:
        defaults = {key: value for key, value in data.items() if value}
        return ConnectionInfo.from_connection_string(args.dsn, defaults)
    return ConnectionInfo.from_dict(data)


def job_from_args(args: argparse.Namespace, info: ConnectionInfo) -> DumpJob:
    if args.command == "schema":
        return DumpJob(
            connection        = info,
            parallels         = args.jobs,
            schema            = args.schema,
            include_data      = not args.no_data,
            split_constraints = args.split_constraints,
            output_order      = OutputOrder(args.order),
            on_table_error    = ErrorPolicy(args.on_error),
        )
    return DumpJob(connection=info, parallels=args.jobs, schema=args.schema)


def filter_from_args(args: argparse.Namespace) -> TableFilterOptions:
    return TableFilterOptions(
        tables         = list(args.tables),
        exclude_tables = list(args.exclude_tables),
        pattern        = args.pattern,
    )


def run_schema_dump(args: argparse.Namespace, job: DumpJob, log: ConsoleLog) -> int:
    """schema 서브커맨드를 실행하고 종료 코드를 반환한다."""
    dumper  = SchemaDumper(job, log=log)
    options = filter_from_args(args)
    if args.output == "-":
        result = dumper.dump_schema(sys.stdout, options)
    else:
        result = dumper.dump_schema(args.output, options)

    log.set_summary(result.summary)
    for failure in result.failures:
        log(LOG_TAG_ERROR, f"실패: {failure}")
    return 0 if result.ok else 1


def run_csv_export(args: argparse.Namespace, job: DumpJob, log: ConsoleLog) -> int:
    """csv 서브커맨드를 실행하고 종료 코드를 반환한다."""
    metadata_file = args.metadata_file or os.path.join(args.output_dir, METADATA_FILE_NAME)
    exporter      = CsvExporter(job, log=log, delimiter=args.delimiter)
    result        = exporter.dump_data_to_directory(args.output_dir, metadata_file, filter_from_args(args))
    log.set_summary(result.summary)
    return 0 if result.ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 진입점.

    서비스가 발생시키는 DumpError를 로그로 보고하고 종료 코드 1을 반환한다.

    @param argv  인자 리스트 (None이면 sys.argv[1:])
    @returns     종료 코드
    """
    args = build_parser().parse_args(argv)
    log  = ConsoleLog(
        use_color = False if args.no_color else None,
        log_file  = args.log_file,
    )

    try:
        info = connection_from_args(args)
        job  = job_from_args(args, info)
        if args.command == "schema":
            return run_schema_dump(args, job, log)
        return run_csv_export(args, job, log)
    except psycopg2.ProgrammingError as e:
        log(LOG_TAG_ERROR, f"접속 문자열 오류: {e}")
        return 1
    except DumpError as e:
        log(LOG_TAG_ERROR, str(e))
        return 1
    finally:
        log.close()


if __name__ == "__main__":
    sys.exit(main())
