"""
PostgreSQL 접속 관리 서비스.

덤프 작업 하나에 psycopg2 ThreadedConnectionPool 하나를 두고,
워커 스레드가 테이블 단위로 커넥션을 빌려 쓰도록 한다.
빌려준 커넥션은 readonly + autocommit 세션으로 설정되므로
모든 카탈로그 조회는 독립된 암묵적 읽기 트랜잭션으로 실행된다.

추가로 작업 준비 단계에서 필요한 조회를 제공한다.
    - server_version() : SHOW server_version
    - get_tables()     : 스키마 내 테이블 목록 (필터 적용)

사용처:
    - SchemaDumper / CsvExporter : 작업 시작 시 open(), 종료 시 close()
    - 워커 스레드                : with service.connection() as conn: ...
"""

from contextlib import contextmanager
from typing     import Callable, Iterator, List, Optional

import psycopg2
import psycopg2.extensions
import psycopg2.pool

from config                 import DEFAULT_PARALLELS, DEFAULT_SCHEMA
from models.connection_info import ConnectionInfo
from models.dump_models     import TableFilterOptions
from services.exceptions    import DumpError


TABLES_QUERY = """
    SELECT tablename
    FROM   pg_tables
    WHERE  schemaname = %s
    ORDER  BY tablename
"""

TABLES_LIKE_QUERY = """
    SELECT tablename
    FROM   pg_tables
    WHERE  schemaname = %s
    AND    tablename LIKE %s
    ORDER  BY tablename
"""


class ConnectionService:
    """
    작업 단위 커넥션 풀을 관리한다.

    내부 상태:
        _info            : 접속 정보
        _max_connections : 풀 최대 크기 (= 배치 크기)
        _pool_factory    : 풀 생성 함수 (테스트에서 대체 가능)
        _pool            : 활성 풀 또는 None
    """

    def __init__(
        self,
        info:            ConnectionInfo,
        max_connections: int      = DEFAULT_PARALLELS,
        pool_factory:    Callable = psycopg2.pool.ThreadedConnectionPool,
    ):
        self._info            = info
        self._max_connections = max(1, max_connections)
        self._pool_factory    = pool_factory
        self._pool            = None

    def __enter__(self) -> "ConnectionService":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def info(self) -> ConnectionInfo:
        return self._info

    @property
    def is_open(self) -> bool:
        return self._pool is not None and not self._pool.closed

    def open(self):
        """
        커넥션 풀을 생성한다. 이미 열려 있으면 아무것도 하지 않는다.

        최소 커넥션 1개를 즉시 생성하므로 접속 정보 오류는 여기서 드러난다.

        @throws  DumpError 접속 실패 시 (치명적 오류)

        @example
            service = ConnectionService(info, max_connections=8)
            service.open()
        """
        if self.is_open:
            return
        try:
            self._pool = self._pool_factory(1, self._max_connections, **self._info.dsn)
        except psycopg2.Error as e:
            raise DumpError(f"DB 접속 실패 ({self._info.display_name}): {e}") from e

    @contextmanager
    def connection(self) -> Iterator[psycopg2.extensions.connection]:
        """
        풀에서 커넥션 하나를 빌려 readonly + autocommit 세션으로 제공한다.

        블록을 벗어나면 풀에 반납한다. 블록 안에서 psycopg2 오류가 발생해
        커넥션이 닫힌 경우에는 풀에서 폐기한다.

        @throws  DumpError 풀이 열려있지 않거나 커넥션을 얻지 못한 경우
        """
        if not self.is_open:
            raise DumpError("DB에 접속되어 있지 않습니다.")
        try:
            conn = self._pool.getconn()
            conn.set_session(readonly=True, autocommit=True)
        except psycopg2.Error as e:
            raise DumpError(f"커넥션 획득 실패: {e}") from e

        try:
            yield conn
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    def server_version(self) -> str:
        """
        서버 버전 문자열을 조회한다.

        @returns  SHOW server_version 결과 (예: "15.4")
        @throws   DumpError 조회 실패 시
        """
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SHOW server_version")
                    return cur.fetchone()[0]
        except psycopg2.Error as e:
            raise DumpError(f"서버 버전 조회 실패: {e}") from e

    def get_tables(
        self,
        options: Optional[TableFilterOptions] = None,
        schema:  str                          = DEFAULT_SCHEMA,
    ) -> List[str]:
        """
        스키마 내 테이블 목록을 이름순으로 조회하고 필터를 적용한다.

        필터 적용 순서: pattern(LIKE, 서버 측) -> tables(포함) -> exclude_tables(제외)
        tables에 지정했지만 존재하지 않는 이름은 결과에서 빠진다.

        @param options  테이블 필터 옵션 (None이면 전체)
        @param schema   대상 스키마명
        @returns        테이블명 리스트 (알파벳순)
        @throws         DumpError 조회 실패 시

        @example
            service.get_tables(TableFilterOptions(exclude_tables=["audit_log"]))
            # -> ["customers", "orders"]
        """
        options = options or TableFilterOptions()
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    if options.pattern:
                        cur.execute(TABLES_LIKE_QUERY, (schema, options.pattern))
                    else:
                        cur.execute(TABLES_QUERY, (schema,))
                    tables = [row[0] for row in cur.fetchall()]
        except psycopg2.Error as e:
            raise DumpError(f"테이블 목록 조회 실패 ({schema}): {e}") from e

        if options.tables:
            wanted = set(options.tables)
            tables = [t for t in tables if t in wanted]
        if options.exclude_tables:
            excluded = set(options.exclude_tables)
            tables   = [t for t in tables if t not in excluded]
        return tables

    def close(self):
        """
        풀의 모든 커넥션을 닫는다.

        이미 닫혔거나 열린 적이 없어도 안전하게 처리한다.
        """
        if self._pool is not None:
            if not self._pool.closed:
                self._pool.closeall()
            self._pool = None
