"""
테이블 생성문 / 데이터 소스 서비스.

테이블 스크립트 파이프라인의 양 끝 단계(create, data)와
CSV 내보내기의 행 데이터 페치를 담당한다.

    - create_table_statement : 컬럼 정의만 담은 CREATE TABLE 구문
                               (제약조건은 constraints 단계, 시퀀스 DEFAULT는 sequences 단계에서 추가)
    - copy_statement         : COPY ... FROM stdin; 블록 (COPY TO STDOUT 결과를 그대로 사용)
    - fetch_rows             : 헤더 행 + 서버가 텍스트로 변환한 데이터 행

테이블 참조는 format('%I.%I')로 서버가 인용한 문자열만 사용한다.
"""

import io
from typing import Iterator, List

import psycopg2

from config              import DEFAULT_SCHEMA, ROW_FETCH_BATCH_SIZE
from services.exceptions import CatalogQueryError


# relkind 'r' = 일반 테이블, 'p' = 파티션 부모 테이블
TABLE_REF_QUERY = """
    SELECT format('%%I.%%I', n.nspname, c.relname)
    FROM   pg_class c
    JOIN   pg_namespace n ON n.oid = c.relnamespace
    WHERE  n.nspname = %s
    AND    c.relname = %s
    AND    c.relkind IN ('r', 'p')
"""

# fetch_rows 전용 서버 측 커서 이름 (커넥션당 동시에 하나만 사용)
ROWS_CURSOR_NAME = "pgdumper_rows"

COLUMNS_QUERY = """
    SELECT quote_ident(a.attname)                       AS col_name,
           pg_catalog.format_type(a.atttypid, a.atttypmod) AS col_type,
           a.attnotnull                                 AS not_null,
           pg_get_expr(d.adbin, d.adrelid)              AS default_val
    FROM   pg_attribute a
    JOIN   pg_class c     ON c.oid = a.attrelid
    JOIN   pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
    WHERE  n.nspname = %s
    AND    c.relname = %s
    AND    a.attnum  > 0
    AND    NOT a.attisdropped
    ORDER  BY a.attnum
"""


class TableSources:
    """
    단일 스키마 대상의 테이블 구조/데이터 조회기.

    CatalogIntrospector와 마찬가지로 상태가 없으며 커넥션을 호출마다 받는다.
    """

    def __init__(self, schema: str = DEFAULT_SCHEMA):
        self._schema = schema

    # ==================================================================
    # create 단계
    # ==================================================================

    def create_table_statement(self, conn, table: str) -> str:
        """
        테이블의 CREATE TABLE 구문을 생성한다.

        컬럼명, 타입, NOT NULL, 시퀀스가 아닌 DEFAULT만 포함한다.
        nextval() 기본값은 sequences 단계의 ALTER ... SET DEFAULT가 담당하므로 생략한다.

        @param conn   psycopg2 커넥션
        @param table  테이블명
        @returns      "CREATE TABLE s.t (\\n    col type ...\\n);\\n"
        @throws       CatalogQueryError 테이블이 없거나 조회 실패 시

        @example
            sources.create_table_statement(conn, "customers")
            # -> 'CREATE TABLE public.customers (\\n    id integer NOT NULL,\\n    name text\\n);\\n'
        """
        try:
            with conn.cursor() as cur:
                table_ref = self._table_ref(cur, table)
                cur.execute(COLUMNS_QUERY, (self._schema, table))
                columns = cur.fetchall()
        except psycopg2.Error as e:
            raise CatalogQueryError("create", table, e) from e

        col_lines = [
            f"    {_format_column(name, col_type, not_null, default)}"
            for name, col_type, not_null, default in columns
        ]
        body = ",\n".join(col_lines)
        if body:
            return f"CREATE TABLE {table_ref} (\n{body}\n);\n"
        return f"CREATE TABLE {table_ref} ();\n"

    # ==================================================================
    # data 단계
    # ==================================================================

    def copy_statement(self, conn, table: str) -> str:
        """
        테이블 데이터를 COPY ... FROM stdin; 블록으로 생성한다.

        본문은 서버의 COPY TO STDOUT 텍스트 포맷 출력 그대로이다 (NULL은 \\N).

        @param conn   psycopg2 커넥션
        @param table  테이블명
        @returns      "COPY s.t (cols) FROM stdin;\\n<rows>\\\\.\\n" (컬럼이 없으면 빈 문자열)
        @throws       CatalogQueryError 조회 실패 시
        """
        try:
            with conn.cursor() as cur:
                table_ref = self._table_ref(cur, table)
                cur.execute(COLUMNS_QUERY, (self._schema, table))
                col_names = [row[0] for row in cur.fetchall()]
                if not col_names:
                    return ""

                cols_str = ", ".join(col_names)
                buf      = io.StringIO()
                cur.copy_expert(f"COPY {table_ref} ({cols_str}) TO STDOUT", buf)
        except psycopg2.Error as e:
            raise CatalogQueryError("data", table, e) from e

        return f"COPY {table_ref} ({cols_str}) FROM stdin;\n{buf.getvalue()}\\.\n"

    # ==================================================================
    # CSV 행 데이터
    # ==================================================================

    def fetch_rows(self, conn, table: str) -> Iterator[List[str]]:
        """
        테이블 전체 행을 헤더 행과 함께 순차적으로 반환하는 제너레이터.

        모든 컬럼을 ::text로 캐스팅해 서버의 텍스트 출력 형식을 그대로 쓴다
        (json은 JSON 텍스트, bytea는 \\x 16진수, boolean은 t/f, 배열은 {a,b}).
        NULL은 빈 문자열로 변환한다.

        행은 이름 있는(서버 측) 커서로 ROW_FETCH_BATCH_SIZE 단위로 가져온다.
        커넥션이 autocommit이므로 커서는 WITH HOLD로 선언한다.

        @param conn   psycopg2 커넥션
        @param table  테이블명
        @returns      첫 원소가 컬럼명 리스트인 행 이터레이터
        @throws       CatalogQueryError 조회 실패 시 (이터레이션 도중 발생할 수 있음)

        @example
            rows = sources.fetch_rows(conn, "docs")
            next(rows)   # -> ['id', 'body', 'payload', 'active', 'tags']
            next(rows)   # -> ['1', '{"a": "x"}', '\\\\x0102', 't', '{p,q}']
        """
        try:
            with conn.cursor() as cur:
                table_ref = self._table_ref(cur, table)
                cur.execute(COLUMNS_QUERY, (self._schema, table))
                col_names = [row[0] for row in cur.fetchall()]

            if not col_names:
                yield []
                return

            select_list = ", ".join(f"{name}::text AS {name}" for name in col_names)
            with conn.cursor(name=ROWS_CURSOR_NAME, withhold=True) as cur:
                cur.execute(f"SELECT {select_list} FROM {table_ref}")

                # 이름 있는 커서의 description은 첫 FETCH 이후에 채워진다
                rows = cur.fetchmany(ROW_FETCH_BATCH_SIZE)
                yield [col[0] for col in cur.description]

                while rows:
                    for row in rows:
                        yield ["" if v is None else v for v in row]
                    rows = cur.fetchmany(ROW_FETCH_BATCH_SIZE)
        except psycopg2.Error as e:
            raise CatalogQueryError("rows", table, e) from e

    # ------------------------------------------------------------------
    # Private Methods
    # ------------------------------------------------------------------

    def _table_ref(self, cur, table: str) -> str:
        """
        서버가 인용한 "schema.table" 참조 문자열을 조회한다.

        @throws  psycopg2.ProgrammingError 대상 테이블이 없을 때
        """
        cur.execute(TABLE_REF_QUERY, (self._schema, table))
        row = cur.fetchone()
        if row is None:
            raise psycopg2.ProgrammingError(
                f'relation "{self._schema}.{table}" does not exist'
            )
        return row[0]


def _format_column(name: str, col_type: str, not_null: bool, default) -> str:
    """
    컬럼 한 개를 "name type [DEFAULT expr] [NOT NULL]" 형식으로 변환한다.

    nextval( 로 시작하는 기본값은 제외한다.
    """
    parts = [name, col_type]
    if default is not None and not default.startswith("nextval("):
        parts.append(f"DEFAULT {default}")
    if not_null:
        parts.append("NOT NULL")
    return " ".join(parts)

