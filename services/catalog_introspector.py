"""
카탈로그 기반 DDL 재구성 서비스.

pg_catalog 시스템 카탈로그를 조회하여 객체 정의를 실행 가능한 DDL 텍스트로 변환한다.
SQL 문법을 직접 재구현하지 않고, PostgreSQL 내장 재구성 함수를 그대로 사용한다.

    - pg_get_constraintdef() : 제약조건 본문
    - pg_get_triggerdef()    : 트리거 정의
    - pg_get_viewdef()       : 뷰 정의
    - pg_get_functiondef()   : 함수/프로시저 정의
    - pg_indexes.indexdef    : 인덱스 정의
    - format('%I')           : 식별자 인용

조회 범위:
    테이블 단위 : 시퀀스, 제약조건, 인덱스, 트리거
    스키마 전체 : 뷰, 함수/프로시저

각 script_* 메서드는 하나의 읽기 쿼리를 실행하고 결과 행을 누적한 문자열 하나를 반환한다.
쿼리 실패 시 단계명과 테이블명을 담은 CatalogQueryError를 즉시 발생시킨다.

사용처:
    - TableScriptPipeline : 테이블 단위 조회
    - SchemaDumper        : 모든 배치 완료 후 뷰/함수 섹션
"""

from typing import Iterable, List, Optional, Sequence

import psycopg2

from config             import DEFAULT_SCHEMA
from models.dump_models import (
    ALL_CONSTRAINT_KINDS,
    ConstraintKind,
    ConstraintRecord,
    FunctionRecord,
    IndexRecord,
    SequenceRecord,
    TriggerRecord,
    ViewRecord,
)
from services.exceptions import CatalogQueryError


# ----------------------------------------------------------------------
# 카탈로그 쿼리
# psycopg2 파라미터 바인딩을 사용하므로 리터럴 '%'는 '%%'로 이스케이프한다.
# ----------------------------------------------------------------------

# 컬럼 기본값(pg_attrdef)이 참조하는 자동 의존(deptype='a') 시퀀스
SEQUENCES_QUERY = """
    SELECT c.relname                                              AS seq_name,
           a.attname                                              AS column_name,
           format('CREATE SEQUENCE %%I.%%I;', n.nspname, c.relname) AS create_ddl,
           format('ALTER TABLE %%I.%%I ALTER COLUMN %%I SET DEFAULT nextval(%%L::regclass);',
                  n.nspname, t.relname, a.attname,
                  format('%%I.%%I', n.nspname, c.relname))        AS default_ddl
    FROM   pg_class c
    JOIN   pg_namespace n ON n.oid = c.relnamespace
    JOIN   pg_depend d    ON d.objid = c.oid
                         AND d.deptype = 'a'
                         AND d.classid = 'pg_class'::regclass
    JOIN   pg_attrdef ad  ON ad.adrelid = d.refobjid AND ad.adnum = d.refobjsubid
    JOIN   pg_attribute a ON a.attrelid = d.refobjid AND a.attnum = d.refobjsubid
    JOIN   pg_class t     ON t.oid = d.refobjid AND t.relkind IN ('r', 'p')
    WHERE  c.relkind = 'S'
    AND    n.nspname = %s
    AND    t.relname = %s
    AND    t.relnamespace = n.oid
    ORDER  BY c.relname, a.attnum
"""

# contype 목록 순서(PK -> UNIQUE -> CHECK -> FK)대로 정렬
CONSTRAINTS_QUERY = """
    SELECT con.conname                                  AS constraint_name,
           con.contype::text                            AS constraint_type,
           pg_get_constraintdef(con.oid)                AS constraint_def,
           format('ALTER TABLE %%I.%%I ADD CONSTRAINT %%I %%s;',
                  nsp.nspname, rel.relname, con.conname,
                  pg_get_constraintdef(con.oid))        AS ddl
    FROM   pg_constraint con
    JOIN   pg_class rel     ON rel.oid = con.conrelid
    JOIN   pg_namespace nsp ON nsp.oid = rel.relnamespace
    WHERE  nsp.nspname = %s
    AND    rel.relname = %s
    AND    con.contype::text = ANY(%s)
    ORDER  BY array_position(%s::text[], con.contype::text), con.conname
"""

# PK 인덱스는 명명 규칙(*_pkey)으로 식별하여 제외
INDEXES_QUERY = """
    SELECT indexname,
           indexdef
    FROM   pg_indexes
    WHERE  schemaname = %s
    AND    tablename  = %s
    AND    indexname NOT LIKE '%%_pkey'
    ORDER  BY indexname
"""

TRIGGERS_QUERY = """
    SELECT t.tgname,
           pg_get_triggerdef(t.oid) AS trigger_def
    FROM   pg_trigger t
    JOIN   pg_class rel     ON rel.oid = t.tgrelid
    JOIN   pg_namespace nsp ON nsp.oid = rel.relnamespace
    WHERE  nsp.nspname = %s
    AND    rel.relname = %s
    AND    NOT t.tgisinternal
    ORDER  BY t.tgname
"""

VIEWS_QUERY = """
    SELECT c.relname,
           pg_get_viewdef(c.oid)                                             AS view_def,
           format('CREATE OR REPLACE VIEW %%I.%%I AS', n.nspname, c.relname) AS ddl
    FROM   pg_class c
    JOIN   pg_namespace n ON n.oid = c.relnamespace
    WHERE  c.relkind = 'v'
    AND    n.nspname = %s
    ORDER  BY c.relname
"""

# 집계/윈도우 함수(prokind 'a', 'w')는 pg_get_functiondef() 대상이 아니다.
# 확장(extension) 소속 함수는 제외한다.
FUNCTIONS_QUERY = """
    SELECT p.proname,
           pg_get_functiondef(p.oid) AS func_def
    FROM   pg_proc p
    JOIN   pg_namespace n ON n.oid = p.pronamespace
    WHERE  n.nspname = %s
    AND    p.prokind IN ('f', 'p')
    AND    NOT EXISTS (
        SELECT 1
        FROM   pg_depend d
        WHERE  d.objid   = p.oid
        AND    d.classid = 'pg_proc'::regclass
        AND    d.deptype = 'e'
    )
    ORDER  BY p.proname, p.oid
"""


class CatalogIntrospector:
    """
    단일 스키마 대상의 카탈로그 조회기.

    상태를 갖지 않으며 커넥션은 호출마다 인자로 받는다.
    여러 워커 스레드가 하나의 인스턴스를 공유해도 된다
    (각 워커는 풀에서 빌린 자신의 커넥션을 전달한다).

    내부 상태:
        _schema : 대상 스키마명
    """

    def __init__(self, schema: str = DEFAULT_SCHEMA):
        self._schema = schema

    @property
    def schema(self) -> str:
        return self._schema

    # ==================================================================
    # 시퀀스
    # ==================================================================

    def fetch_sequences(self, conn, table: str) -> List[SequenceRecord]:
        """
        테이블 컬럼이 소유한 시퀀스를 조회한다.

        pg_depend의 자동 의존(deptype='a')으로 시퀀스 -> 컬럼 연결을 추적한다.
        serial / bigserial 컬럼이 여기에 해당한다.

        @param conn   psycopg2 커넥션
        @param table  테이블명
        @returns      SequenceRecord 리스트
        @throws       CatalogQueryError 조회 실패 시
        """
        rows = self._query(conn, "sequences", table, SEQUENCES_QUERY, (self._schema, table))
        return [SequenceRecord(*row) for row in rows]

    def script_sequences(self, conn, table: str) -> str:
        """
        시퀀스 생성문과 컬럼 DEFAULT 설정문을 생성한다.

        @returns  "CREATE SEQUENCE ...;\\nALTER TABLE ... SET DEFAULT nextval(...);\\n" 반복
        """
        return "".join(
            f"{seq.create_ddl}\n{seq.default_ddl}\n"
            for seq in self.fetch_sequences(conn, table)
        )

    # ==================================================================
    # 제약조건 (PK, UNIQUE, CHECK, FK)
    # ==================================================================

    def fetch_constraints(
        self,
        conn,
        table: str,
        kinds: Sequence[ConstraintKind] = ALL_CONSTRAINT_KINDS,
    ) -> List[ConstraintRecord]:
        """
        테이블의 제약조건을 조회한다.

        kinds에 지정된 종류만, kinds 순서대로(같은 종류는 이름순) 반환한다.

        @param conn   psycopg2 커넥션
        @param table  테이블명
        @param kinds  조회할 제약조건 종류 시퀀스
        @returns      ConstraintRecord 리스트
        @throws       CatalogQueryError 조회 실패 시
        """
        codes = [kind.value for kind in kinds]
        stage = _constraint_stage(kinds)
        rows  = self._query(
            conn, stage, table, CONSTRAINTS_QUERY,
            (self._schema, table, codes, codes),
        )
        return [
            ConstraintRecord(
                name       = name,
                kind       = ConstraintKind(contype),
                definition = definition,
                ddl        = ddl,
            )
            for name, contype, definition, ddl in rows
        ]

    def script_constraints(
        self,
        conn,
        table: str,
        kinds: Sequence[ConstraintKind] = ALL_CONSTRAINT_KINDS,
    ) -> str:
        """
        ALTER TABLE ... ADD CONSTRAINT 구문을 제약조건 한 건당 한 줄씩 생성한다.

        @example
            introspector.script_constraints(conn, "customers")
            # -> "ALTER TABLE public.customers ADD CONSTRAINT customers_pkey PRIMARY KEY (id);\\n..."
        """
        return "".join(f"{con.ddl}\n" for con in self.fetch_constraints(conn, table, kinds))

    def script_primary_keys(self, conn, table: str) -> str:
        return self.script_constraints(conn, table, (ConstraintKind.PRIMARY,))

    def script_unique_constraints(self, conn, table: str) -> str:
        return self.script_constraints(conn, table, (ConstraintKind.UNIQUE,))

    def script_check_constraints(self, conn, table: str) -> str:
        return self.script_constraints(conn, table, (ConstraintKind.CHECK,))

    def script_foreign_keys(self, conn, table: str) -> str:
        return self.script_constraints(conn, table, (ConstraintKind.FOREIGN,))

    # ==================================================================
    # 인덱스
    # ==================================================================

    def fetch_indexes(self, conn, table: str) -> List[IndexRecord]:
        """
        PK 인덱스(*_pkey)를 제외한 테이블의 인덱스 정의를 조회한다.

        @throws  CatalogQueryError 조회 실패 시
        """
        rows = self._query(conn, "indexes", table, INDEXES_QUERY, (self._schema, table))
        return [IndexRecord(*row) for row in rows]

    def script_indexes(self, conn, table: str) -> str:
        return "".join(f"{idx.definition};\n" for idx in self.fetch_indexes(conn, table))

    # ==================================================================
    # 트리거
    # ==================================================================

    def fetch_triggers(self, conn, table: str) -> List[TriggerRecord]:
        """
        내부 트리거(FK 구현용 등, tgisinternal)를 제외한 트리거 정의를 조회한다.

        @throws  CatalogQueryError 조회 실패 시
        """
        rows = self._query(conn, "triggers", table, TRIGGERS_QUERY, (self._schema, table))
        return [TriggerRecord(*row) for row in rows]

    def script_triggers(self, conn, table: str) -> str:
        return "".join(f"{trg.definition};\n" for trg in self.fetch_triggers(conn, table))

    # ==================================================================
    # 뷰 (스키마 전체)
    # ==================================================================

    def fetch_views(self, conn) -> List[ViewRecord]:
        """
        스키마 내 모든 뷰 정의를 이름순으로 조회한다.

        @throws  CatalogQueryError 조회 실패 시
        """
        rows = self._query(conn, "views", None, VIEWS_QUERY, (self._schema,))
        return [ViewRecord(*row) for row in rows]

    def script_views(self, conn) -> str:
        """
        CREATE OR REPLACE VIEW 구문을 생성한다.

        pg_get_viewdef()가 돌려주는 본문 끝의 세미콜론은 정리한 뒤 다시 붙인다.
        """
        lines = []
        for view in self.fetch_views(conn):
            body = view.definition.strip().rstrip(";")
            lines.append(f"{view.ddl}\n{body};\n")
        return "\n".join(lines)

    # ==================================================================
    # 함수 / 프로시저 (스키마 전체)
    # ==================================================================

    def fetch_functions(self, conn) -> List[FunctionRecord]:
        """
        스키마 내 함수와 프로시저의 전체 정의를 조회한다.

        @throws  CatalogQueryError 조회 실패 시
        """
        rows = self._query(conn, "functions", None, FUNCTIONS_QUERY, (self._schema,))
        return [FunctionRecord(*row) for row in rows]

    def script_functions(self, conn) -> str:
        return "\n".join(
            f"{func.definition.rstrip()};\n" for func in self.fetch_functions(conn)
        )

    # ------------------------------------------------------------------
    # Private Methods
    # ------------------------------------------------------------------

    def _query(
        self,
        conn,
        stage:  str,
        table:  Optional[str],
        query:  str,
        params: Iterable,
    ) -> List[tuple]:
        """
        읽기 쿼리 하나를 실행하고 전체 결과 행을 반환한다.

        @param conn    psycopg2 커넥션
        @param stage   오류 메시지에 붙일 단계명
        @param table   오류 메시지에 붙일 테이블명 (스키마 전체 조회는 None)
        @param query   SQL 텍스트
        @param params  바인딩 파라미터
        @returns       결과 행 튜플 리스트
        @throws        CatalogQueryError psycopg2 오류 발생 시
        """
        try:
            with conn.cursor() as cur:
                cur.execute(query, tuple(params))
                return cur.fetchall()
        except psycopg2.Error as e:
            raise CatalogQueryError(stage, table, e) from e


def _constraint_stage(kinds: Sequence[ConstraintKind]) -> str:
    """단일 종류 조회면 종류별 단계명을, 아니면 "constraints"를 반환한다."""
    if len(kinds) == 1:
        return {
            ConstraintKind.PRIMARY: "primary_keys",
            ConstraintKind.UNIQUE:  "unique_constraints",
            ConstraintKind.CHECK:   "check_constraints",
            ConstraintKind.FOREIGN: "foreign_keys",
        }[kinds[0]]
    return "constraints"
