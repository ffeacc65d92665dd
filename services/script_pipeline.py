"""
테이블 스크립트 파이프라인.

한 테이블에 대해 고정 순서의 단계를 실행하여 TableScript를 조립한다.

    create -> sequences -> constraints -> indexes -> triggers -> data

split_constraints=True이면 constraints 단계가
primary_keys -> unique_constraints -> check_constraints -> foreign_keys 네 단계로 나뉜다.
include_data=False이면 data 단계를 생략한다.

첫 단계 실패에서 즉시 중단(fail-fast)하며, 일부 조각만 담은 스크립트는 만들지 않는다.
"""

from typing import Callable, List, Tuple

from models.dump_models           import ScriptFragment, TableScript
from services.catalog_introspector import CatalogIntrospector
from services.table_sources       import TableSources


# (단계명, 단계 함수) - 단계 함수는 (conn, table) -> str
Stage = Tuple[str, Callable]


class TableScriptPipeline:
    """
    테이블 단위 스크립트 생성기.

    단계 목록은 생성 시 한 번 결정되며, 인스턴스는 워커 스레드 간에 공유된다.

    내부 상태:
        _introspector : 카탈로그 조회기
        _sources      : CREATE TABLE / COPY 생성기
        _stages       : 실행 순서대로 나열된 (단계명, 함수) 리스트
    """

    def __init__(
        self,
        introspector:      CatalogIntrospector,
        sources:           TableSources,
        include_data:      bool = True,
        split_constraints: bool = False,
    ):
        self._introspector = introspector
        self._sources      = sources
        self._stages       = self._build_stages(include_data, split_constraints)

    @property
    def stage_names(self) -> List[str]:
        return [name for name, _ in self._stages]

    def build(self, conn, table: str) -> TableScript:
        """
        모든 단계를 순서대로 실행하여 TableScript를 생성한다.

        @param conn   워커가 빌린 psycopg2 커넥션
        @param table  테이블명
        @returns      전체 조각을 담은 TableScript
        @throws       CatalogQueryError 어느 단계든 실패 시 (이후 단계는 실행하지 않음)

        @example
            script = pipeline.build(conn, "orders")
            writer.submit(ticket, script.render())
        """
        fragments = [
            ScriptFragment(name, stage(conn, table))
            for name, stage in self._stages
        ]
        return TableScript(
            table     = table,
            fragments = fragments,
            schema    = self._introspector.schema,
        )

    # ------------------------------------------------------------------
    # Private Methods
    # ------------------------------------------------------------------

    def _build_stages(self, include_data: bool, split_constraints: bool) -> List[Stage]:
        introspector = self._introspector

        stages: List[Stage] = [
            ("create",    self._sources.create_table_statement),
            ("sequences", introspector.script_sequences),
        ]
        if split_constraints:
            stages += [
                ("primary_keys",       introspector.script_primary_keys),
                ("unique_constraints", introspector.script_unique_constraints),
                ("check_constraints",  introspector.script_check_constraints),
                ("foreign_keys",       introspector.script_foreign_keys),
            ]
        else:
            stages.append(("constraints", introspector.script_constraints))
        stages += [
            ("indexes",  introspector.script_indexes),
            ("triggers", introspector.script_triggers),
        ]
        if include_data:
            stages.append(("data", self._sources.copy_statement))
        return stages
