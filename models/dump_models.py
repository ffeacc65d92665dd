"""
덤프 작업 데이터 모델.

작업 설정(DumpJob), 테이블 필터 옵션, 카탈로그 조회 결과 레코드,
테이블 스크립트 조각, 덤프 메타데이터, 실행 결과 객체를 정의한다.

사용처:
    - SchemaDumper / CsvExporter : DumpJob을 받아 작업을 수행하고 결과 객체를 반환
    - CatalogIntrospector        : *Record 객체 생성
    - TableScriptPipeline        : ScriptFragment / TableScript 조립
    - metadata_writer            : DumpMetadata를 헤더/푸터로 출력
"""

import datetime
from dataclasses import dataclass, field
from enum        import Enum
from typing      import List, Optional

from config                 import DEFAULT_PARALLELS, DEFAULT_SCHEMA, DUMP_VERSION
from models.connection_info import ConnectionInfo


class ErrorPolicy(Enum):
    """
    배치 내 작업 실패 시 처리 정책.

    CONTINUE : 실패를 수집하고 나머지 작업과 다음 배치를 계속 진행
    ABORT    : 첫 실패 시 같은 배치의 나머지 작업을 취소하고 전체 작업 중단
    """
    CONTINUE = "continue"
    ABORT    = "abort"


class OutputOrder(Enum):
    """
    스키마 덤프 출력에서 테이블 블록의 순서 정책.

    COMPLETION : 워커가 완료한 순서대로 기록
    SUBMISSION : 테이블 목록(입력) 순서대로 기록
    """
    COMPLETION = "completion"
    SUBMISSION = "submission"


class ConstraintKind(Enum):
    """pg_constraint.contype 값과 1:1 대응하는 제약조건 종류."""
    PRIMARY = "p"
    UNIQUE  = "u"
    CHECK   = "c"
    FOREIGN = "f"


# 제약조건 스크립트 출력 순서 (PK -> UNIQUE -> CHECK -> FK)
ALL_CONSTRAINT_KINDS = (
    ConstraintKind.PRIMARY,
    ConstraintKind.UNIQUE,
    ConstraintKind.CHECK,
    ConstraintKind.FOREIGN,
)


@dataclass(frozen=True)
class DumpJob:
    """
    덤프 작업 설정.

    호출자가 작업 수명 동안 소유하며 생성 후 변경되지 않는다.
    parallels가 0 이하이면 config.DEFAULT_PARALLELS로 정규화된다.

    @param connection         접속 정보
    @param parallels          배치 크기 = 동시 실행 워커 상한
    @param dump_version       헤더/푸터에 기록할 덤프 포맷 버전
    @param schema             대상 스키마 (단일)
    @param include_data       테이블 블록에 COPY 데이터 포함 여부
    @param split_constraints  제약조건을 종류별(PK/UNIQUE/CHECK/FK) 단계로 분리할지 여부
    @param output_order       테이블 블록 출력 순서 정책
    @param on_table_error     테이블 단위 실패 처리 정책
    """
    connection:        ConnectionInfo
    parallels:         int         = DEFAULT_PARALLELS
    dump_version:      str         = DUMP_VERSION
    schema:            str         = DEFAULT_SCHEMA
    include_data:      bool        = True
    split_constraints: bool        = False
    output_order:      OutputOrder = OutputOrder.COMPLETION
    on_table_error:    ErrorPolicy = ErrorPolicy.CONTINUE

    def __post_init__(self):
        if self.parallels <= 0:
            object.__setattr__(self, "parallels", DEFAULT_PARALLELS)


@dataclass
class TableFilterOptions:
    """
    테이블 목록 필터 옵션.

    @param tables          포함할 테이블명 리스트 (비어있으면 전체)
    @param exclude_tables  제외할 테이블명 리스트
    @param pattern         테이블명 LIKE 패턴 (예: "order%")
    """
    tables:         List[str]     = field(default_factory=list)
    exclude_tables: List[str]     = field(default_factory=list)
    pattern:        Optional[str] = None


# ----------------------------------------------------------------------
# 카탈로그 조회 결과 레코드
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class SequenceRecord:
    name:        str
    column:      str
    create_ddl:  str
    default_ddl: str


@dataclass(frozen=True)
class ConstraintRecord:
    """
    제약조건 한 건.

    definition은 pg_get_constraintdef()가 재구성한 본문이며,
    ddl은 이를 감싼 ALTER TABLE ... ADD CONSTRAINT 구문이다.
    """
    name:       str
    kind:       ConstraintKind
    definition: str
    ddl:        str


@dataclass(frozen=True)
class IndexRecord:
    name:       str
    definition: str


@dataclass(frozen=True)
class TriggerRecord:
    name:       str
    definition: str


@dataclass(frozen=True)
class ViewRecord:
    name:       str
    definition: str
    ddl:        str


@dataclass(frozen=True)
class FunctionRecord:
    name:       str
    definition: str


# ----------------------------------------------------------------------
# 테이블 스크립트
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ScriptFragment:
    """테이블 스크립트를 구성하는 이름 붙은 DDL 조각 (create, sequences, ...)."""
    name: str
    text: str


@dataclass
class TableScript:
    """
    한 테이블의 전체 스크립트.

    파이프라인이 모든 조각을 만든 뒤에만 생성되므로
    출력에는 전체가 기록되거나 전혀 기록되지 않는다.
    """
    table:     str
    fragments: List[ScriptFragment]
    schema:    str = DEFAULT_SCHEMA

    def render(self) -> str:
        """
        조각을 고정 순서대로 이어 붙인 텍스트를 반환한다.

        빈 조각은 건너뛰고, 각 조각 뒤에는 빈 줄 하나를 둔다.

        @returns  "-- Table: schema.table" 주석으로 시작하는 스크립트 블록
        """
        parts = [f"-- Table: {self.schema}.{self.table}\n"]
        for fragment in self.fragments:
            text = fragment.text.rstrip("\n")
            if text:
                parts.append(f"{text}\n\n")
        return "".join(parts)


# ----------------------------------------------------------------------
# 메타데이터 / 결과
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class DumpMetadata:
    """
    작업당 한 번 계산되어 출력 양 끝(헤더, 푸터)에 기록되는 메타데이터.
    """
    dump_version:   str
    server_version: str
    complete_time:  str
    threads_number: int

    @classmethod
    def create(cls, job: DumpJob, server_version: str) -> "DumpMetadata":
        """
        작업 설정과 서버 버전으로 메타데이터를 생성한다.

        @param job             덤프 작업 설정
        @param server_version  SHOW server_version 결과
        @returns               DumpMetadata (complete_time은 생성 시각, 로컬 타임존 포함)
        """
        now = datetime.datetime.now().astimezone()
        return cls(
            dump_version   = job.dump_version,
            server_version = server_version,
            complete_time  = now.strftime("%Y-%m-%d %H:%M:%S %z %Z"),
            threads_number = job.parallels,
        )


@dataclass(frozen=True)
class DumpFailure:
    """
    덤프 중 발생한 비치명적 실패 한 건.

    @param target  실패 대상 (테이블명 또는 "views" / "functions")
    @param stage   실패한 단계명
    @param error   원인 예외
    """
    target: str
    stage:  str
    error:  BaseException

    def __str__(self) -> str:
        return f"{self.target} [{self.stage}]: {self.error}"


@dataclass
class DumpResult:
    """
    SchemaDumper.dump_schema() 실행 결과 요약.

    failures는 CONTINUE 정책에서 건너뛴 테이블/섹션의 목록이다.
    """
    output:         str               = ""
    tables:         List[str]         = field(default_factory=list)
    written_tables: List[str]         = field(default_factory=list)
    failures:       List[DumpFailure] = field(default_factory=list)
    elapsed_sec:    float             = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def summary(self) -> str:
        """
        @returns "테이블 N개 (성공 N / 실패 N) | 소요시간 N.Ns" 형식
        """
        failed = sum(1 for f in self.failures if f.target in self.tables)
        return (
            f"테이블 {len(self.tables)}개 "
            f"(성공 {len(self.written_tables)} / 실패 {failed}) | "
            f"소요시간 {self.elapsed_sec:.1f}s"
        )


@dataclass(frozen=True)
class ExportedTable:
    table:     str
    path:      str
    row_count: int


@dataclass
class ExportResult:
    """CsvExporter.dump_data_to_directory() 실행 결과 요약."""
    output_dir:    str                 = ""
    metadata_file: str                 = ""
    tables:        List[str]           = field(default_factory=list)
    exported:      List[ExportedTable] = field(default_factory=list)
    failures:      List[DumpFailure]   = field(default_factory=list)
    elapsed_sec:   float               = 0.0

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def summary(self) -> str:
        rows = sum(t.row_count for t in self.exported)
        return (
            f"테이블 {len(self.tables)}개 "
            f"(내보냄 {len(self.exported)} / 실패 {len(self.failures)}) | "
            f"행 {rows}건 | 소요시간 {self.elapsed_sec:.1f}s"
        )
