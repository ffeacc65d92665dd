"""
models 패키지.

데이터 전송 객체(Data Transfer Object) 및 도메인 모델을 정의한다.
    - ConnectionInfo : 접속 정보
    - dump_models    : 덤프 작업 설정, 카탈로그 레코드, 스크립트 조각, 결과 객체

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from models import ConnectionInfo, DumpJob
"""

from models.connection_info import ConnectionInfo
from models.dump_models     import (
    ALL_CONSTRAINT_KINDS,
    ConstraintKind,
    ConstraintRecord,
    DumpFailure,
    DumpJob,
    DumpMetadata,
    DumpResult,
    ErrorPolicy,
    ExportedTable,
    ExportResult,
    FunctionRecord,
    IndexRecord,
    OutputOrder,
    ScriptFragment,
    SequenceRecord,
    TableFilterOptions,
    TableScript,
    TriggerRecord,
    ViewRecord,
)

__all__ = [
    "ALL_CONSTRAINT_KINDS",
    "ConnectionInfo",
    "ConstraintKind",
    "ConstraintRecord",
    "DumpFailure",
    "DumpJob",
    "DumpMetadata",
    "DumpResult",
    "ErrorPolicy",
    "ExportedTable",
    "ExportResult",
    "FunctionRecord",
    "IndexRecord",
    "OutputOrder",
    "ScriptFragment",
    "SequenceRecord",
    "TableFilterOptions",
    "TableScript",
    "TriggerRecord",
    "ViewRecord",
]
