"""
services 패키지.

PostgreSQL 접속 풀, 카탈로그 조회, 테이블 스크립트 생성,
병렬 스키마 덤프, CSV 내보내기 등 비즈니스 로직을 담당하는 서비스를 제공한다.

DB 조회 서비스(CatalogIntrospector, TableSources)는 상태가 없으며
커넥션을 호출마다 인자로 받는다. 커넥션은 ConnectionService의 풀에서 빌린다.

외부 모듈에서는 패키지 레벨 임포트를 사용한다:
    from services import SchemaDumper, CsvExporter
"""

from services.catalog_introspector import CatalogIntrospector
from services.chunker              import chunk_tables
from services.connection_service   import ConnectionService
from services.csv_exporter         import CsvExporter
from services.exceptions           import (
    CatalogQueryError,
    DumpError,
    ExportAbortedError,
    OutputWriteError,
    TableDumpError,
    TaskCancelled,
)
from services.output_writer        import OutputWriter
from services.schema_dumper        import SchemaDumper
from services.script_pipeline      import TableScriptPipeline
from services.table_sources        import TableSources
from services.worker_pool          import BatchOutcome, BoundedWorkerPool, TaskFailure

__all__ = [
    "BatchOutcome",
    "BoundedWorkerPool",
    "CatalogIntrospector",
    "CatalogQueryError",
    "ConnectionService",
    "CsvExporter",
    "DumpError",
    "ExportAbortedError",
    "OutputWriteError",
    "OutputWriter",
    "SchemaDumper",
    "TableDumpError",
    "TableScriptPipeline",
    "TableSources",
    "TaskCancelled",
    "TaskFailure",
    "chunk_tables",
]
