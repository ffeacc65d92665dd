"""
PostgreSQL Parallel Dump Tool - Application Configuration

애플리케이션 전역 상수 및 설정값 정의.
모든 모듈에서 참조하는 단일 설정 소스(Single Source of Truth)로 기능한다.

구성 항목:
    - 애플리케이션 메타 정보 (이름, 버전, 덤프 포맷 버전)
    - PostgreSQL 접속 기본값
    - 덤프 대상 스키마 / 병렬도 기본값
    - 데이터 페치 배치 사이즈, 출력 큐 크기
    - CSV 내보내기 설정
    - 로그 태그 및 색상 매핑
"""

# ---------------------------------------------------------------------------
# 애플리케이션 메타 정보
# DUMP_VERSION은 덤프 파일 헤더/푸터에 기록되는 포맷 버전이다.
# ---------------------------------------------------------------------------
APP_NAME     = "pgdumper"
APP_VERSION  = "0.2.1"
DUMP_VERSION = "0.2.1"

# ---------------------------------------------------------------------------
# PostgreSQL 접속 기본값
# CLI 인자와 PG* 환경변수가 모두 비어있을 때 사용된다.
# ---------------------------------------------------------------------------
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 5432
DEFAULT_USER = "postgres"
DEFAULT_DB   = "postgres"

# ---------------------------------------------------------------------------
# 덤프 대상 스키마
# 한 작업(DumpJob)은 단일 스키마만 대상으로 한다.
# ---------------------------------------------------------------------------
DEFAULT_SCHEMA = "public"

# ---------------------------------------------------------------------------
# 병렬도 기본값
# DumpJob.parallels가 0 이하로 지정되면 이 값으로 정규화된다.
# 배치(청크) 크기이자 커넥션 풀 최대 크기로 사용된다.
# ---------------------------------------------------------------------------
DEFAULT_PARALLELS = 50

# ---------------------------------------------------------------------------
# 행 데이터 페치 배치 사이즈
# TableSources.fetch_rows()에서 cursor.fetchmany()에 전달한다.
# ---------------------------------------------------------------------------
ROW_FETCH_BATCH_SIZE = 1000

# ---------------------------------------------------------------------------
# 출력 큐 최대 길이
# OutputWriter의 producer/consumer 큐 크기. 가득 차면 워커가 대기한다.
# ---------------------------------------------------------------------------
OUTPUT_QUEUE_SIZE = 256

# ---------------------------------------------------------------------------
# CSV 내보내기 설정
# 테이블별 파일명은 "<테이블명><CSV_FILE_EXTENSION>" 형식이다.
# 작성 중인 파일은 CSV_PARTIAL_SUFFIX를 붙여 두었다가 완료 시 이름을 바꾼다.
# ---------------------------------------------------------------------------
CSV_DELIMITER      = ","
CSV_FILE_EXTENSION = ".csv"
CSV_PARTIAL_SUFFIX = ".part"

# ---------------------------------------------------------------------------
# 로그 태그 상수
# 각 서비스의 로그 콜백 호출 시 첫 번째 인자로 전달한다.
# ---------------------------------------------------------------------------
LOG_TAG_INFO    = "INFO"
LOG_TAG_OK      = "OK"
LOG_TAG_ERROR   = "ERROR"
LOG_TAG_WARNING = "WARN"

# ---------------------------------------------------------------------------
# 로그 태그별 색상 매핑 (ANSI escape)
# ConsoleLog가 TTY에 출력할 때만 적용한다.
# ---------------------------------------------------------------------------
LOG_COLORS = {
    LOG_TAG_INFO:    "\033[37m",   # 연한 회색 - 일반 정보
    LOG_TAG_OK:      "\033[36m",   # 민트     - 성공
    LOG_TAG_ERROR:   "\033[31m",   # 빨간색   - 오류
    LOG_TAG_WARNING: "\033[33m",   # 주황색   - 경고
}
LOG_COLOR_RESET = "\033[0m"
