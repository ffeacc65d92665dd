"""
PostgreSQL 접속 정보 데이터 모델.

하나의 PostgreSQL 서버 접속에 필요한 파라미터를 캡슐화한다.
커넥션 풀 생성, 로그 표시, 접속 문자열 파싱 등 여러 계층에서 공통으로 사용한다.

사용처:
    - ConnectionService : ThreadedConnectionPool 생성 시 DSN 파라미터 제공
    - DumpJob           : 작업 단위 접속 정보 보관
    - main              : CLI 인자 / PG* 환경변수 / 접속 문자열 -> ConnectionInfo 변환
"""

from dataclasses import dataclass
from typing      import Optional

import psycopg2.extensions

from config import DEFAULT_DB, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_USER


@dataclass(frozen=True)
class ConnectionInfo:
    """
    PostgreSQL 서버 접속에 필요한 정보를 캡슐화한다.

    불변 값 객체(Value Object)로, 필드 값 기반 동등성 비교가 가능하다.

    @param host      서버 IP 주소 또는 도메인명 (예: "192.168.0.100", "localhost")
    @param port      서버 포트 번호 (PostgreSQL 기본값: 5432)
    @param user      접속 사용자명
    @param password  접속 비밀번호
    @param dbname    접속 대상 데이터베이스명
    @param sslmode   libpq sslmode (빈 문자열이면 libpq 기본값 사용)

    @example
        info = ConnectionInfo(host="10.0.0.1", user="admin", password="pw", dbname="shop")
        pool = ThreadedConnectionPool(1, 8, **info.dsn)
    """
    host:     str = DEFAULT_HOST
    port:     int = DEFAULT_PORT
    user:     str = DEFAULT_USER
    password: str = ""
    dbname:   str = DEFAULT_DB
    sslmode:  str = ""

    @property
    def display_name(self) -> str:
        """
        로그에 표시할 접속 식별 문자열을 반환한다. 비밀번호는 포함하지 않는다.

        @returns "user@host:port/dbname" 형식 문자열
        """
        return f"{self.user}@{self.host}:{self.port}/{self.dbname}"

    @property
    def dsn(self) -> dict:
        """
        psycopg2.connect() / 커넥션 풀에 키워드 인자로 전달할 딕셔너리를 반환한다.

        sslmode가 비어있으면 키 자체를 제외하여 libpq 기본 동작을 따른다.

        @returns {"host", "port", "user", "password", "dbname"[, "sslmode"]}
        """
        params = {
            "host":     self.host,
            "port":     self.port,
            "user":     self.user,
            "password": self.password,
            "dbname":   self.dbname,
        }
        if self.sslmode:
            params["sslmode"] = self.sslmode
        return params

    @classmethod
    def from_dict(cls, data: dict) -> "ConnectionInfo":
        """
        딕셔너리로부터 ConnectionInfo 인스턴스를 생성한다.

        누락되거나 빈 값에 대해서는 config의 기본값을 적용한다.

        @param data  접속 정보 딕셔너리
        @returns     ConnectionInfo 인스턴스
        """
        return cls(
            host     = data.get("host") or DEFAULT_HOST,
            port     = int(data.get("port") or DEFAULT_PORT),
            user     = data.get("user") or DEFAULT_USER,
            password = data.get("password") or "",
            dbname   = data.get("dbname") or DEFAULT_DB,
            sslmode  = data.get("sslmode") or "",
        )

    @classmethod
    def from_connection_string(
        cls,
        conn_str: str,
        defaults: Optional[dict] = None,
    ) -> "ConnectionInfo":
        """
        libpq 접속 문자열을 파싱하여 ConnectionInfo를 생성한다.

        "host=... dbname=..." 키-값 형식과 "postgresql://user:pw@host:port/db"
        URI 형식을 모두 지원한다. 파싱은 psycopg2.extensions.parse_dsn()에 위임한다.

        @param conn_str  접속 문자열
        @param defaults  접속 문자열에 없는 항목에 적용할 값 (CLI 인자 등)
        @returns         ConnectionInfo 인스턴스
        @throws          psycopg2.ProgrammingError 잘못된 접속 문자열

        @example
            info = ConnectionInfo.from_connection_string("postgresql://pg:pw@db:5433/shop")
            # info.port == 5433, info.dbname == "shop"
        """
        data = dict(defaults or {})
        data.update(psycopg2.extensions.parse_dsn(conn_str))
        return cls.from_dict(data)
