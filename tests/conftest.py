"""
테스트 공용 fixture.

실제 PostgreSQL 없이 서비스 계층을 검증하기 위해
psycopg2 커넥션 / 커서 / ThreadedConnectionPool의 인메모리 대역을 제공한다.

FakeCatalog는 서비스 모듈의 쿼리 상수를 키로 응답을 돌려주며,
단계별 실패 주입과 테이블별 지연(완료 순서 뒤섞기)을 지원한다.
"""

import json
import re
import threading
import time
from decimal import Decimal

import psycopg2
import psycopg2.pool
import pytest

from models                        import ConnectionInfo, DumpJob
from services                      import catalog_introspector as ci
from services                      import connection_service as cs
from services                      import table_sources as ts
from services.connection_service   import ConnectionService


class FakeCursor:
    def __init__(self, conn):
        self._conn       = conn
        self._rows       = []
        self.description = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, query, params=None):
        self._conn.executed.append((query, params))
        result = self._conn.catalog.respond(query, params)
        if isinstance(result, tuple):
            columns, rows    = result
            self.description = [(name,) for name in columns]
        else:
            rows             = result
            self.description = None
        self._rows = list(rows)

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def fetchone(self):
        if not self._rows:
            return None
        return self._rows.pop(0)

    def fetchmany(self, size):
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def copy_expert(self, sql, file):
        self._conn.executed.append((sql, None))
        file.write(self._conn.catalog.copy_out(sql))


class FakeConnection:
    def __init__(self, catalog):
        self.catalog  = catalog
        self.executed = []
        self.cursors  = []
        self.session  = {}
        self.closed   = 0

    def cursor(self, name=None, withhold=False):
        self.cursors.append((name, withhold))
        return FakeCursor(self)

    def set_session(self, **kwargs):
        self.session.update(kwargs)

    def close(self):
        self.closed = 1


class FakePool:
    """ThreadedConnectionPool 대역. 동시 대여 수의 최대값을 기록한다."""

    def __init__(self, catalog, minconn, maxconn):
        self.catalog     = catalog
        self.minconn     = minconn
        self.maxconn     = maxconn
        self.closed      = False
        self.in_use      = 0
        self.max_in_use  = 0
        self.connections = []
        self._lock       = threading.Lock()

    def getconn(self):
        with self._lock:
            if self.in_use >= self.maxconn:
                raise psycopg2.pool.PoolError("connection pool exhausted")
            self.in_use    += 1
            self.max_in_use = max(self.max_in_use, self.in_use)
            conn = FakeConnection(self.catalog)
            self.connections.append(conn)
            return conn

    def putconn(self, conn, close=False):
        with self._lock:
            self.in_use -= 1

    def closeall(self):
        self.closed = True


def _pg_text(value):
    """값을 PostgreSQL ::text 출력 형식으로 변환한다."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "t" if value else "f"
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, (bytes, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, list):
        return "{" + ",".join(_pg_text(v) for v in value) + "}"
    return str(value)


def _like_to_regex(pattern):
    return "^" + re.escape(pattern).replace("%", ".*").replace("_", ".") + "$"


class FakeCatalog:
    """
    단일 스키마 카탈로그의 인메모리 모형.

    tables[name] = {
        "columns":     [(name, type, not_null, default)],
        "rows":        [tuple, ...],
        "sequences":   [(seq_name, column)],
        "constraints": [(name, contype, definition)],
        "indexes":     [(name, indexdef)],
        "triggers":    [(name, triggerdef)],
    }
    """

    def __init__(self, schema="public"):
        self.schema         = schema
        self.server_version = "15.4"
        self.tables         = {}
        self.views          = []
        self.functions      = []
        self.failures       = {}
        self.delays         = {}
        self.queried        = []
        self._lock          = threading.Lock()

    def add_table(self, name, columns, rows=(), sequences=(), constraints=(), indexes=(), triggers=()):
        self.tables[name] = {
            "columns":     list(columns),
            "rows":        list(rows),
            "sequences":   list(sequences),
            "constraints": list(constraints),
            "indexes":     list(indexes),
            "triggers":    list(triggers),
        }

    def fail(self, stage, table=None, error=None):
        self.failures[(stage, table)] = error or psycopg2.OperationalError(f"{stage} failed")

    # ------------------------------------------------------------------

    def _check(self, stage, table=None):
        with self._lock:
            self.queried.append((stage, table))
        delay = self.delays.get(table)
        if delay and stage == "columns":
            time.sleep(delay)
        error = self.failures.get((stage, table))
        if error is not None:
            raise error

    def _ref(self, table):
        return f"{self.schema}.{table}"

    def respond(self, query, params):
        if query == "SHOW server_version":
            self._check("server_version")
            return [(self.server_version,)]

        if query in (cs.TABLES_QUERY, cs.TABLES_LIKE_QUERY):
            self._check("tables")
            names = sorted(self.tables)
            if query == cs.TABLES_LIKE_QUERY:
                regex = _like_to_regex(params[1])
                names = [n for n in names if re.match(regex, n)]
            return [(n,) for n in names]

        if query == ts.TABLE_REF_QUERY:
            table = params[1]
            self._check("table_ref", table)
            return [(self._ref(table),)] if table in self.tables else []

        if query == ts.COLUMNS_QUERY:
            table = params[1]
            self._check("columns", table)
            return list(self.tables[table]["columns"])

        if query.startswith("SELECT ") and " FROM " in query:
            select_list, ref = query[len("SELECT "):].rsplit(" FROM ", 1)
            table = ref.split(".", 1)[1]
            self._check("rows", table)
            # "col::text AS col" 항목만 서버 텍스트 표현으로 변환
            items   = [item.split(" AS ") for item in select_list.split(", ")]
            columns = [alias.strip('"') for _, alias in items]
            rows    = [
                tuple(
                    _pg_text(value) if expr.endswith("::text") else value
                    for (expr, _), value in zip(items, row)
                )
                for row in self.tables[table]["rows"]
            ]
            return (columns, rows)

        if query == ci.SEQUENCES_QUERY:
            table = params[1]
            self._check("sequences", table)
            return [
                (
                    seq,
                    column,
                    f"CREATE SEQUENCE {self._ref(seq)};",
                    f"ALTER TABLE {self._ref(table)} ALTER COLUMN {column} "
                    f"SET DEFAULT nextval('{self._ref(seq)}'::regclass);",
                )
                for seq, column in self.tables[table]["sequences"]
            ]

        if query == ci.CONSTRAINTS_QUERY:
            table, codes = params[1], params[2]
            self._check("constraints", table)
            matched = [c for c in self.tables[table]["constraints"] if c[1] in codes]
            matched.sort(key=lambda c: (codes.index(c[1]), c[0]))
            return [
                (name, contype, definition,
                 f"ALTER TABLE {self._ref(table)} ADD CONSTRAINT {name} {definition};")
                for name, contype, definition in matched
            ]

        if query == ci.INDEXES_QUERY:
            table = params[1]
            self._check("indexes", table)
            return [
                (name, definition)
                for name, definition in sorted(self.tables[table]["indexes"])
                if not re.match(_like_to_regex("%_pkey"), name)
            ]

        if query == ci.TRIGGERS_QUERY:
            table = params[1]
            self._check("triggers", table)
            return sorted(self.tables[table]["triggers"])

        if query == ci.VIEWS_QUERY:
            self._check("views")
            return [
                (name, definition, f"CREATE OR REPLACE VIEW {self._ref(name)} AS")
                for name, definition in self.views
            ]

        if query == ci.FUNCTIONS_QUERY:
            self._check("functions")
            return list(self.functions)

        raise AssertionError(f"unexpected query: {query!r}")

    def copy_out(self, sql):
        # "COPY public.t (cols) TO STDOUT"
        ref   = sql.split(" ")[1]
        table = ref.split(".", 1)[1]
        self._check("copy", table)
        lines = []
        for row in self.tables[table]["rows"]:
            lines.append("\t".join("\\N" if v is None else str(v) for v in row) + "\n")
        return "".join(lines)


def build_shop_catalog():
    """customers / orders 두 테이블과 뷰 1개, 함수 1개로 구성된 예제 스키마."""
    catalog = FakeCatalog()
    catalog.add_table(
        "customers",
        columns=[
            ("id",    "integer", True,  "nextval('customers_id_seq'::regclass)"),
            ("name",  "text",    True,  None),
            ("email", "text",    False, None),
        ],
        rows=[(1, "Ann", "ann@example.com"), (2, "Bob", None)],
        sequences=[("customers_id_seq", "id")],
        constraints=[
            ("customers_pkey",     "p", "PRIMARY KEY (id)"),
            ("customers_name_key", "u", "UNIQUE (name)"),
        ],
        indexes=[
            ("customers_pkey",     "CREATE UNIQUE INDEX customers_pkey ON public.customers USING btree (id)"),
            ("idx_customers_name", "CREATE INDEX idx_customers_name ON public.customers USING btree (name)"),
        ],
    )
    catalog.add_table(
        "orders",
        columns=[
            ("id",          "integer",       True,  "nextval('orders_id_seq'::regclass)"),
            ("customer_id", "integer",       True,  None),
            ("total",       "numeric(10,2)", False, "0"),
        ],
        rows=[(10, 1, Decimal("9.50"))],
        sequences=[("orders_id_seq", "id")],
        constraints=[
            ("orders_customer_id_fkey", "f", "FOREIGN KEY (customer_id) REFERENCES public.customers(id)"),
            ("orders_pkey",             "p", "PRIMARY KEY (id)"),
            ("orders_total_check",      "c", "CHECK ((total >= (0)::numeric))"),
        ],
        indexes=[
            ("orders_pkey",         "CREATE UNIQUE INDEX orders_pkey ON public.orders USING btree (id)"),
            ("idx_orders_customer", "CREATE INDEX idx_orders_customer ON public.orders USING btree (customer_id)"),
        ],
        triggers=[
            ("orders_audit",
             "CREATE TRIGGER orders_audit AFTER INSERT ON public.orders "
             "FOR EACH ROW EXECUTE FUNCTION public.audit()"),
        ],
    )
    catalog.views = [
        ("order_totals", " SELECT customer_id,\n    sum(total) AS total\n   FROM orders\n  GROUP BY customer_id;"),
    ]
    catalog.functions = [
        ("audit",
         "CREATE OR REPLACE FUNCTION public.audit()\n RETURNS trigger\n LANGUAGE plpgsql\n"
         "AS $function$\nBEGIN\n  RETURN NEW;\nEND;\n$function$\n"),
    ]
    return catalog


def build_numbered_catalog(count):
    """t00 ~ t{count-1} 형태의 단순 테이블 count개."""
    catalog = FakeCatalog()
    for i in range(count):
        catalog.add_table(
            f"t{i:02d}",
            columns=[("id", "integer", True, None)],
            rows=[(i,)],
            constraints=[(f"t{i:02d}_pkey", "p", "PRIMARY KEY (id)")],
        )
    return catalog


class PoolRecorder:
    """ConnectionService에 주입하는 pool_factory. 생성된 풀을 보관한다."""

    def __init__(self, catalog, error=None):
        self.catalog = catalog
        self.error   = error
        self.pools   = []

    def __call__(self, minconn, maxconn, **dsn):
        if self.error is not None:
            raise self.error
        pool = FakePool(self.catalog, minconn, maxconn)
        self.pools.append(pool)
        return pool

    @property
    def pool(self):
        return self.pools[-1]


@pytest.fixture
def shop_catalog():
    return build_shop_catalog()


@pytest.fixture
def conn(shop_catalog):
    return FakeConnection(shop_catalog)


@pytest.fixture
def connection_info():
    return ConnectionInfo(host="db.local", user="tester", password="secret", dbname="shop")


@pytest.fixture
def make_service(connection_info):
    def factory(catalog, max_connections=4, error=None):
        recorder = PoolRecorder(catalog, error)
        service  = ConnectionService(connection_info, max_connections, pool_factory=recorder)
        return service, recorder
    return factory


@pytest.fixture
def make_job(connection_info):
    def factory(**kwargs):
        return DumpJob(connection=connection_info, **kwargs)
    return factory


class LogRecorder:
    """서비스 log 콜백 대역."""

    def __init__(self):
        self.entries = []
        self._lock   = threading.Lock()

    def __call__(self, tag, message):
        with self._lock:
            self.entries.append((tag, message))

    def tagged(self, tag):
        return [message for t, message in self.entries if t == tag]


@pytest.fixture
def log():
    return LogRecorder()


@pytest.fixture
def numbered_catalog():
    return build_numbered_catalog


@pytest.fixture
def connect():
    """카탈로그를 받아 FakeConnection을 만드는 팩토리."""
    return FakeConnection
