import psycopg2
import pytest

from models.dump_models  import TableFilterOptions
from services.exceptions import DumpError


def test_open_passes_dsn_and_bounds(make_service, shop_catalog, connection_info):
    captured = {}

    service, recorder = make_service(shop_catalog, max_connections=6)

    def factory(minconn, maxconn, **dsn):
        captured.update(minconn=minconn, maxconn=maxconn, dsn=dsn)
        return recorder(minconn, maxconn, **dsn)

    service._pool_factory = factory
    service.open()

    assert captured == {"minconn": 1, "maxconn": 6, "dsn": connection_info.dsn}
    assert service.is_open
    service.close()
    assert not service.is_open


def test_connection_is_readonly_autocommit_and_returned(make_service, shop_catalog):
    service, recorder = make_service(shop_catalog)
    with service:
        with service.connection() as conn:
            assert conn.session == {"readonly": True, "autocommit": True}
            assert recorder.pool.in_use == 1
        assert recorder.pool.in_use == 0
    assert recorder.pool.closed


def test_connection_requires_open_pool(make_service, shop_catalog):
    service, _ = make_service(shop_catalog)
    with pytest.raises(DumpError, match="접속되어 있지 않습니다"):
        with service.connection():
            pass


def test_open_failure(make_service, shop_catalog):
    service, _ = make_service(shop_catalog, error=psycopg2.OperationalError("no route"))
    with pytest.raises(DumpError, match="no route"):
        service.open()
    assert not service.is_open


def test_server_version(make_service, shop_catalog):
    service, _ = make_service(shop_catalog)
    with service:
        assert service.server_version() == "15.4"


@pytest.mark.parametrize("options, expected", [
    (None,                                              ["customers", "orders"]),
    (TableFilterOptions(tables=["orders"]),             ["orders"]),
    (TableFilterOptions(exclude_tables=["orders"]),     ["customers"]),
    (TableFilterOptions(pattern="ord%"),                ["orders"]),
    (TableFilterOptions(tables=["orders"], exclude_tables=["orders"]), []),
])
def test_get_tables_filters(make_service, shop_catalog, options, expected):
    service, _ = make_service(shop_catalog)
    with service:
        assert service.get_tables(options) == expected


def test_get_tables_failure(make_service, shop_catalog):
    shop_catalog.fail("tables")
    service, _ = make_service(shop_catalog)
    with service:
        with pytest.raises(DumpError, match="테이블 목록 조회 실패"):
            service.get_tables()
