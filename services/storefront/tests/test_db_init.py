from pathlib import Path

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError


def test_init_db_creates_tables(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "storefront_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "true")

    from services.storefront.app.db.database import get_engine
    from services.storefront.app.db.init_db import init_db

    init_db()

    inspector = inspect(get_engine())
    tables = set(inspector.get_table_names())

    assert {"companies", "products", "orders", "order_lines", "order_notes", "event_log"} <= tables


def test_init_db_can_be_disabled(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "storefront_disabled.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "false")

    from services.storefront.app.db.database import get_engine
    from services.storefront.app.db.init_db import init_db

    init_db()

    assert inspect(get_engine()).get_table_names() == []


def test_sqlite_enforces_foreign_keys(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "storefront_fk.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("STOREFRONT_DB_AUTO_CREATE", "true")

    from services.storefront.app.db.database import db_session
    from services.storefront.app.db.init_db import init_db
    from services.storefront.app.db.models import Product

    init_db()
    db = db_session()
    try:
        db.add(Product(id="p-orphan", company_id="co-missing", name="Orphan", price=1.0, stock=1))
        with pytest.raises(IntegrityError):
            db.commit()
    finally:
        db.close()
