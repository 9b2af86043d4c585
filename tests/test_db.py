from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from survey_engine import db


def test_lazy_engine_is_built_once_under_concurrency(monkeypatch):
    monkeypatch.setattr(db, "_engine", None)
    with ThreadPoolExecutor(max_workers=8) as pool:
        engines = list(pool.map(lambda _: db.get_engine(), range(32)))
    try:
        assert len({id(e) for e in engines}) == 1
    finally:
        engines[0].dispose()


def test_configure_replaces_engine(tmp_path, database):
    replacement = db.configure(f"sqlite:///{tmp_path / 'other.db'}")
    try:
        assert db.get_engine() is replacement
        assert replacement is not database
    finally:
        replacement.dispose()
