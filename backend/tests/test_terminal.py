import pytest

from florapos import create_app
from florapos.extensions import db
from florapos.services.activity_log import LocalEntryStorage, MemoryStorage
from florapos.terminal import build_services, get_services


def test_each_app_gets_its_own_stores(app, services):
    other = create_app({"TESTING": True, "ACTIVITY_LOG_STORAGE": "memory"})
    other_services = other.extensions["florapos"]

    assert other_services.activity_log is not services.activity_log
    assert other_services.inventory is not services.inventory
    assert isinstance(services.activity_log.storage, MemoryStorage)
    assert get_services() is services


def test_database_storage_is_the_default():
    app = create_app({"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"})
    services = app.extensions["florapos"]
    assert isinstance(services.activity_log.storage, LocalEntryStorage)

    with app.app_context():
        db.create_all()
        services.activity_log.append({"kind": "variety_change", "id": "v1", "varietyId": "peony"})
        assert [a.id for a in services.activity_log.read()] == ["v1"]


def test_config_flows_into_services(app):
    config = dict(app.config)
    config.update(ACTIVITY_LOG_MAX_ENTRIES=10, INVENTORY_CACHE_TTL_SECONDS=30)
    services = build_services(config)
    assert services.activity_log.max_entries == 10
    assert services.inventory.ttl_seconds == 30


def test_unknown_storage_kind_is_rejected(app):
    config = dict(app.config)
    config["ACTIVITY_LOG_STORAGE"] = "browser"
    with pytest.raises(ValueError):
        build_services(config)
