"""
Tests for the option store and license state persistence.
"""

from license_manager.database import LicenseStore, LocalOption, OptionStore, migrate_license_options
from license_manager.models import LicenseState


def test_option_key_is_prefixed_and_deterministic(options):
    store = LicenseStore(options, "acme_license")

    assert store.get_option_key("apikey") == "acme_license_apikey"
    assert store.get_option_key("apikey") == store.get_option_key("apikey")
    assert len({store.get_option_key(k) for k in ("apikey", "activated", "instance", "deactivate_checkbox")}) == 4


def test_empty_store_reads_as_deactivated(options):
    record = LicenseStore(options, "acme_license").read()

    assert record.license_key == ""
    assert record.state == LicenseState.DEACTIVATED
    assert record.instance_id is None


def test_write_persists_all_fields_together(options):
    store = LicenseStore(options, "acme_license")

    store.write(license_key="ABC-123", state=LicenseState.ACTIVATED, deactivate_checkbox="off")

    assert options.get("acme_license_apikey") == "ABC-123"
    assert options.get("acme_license_activated") == "Activated"
    record = store.read()
    assert record.license_key == "ABC-123"
    assert record.state == LicenseState.ACTIVATED


def test_partial_write_keeps_other_fields(options):
    store = LicenseStore(options, "acme_license")
    store.write(license_key="ABC-123", state=LicenseState.ACTIVATED)

    store.write(state=LicenseState.EXPIRED)

    record = store.read()
    assert record.license_key == "ABC-123"
    assert record.state == LicenseState.EXPIRED


def test_unknown_status_value_reads_as_deactivated(options):
    options.set("acme_license_activated", "garbage")

    assert LicenseStore(options, "acme_license").read().state == LicenseState.DEACTIVATED


def test_instance_id_is_generated_once(options):
    store = LicenseStore(options, "acme_license")

    first = store.get_or_create_instance()
    second = store.get_or_create_instance()

    assert first == second
    assert len(first) == 32
    assert store.read().instance_id == first


def test_preset_instance_id_is_used(options):
    store = LicenseStore(options, "acme_license")

    assert store.get_or_create_instance("fixed-instance") == "fixed-instance"
    assert store.get_or_create_instance("another") == "fixed-instance"


def test_namespaces_do_not_share_state(options):
    LicenseStore(options, "acme_license").write(license_key="ABC-123")

    assert LicenseStore(options, "other_license").read().license_key == ""


def test_delete_many(options):
    options.set_many({"a": "1", "b": "2"})

    options.delete_many(["a"])

    assert options.get("a") is None
    assert options.get("b") == "2"


def test_migrate_copies_missing_values(options):
    options.set_many({
        "old_license_apikey": "OLD-KEY",
        "old_license_activated": "Activated",
        "old_license_instance": "inst-1",
        "new_license_activated": "Deactivated",
    })

    results = migrate_license_options(options, "old", "new")

    assert "apikey" in results["migrated"]
    assert "instance" in results["migrated"]
    assert "activated" in results["skipped"]
    assert options.get("new_license_apikey") == "OLD-KEY"
    assert options.get("new_license_activated") == "Deactivated"
    assert options.get("new_license_migrated") == "1"
    assert options.get("new_license_migration_date")


def test_migrate_runs_once(options):
    options.set("old_license_apikey", "OLD-KEY")
    migrate_license_options(options, "old", "new")
    options.set("old_license_apikey", "CHANGED")
    options.set("new_license_apikey", "")

    results = migrate_license_options(options, "old", "new")

    assert results["migrated"] == []
    assert options.get("new_license_apikey") == ""


def insert_from_other_writer(options, key, value):
    with options.session_factory() as other:
        other.add(LocalOption(key=key, value=value))
        other.commit()


def test_set_many_survives_concurrent_insert(options, monkeypatch):
    upsert = OptionStore._upsert
    raced = []

    def upsert_then_race(db, values):
        upsert(db, values)
        if not raced:
            raced.append(True)
            insert_from_other_writer(options, "acme_license_apikey", "FROM-OTHER")

    monkeypatch.setattr(OptionStore, "_upsert", staticmethod(upsert_then_race))

    options.set_many({"acme_license_apikey": "ABC-123", "acme_license_activated": "Activated"})

    assert options.get("acme_license_apikey") == "ABC-123"
    assert options.get("acme_license_activated") == "Activated"


def test_instance_id_keeps_concurrently_created_value(options, monkeypatch):
    find = OptionStore._find
    lookups = []

    def race_then_find(db, key):
        lookups.append(key)
        if len(lookups) == 2:
            # Lookup inside add_if_missing: another process wins the insert
            insert_from_other_writer(options, key, "other-instance")
            return None
        return find(db, key)

    monkeypatch.setattr(OptionStore, "_find", staticmethod(race_then_find))

    instance = LicenseStore(options, "acme_license").get_or_create_instance()

    assert instance == "other-instance"
    assert options.get("acme_license_instance") == "other-instance"


def test_blank_instance_row_is_filled(options):
    options.set("acme_license_instance", "")

    instance = LicenseStore(options, "acme_license").get_or_create_instance("fixed-instance")

    assert instance == "fixed-instance"
    assert options.get("acme_license_instance") == "fixed-instance"
