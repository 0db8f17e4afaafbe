import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from license_manager.models import LicenseRecord, LicenseState

logger = logging.getLogger(__name__)

Base = declarative_base()

# Option names kept per installation, prefixed with the option namespace
APIKEY = "apikey"
ACTIVATED = "activated"
INSTANCE = "instance"
DEACTIVATE_CHECKBOX = "deactivate_checkbox"
PRODUCT_ID = "product_id"

MIGRATED_OPTIONS = (APIKEY, PRODUCT_ID, ACTIVATED, INSTANCE, DEACTIVATE_CHECKBOX)


class LocalOption(Base):
    __tablename__ = "license_options"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(191), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class OptionStore:
    """Durable key/value options, one row per option name."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self.session_factory() as db:
            option = self._find(db, key)
            return option.value if option else default

    def get_many(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        with self.session_factory() as db:
            rows = db.query(LocalOption).filter(LocalOption.key.in_(keys)).all()
            return {row.key: row.value for row in rows}

    def set_many(self, values: Dict[str, Any]) -> None:
        """Write every option in a single transaction."""
        with self.session_factory() as db:
            self._upsert(db, values)
            try:
                db.commit()
            except IntegrityError:
                # Another writer inserted one of the rows first; retrying updates it
                db.rollback()
                self._upsert(db, values)
                db.commit()

    def set(self, key: str, value: Any) -> None:
        self.set_many({key: value})

    def add_if_missing(self, key: str, value: str) -> str:
        """Store value unless the key already holds one; return the value that is kept."""
        with self.session_factory() as db:
            option = self._find(db, key)
            if option and option.value:
                return option.value
            if option:
                option.value = value
            else:
                db.add(LocalOption(key=key, value=value))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return self._find(db, key).value
        return value

    def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        with self.session_factory() as db:
            db.query(LocalOption).filter(LocalOption.key.in_(keys)).delete(synchronize_session=False)
            db.commit()

    @staticmethod
    def _find(db: Session, key: str) -> Optional[LocalOption]:
        return db.query(LocalOption).filter(LocalOption.key == key).first()

    @staticmethod
    def _upsert(db: Session, values: Dict[str, Any]) -> None:
        existing = {
            row.key: row
            for row in db.query(LocalOption).filter(LocalOption.key.in_(list(values))).all()
        }
        for key, value in values.items():
            value = "" if value is None else str(value)
            if key in existing:
                existing[key].value = value
                existing[key].updated_at = datetime.utcnow()
            else:
                db.add(LocalOption(key=key, value=value))


class LicenseStore:
    """
    License state for one installation, kept in the option table.

    The engine is the only writer; every transition goes through write(),
    which applies all of its fields in one transaction.
    """

    def __init__(self, options: OptionStore, namespace: str):
        self.options = options
        self.namespace = namespace

    def get_option_key(self, key: str) -> str:
        return f"{self.namespace}_{key}"

    def get_option_value(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.options.get(self.get_option_key(key), default)

    def read(self) -> LicenseRecord:
        names = (APIKEY, ACTIVATED, INSTANCE, DEACTIVATE_CHECKBOX)
        values = self.options.get_many(self.get_option_key(name) for name in names)
        return LicenseRecord(
            license_key=values.get(self.get_option_key(APIKEY), ""),
            state=LicenseState.parse(values.get(self.get_option_key(ACTIVATED))),
            instance_id=values.get(self.get_option_key(INSTANCE)) or None,
            deactivate_checkbox=values.get(self.get_option_key(DEACTIVATE_CHECKBOX), "off"),
        )

    def write(
        self,
        license_key: Optional[str] = None,
        state: Optional[LicenseState] = None,
        deactivate_checkbox: Optional[str] = None,
    ) -> None:
        values: Dict[str, Any] = {}
        if license_key is not None:
            values[self.get_option_key(APIKEY)] = license_key
        if state is not None:
            values[self.get_option_key(ACTIVATED)] = LicenseState(state).value
        if deactivate_checkbox is not None:
            values[self.get_option_key(DEACTIVATE_CHECKBOX)] = deactivate_checkbox
        if values:
            self.options.set_many(values)

    def get_or_create_instance(self, preset: Optional[str] = None) -> str:
        """Get or generate the unique installation instance ID."""
        existing = self.get_option_value(INSTANCE)
        if existing:
            return existing

        new_id = self.options.add_if_missing(self.get_option_key(INSTANCE), preset or uuid.uuid4().hex)
        logger.info("Using license instance id for %s", self.namespace)
        return new_id


def create_store(database_url: str) -> OptionStore:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(database_url, connect_args=connect_args)
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return OptionStore(session_factory)


def migrate_license_options(options: OptionStore, old_slug: str, new_slug: str) -> Dict[str, list]:
    """
    Copy license options from an old slug to a new one.

    Values already present under the new slug are kept. Runs once; later
    calls report everything as skipped.
    """
    results: Dict[str, list] = {"migrated": [], "skipped": []}
    migrated_flag = f"{new_slug}_license_migrated"

    if options.get(migrated_flag):
        results["skipped"] = list(MIGRATED_OPTIONS)
        return results

    old_values = options.get_many(f"{old_slug}_license_{name}" for name in MIGRATED_OPTIONS)
    new_values = options.get_many(f"{new_slug}_license_{name}" for name in MIGRATED_OPTIONS)

    updates: Dict[str, Any] = {}
    for name in MIGRATED_OPTIONS:
        old_value = old_values.get(f"{old_slug}_license_{name}")
        new_key = f"{new_slug}_license_{name}"
        if old_value and not new_values.get(new_key):
            updates[new_key] = old_value
            results["migrated"].append(name)
        else:
            results["skipped"].append(name)

    updates[migrated_flag] = "1"
    updates[f"{new_slug}_license_migration_date"] = datetime.utcnow().isoformat()
    options.set_many(updates)

    logger.info("Migrated license options from %s to %s: %s", old_slug, new_slug, results["migrated"])
    return results
