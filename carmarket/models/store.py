import atexit
import copy
import logging
import os
import pickle
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from carmarket.config import Config
from carmarket.utils.constants import Role
from carmarket.utils.security import generate_hash

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "cars", "rentals", "sales", "approvals")
ID_FIELDS = {
    "users": "user_id",
    "cars": "car_id",
    "rentals": "rental_id",
    "sales": "sale_id",
    "approvals": "approval_id",
}

Predicate = Callable[[dict], bool]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Store:
    """
    Pickle-backed record store with five collections of plain dicts.

    Every public read returns a deep copy, so a record only changes through
    the update methods below. Single-record writes are atomic under the store
    lock; ``transaction()`` extends the lock over several writes, persists once
    at the end and restores the previous state if the block raises.
    """

    _inst = None
    _inst_lock = threading.Lock()
    _atexit_registered = False

    supports_transactions = True

    def __init__(self, path: str | os.PathLike | None = None, env: Optional[str] = None):
        self.path = str(path or Config.DATA_PATH)
        self.env = env or Config.APP_ENV
        self.users: dict[str, dict] = {}
        self.cars: dict[str, dict] = {}
        self.rentals: dict[str, dict] = {}
        self.sales: dict[str, dict] = {}
        self.approvals: dict[str, dict] = {}
        self._rw = threading.RLock()
        self._tx_depth = 0

        logger.info("Using store file: %s", self.path)
        self._load()

        # Default admin account, only for a brand new store outside tests
        if self.env != "test" and not any(self.users.values()):
            self.create_user("admin", generate_hash("Admin123"), Role.ADMIN)

        # Automatically save on exit (skipped in test environments)
        if not Store._atexit_registered and self.env != "test":
            atexit.register(self.save)
            Store._atexit_registered = True

    # ---------- Singleton ----------
    @classmethod
    def instance(cls, path: str | os.PathLike | None = None, env: Optional[str] = None):
        """Return the global singleton instance of Store."""
        with cls._inst_lock:
            if cls._inst is None:
                cls._inst = Store(path or Config.DATA_PATH, env=env)
        return cls._inst

    # ---------- Persistence ----------
    def _load(self):
        """Load data from the pickle file, or start empty if unavailable or invalid."""
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, "rb") as f:
                data = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            logger.warning("Store load failed (%s); starting empty.", e)
            return

        if isinstance(data, dict) and "cars" in data:
            for name in COLLECTIONS:
                setattr(self, name, data.get(name, {}) or {})
            logger.info(
                "Loaded: %s",
                ", ".join(f"{name}={len(getattr(self, name))}" for name in COLLECTIONS),
            )
        else:
            # Incompatible data format: back up the old file and start empty
            bak = self.path + ".bak"
            try:
                os.replace(self.path, bak)
                logger.warning("Incompatible store (%s); backed up to %s.", type(data).__name__, bak)
            except OSError as e:
                logger.error("Backup of incompatible store failed: %s", e)

    def _dump(self):
        """Write the in-memory data to the pickle file safely (atomic replace)."""
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        payload = {name: getattr(self, name) for name in COLLECTIONS}
        with open(tmp, "wb") as f:
            pickle.dump(payload, f, protocol=pickle.HIGHEST_PROTOCOL)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def _commit(self):
        if self._tx_depth == 0:
            self._dump()

    def save(self):
        """Thread-safe save method."""
        with self._rw:
            logger.info("Saving to %s ...", self.path)
            self._dump()

    def clear(self):
        with self._rw:
            for name in COLLECTIONS:
                getattr(self, name).clear()
            self._commit()

    # ---------- Transactions ----------
    @contextmanager
    def transaction(self):
        """Run several writes as one unit: all of them persist or none do."""
        with self._rw:
            snapshot = None
            if self._tx_depth == 0:
                snapshot = {name: copy.deepcopy(getattr(self, name)) for name in COLLECTIONS}
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self._tx_depth -= 1
                if snapshot is not None:
                    for name, data in snapshot.items():
                        setattr(self, name, data)
                    logger.warning("Transaction rolled back")
                raise
            self._tx_depth -= 1
            self._commit()

    # ---------- Generic record access ----------
    def insert(self, collection: str, record: dict) -> str:
        with self._rw:
            rid = str(uuid.uuid4())
            rec = copy.deepcopy(record)
            rec[ID_FIELDS[collection]] = rid
            rec.setdefault("created_at", now_iso())
            getattr(self, collection)[rid] = rec
            self._commit()
            return rid

    def get(self, collection: str, rid) -> Optional[dict]:
        if rid is None:
            return None
        with self._rw:
            rec = getattr(self, collection).get(str(rid))
            return copy.deepcopy(rec) if rec is not None else None

    def find(self, collection: str, predicate: Optional[Predicate] = None, **criteria) -> list[dict]:
        """Return copies of the records matching every ``field=value`` and the predicate."""
        with self._rw:
            out = []
            for rec in getattr(self, collection).values():
                if any(rec.get(k) != v for k, v in criteria.items()):
                    continue
                if predicate is not None and not predicate(rec):
                    continue
                out.append(copy.deepcopy(rec))
            return out

    def find_one(self, collection: str, predicate: Optional[Predicate] = None, **criteria) -> Optional[dict]:
        rows = self.find(collection, predicate, **criteria)
        return rows[0] if rows else None

    def count(self, collection: str, predicate: Optional[Predicate] = None, **criteria) -> int:
        return len(self.find(collection, predicate, **criteria))

    def delete(self, collection: str, rid) -> bool:
        with self._rw:
            if getattr(self, collection).pop(str(rid), None) is None:
                return False
            self._commit()
            return True

    def delete_many(self, collection: str, predicate: Predicate) -> int:
        with self._rw:
            records = getattr(self, collection)
            doomed = [rid for rid, rec in records.items() if predicate(rec)]
            for rid in doomed:
                del records[rid]
            if doomed:
                self._commit()
            return len(doomed)

    def _update(self, collection: str, rid, updates: dict) -> bool:
        with self._rw:
            rec = getattr(self, collection).get(str(rid))
            if rec is None:
                return False
            rec.update(copy.deepcopy(updates))
            rec["updated_at"] = now_iso()
            self._commit()
            return True

    # ---------- Users ----------
    def user_exists(self, username: str) -> bool:
        """Return True if the given username already exists."""
        return self.find_user(username) is not None

    def find_user(self, username: str) -> dict | None:
        return self.find_one("users", username=username)

    def get_user(self, user_id: str) -> dict | None:
        return self.get("users", user_id)

    def create_user(self, username: str, password_hash: str, role: str) -> str:
        """Create a new user and return its ID."""
        with self._rw:
            if self.user_exists(username):
                raise ValueError("Username already exists")
            return self.insert("users", {
                "username": username,
                "password_hash": password_hash,
                "role": role,
            })

    def update_user(self, user_id: str, **updates) -> bool:
        return self._update("users", user_id, updates)

    def delete_user(self, user_id: str) -> bool:
        return self.delete("users", user_id)

    # ---------- Cars ----------
    def create_car(self, data: dict) -> str:
        rec = dict(data)
        rec.setdefault("images", [])
        rec.setdefault("rentals", [])
        rec.setdefault("reviews", [])
        rec["version"] = 0
        return self.insert("cars", rec)

    def get_car(self, car_id: str) -> dict | None:
        return self.get("cars", car_id)

    def update_car(self, car_id: str, updates: dict, expected_version: Optional[int] = None) -> bool:
        """
        Apply ``updates`` and bump the car's version.
        Returns False if the car is gone or its version no longer matches
        ``expected_version`` (someone else wrote it since it was read).
        """
        with self._rw:
            car = self.cars.get(str(car_id))
            if car is None:
                return False
            if expected_version is not None and car.get("version", 0) != expected_version:
                return False
            car.update(copy.deepcopy(updates))
            car["version"] = car.get("version", 0) + 1
            car["updated_at"] = now_iso()
            self._commit()
            return True

    def delete_car(self, car_id: str) -> bool:
        return self.delete("cars", car_id)

    # ---------- Rentals ----------
    def create_rental(self, data: dict) -> str:
        return self.insert("rentals", data)

    def get_rental(self, rental_id: str) -> dict | None:
        return self.get("rentals", rental_id)

    def update_rental(self, rental_id: str, updates: dict, expected_status: Optional[str] = None) -> bool:
        """Update a rental; with ``expected_status`` only if it is still in that status."""
        with self._rw:
            rental = self.rentals.get(str(rental_id))
            if rental is None:
                return False
            if expected_status is not None and rental.get("status") != expected_status:
                return False
            return self._update("rentals", rental_id, updates)

    def update_rentals(self, predicate: Predicate, updates: dict) -> list[str]:
        """Bulk update; returns the ids of the rentals that were changed."""
        with self._rw:
            changed = [rid for rid, rec in self.rentals.items() if predicate(rec)]
            stamp = now_iso()
            for rid in changed:
                self.rentals[rid].update(copy.deepcopy(updates))
                self.rentals[rid]["updated_at"] = stamp
            if changed:
                self._commit()
            return changed

    def delete_rental(self, rental_id: str) -> bool:
        return self.delete("rentals", rental_id)

    # ---------- Sales (immutable once written) ----------
    def create_sale(self, data: dict) -> str:
        return self.insert("sales", data)

    def get_sale(self, sale_id: str) -> dict | None:
        return self.get("sales", sale_id)

    # ---------- Approvals ----------
    def create_approval(self, data: dict) -> str:
        return self.insert("approvals", data)

    def get_approval(self, approval_id: str) -> dict | None:
        return self.get("approvals", approval_id)

    def update_approval(self, approval_id: str, **updates) -> bool:
        return self._update("approvals", approval_id, updates)

    def delete_approval(self, approval_id: str) -> bool:
        return self.delete("approvals", approval_id)
