import atexit
import copy
import logging
import os
import pickle
import threading
import uuid
from contextlib import ExitStack, contextmanager
from pathlib import Path

from app.utils.constants import BookingKind, Role
from app.utils.intervals import overlaps
from app.utils.security import generate_hash

logger = logging.getLogger(__name__)

# ---- Paths ----
BASE_DIR = Path(__file__).resolve().parents[2]
DEFAULT_DATA_PATH = BASE_DIR / "data.pkl"

COLLECTIONS = ("users", "cars", "insurances", "rentals", "reservations")


class CarLocks:
    """Arena of per-car re-entrant locks, created lazily on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, car_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(car_id)
            if lock is None:
                lock = self._locks[car_id] = threading.RLock()
            return lock

    def forget(self, car_id) -> None:
        """Drop the lock of a car that no longer exists."""
        with self._guard:
            self._locks.pop(str(car_id), None)

    @contextmanager
    def hold(self, *car_ids):
        """Acquire the locks of every given car (sorted, so two callers never deadlock)."""
        ids = sorted({str(c) for c in car_ids if c is not None})
        with ExitStack() as stack:
            for cid in ids:
                stack.enter_context(self._lock_for(cid))
            yield


class Store:
    _inst = None
    _inst_lock = threading.Lock()
    _atexit_registered = False

    def __init__(self, path: str | os.PathLike | None = None):
        self.path = str(path or DEFAULT_DATA_PATH)
        self.users: dict[str, dict] = {}
        self.cars: dict[str, dict] = {}
        self.insurances: dict[str, dict] = {}
        self.rentals: dict[str, dict] = {}
        self.reservations: dict[str, dict] = {}
        self._rw = threading.RLock()
        self._tx_depth = 0
        self._car_locks = CarLocks()

        logger.info("[Store] Using file: %s", self.path)
        is_new = not os.path.exists(self.path)
        self._load()

        # Default admin account:
        # Created only when the file does not exist or is empty
        # (to avoid conflicts with seeded or test data)
        if is_new or not any(getattr(self, name) for name in COLLECTIONS):
            if not any(u.get("role") == Role.ADMIN for u in self.users.values()):
                uid = str(uuid.uuid4())
                self.users[uid] = {
                    "user_id": uid,
                    "username": "admin",
                    "password_hash": generate_hash("Admin123"),
                    "role": Role.ADMIN,
                }
                self._dump()

        # Automatically save on exit (skipped in test environments)
        if not Store._atexit_registered and os.getenv("APP_ENV") != "test":
            atexit.register(self.save)
            Store._atexit_registered = True

    # ---------- Singleton ----------
    @classmethod
    def instance(cls, path: str | os.PathLike | None = None):
        """Return the global singleton instance of Store."""
        with cls._inst_lock:
            if cls._inst is None:
                cls._inst = Store(path or DEFAULT_DATA_PATH)
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
            logger.warning("[Store] Load failed (%s); starting empty.", e)
            return

        if isinstance(data, dict):
            for name in COLLECTIONS:
                setattr(self, name, data.get(name, {}) or {})
            logger.info(
                "[Store] Loaded: users=%d, cars=%d, rentals=%d, reservations=%d",
                len(self.users), len(self.cars), len(self.rentals), len(self.reservations),
            )
        else:
            # Handle incompatible data format: backup the old file and start empty
            bak = self.path + ".bak"
            os.replace(self.path, bak)
            logger.warning("[Store] Incompatible store (%s); backed up to %s. Starting empty.",
                           type(data).__name__, bak)

    def _snapshot(self) -> dict:
        return {name: getattr(self, name) for name in COLLECTIONS}

    def _dump(self):
        """Write the in-memory data to the pickle file safely (atomic replace)."""
        if self._tx_depth:
            # the enclosing transaction writes once on commit
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "wb") as f:
            pickle.dump(self._snapshot(), f, protocol=pickle.HIGHEST_PROTOCOL)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)

    def save(self):
        """Thread-safe save method."""
        with self._rw:
            logger.debug("[Store] Saving to %s ...", self.path)
            self._dump()

    def clear(self):
        """Drop every record and persist the empty store."""
        with self._rw:
            for name in COLLECTIONS:
                getattr(self, name).clear()
            self._dump()

    @contextmanager
    def transaction(self):
        """
        Failure-atomic unit of work.
        All writes inside the block are persisted together on success; on any
        exception the in-memory collections are restored and nothing is written.
        """
        with self._rw:
            backup = copy.deepcopy(self._snapshot())
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                for name, data in backup.items():
                    setattr(self, name, data)
                raise
            finally:
                self._tx_depth -= 1
            self._dump()

    def car_lock(self, *car_ids):
        """Scoped acquisition of the booking lock of one or more cars."""
        return self._car_locks.hold(*car_ids)

    def drop_car_lock(self, car_id) -> None:
        """Release the lock slot of a deleted car."""
        self._car_locks.forget(car_id)

    # ---------- Users ----------
    def user_exists(self, username: str) -> bool:
        """Return True if the given username already exists."""
        return any(u["username"] == username for u in self.users.values())

    def find_user(self, username: str) -> dict | None:
        """Find a user by username."""
        for u in self.users.values():
            if u["username"] == username:
                return u
        return None

    def get_user(self, user_id) -> dict | None:
        return self.users.get(str(user_id))

    def create_user(self, username: str, password_hash: str, role: str) -> str:
        """Create a new user and return its ID."""
        with self._rw:
            if self.user_exists(username):
                raise ValueError("Username already exists")
            uid = str(uuid.uuid4())
            self.users[uid] = {
                "user_id": uid,
                "username": username,
                "password_hash": password_hash,
                "role": role,
            }
            self._dump()
            return uid

    def delete_user(self, user_id) -> bool:
        with self._rw:
            if self.users.pop(str(user_id), None) is not None:
                self._dump()
                return True
            return False

    # ---------- Cars ----------
    def create_car(self, data: dict) -> str:
        """Create a new car record and return its ID."""
        with self._rw:
            cid = str(uuid.uuid4())
            self.cars[cid] = {
                "car_id": cid,
                "make": data.get("make", ""),
                "model": data.get("model", ""),
                "year": data.get("year"),
                "color": data.get("color"),
                "rate": data.get("rate"),
                "is_available": bool(data.get("is_available", True)),
            }
            self._dump()
            return cid

    def get_car(self, car_id) -> dict | None:
        return self.cars.get(str(car_id))

    def update_car(self, car_id, **updates) -> bool:
        with self._rw:
            car = self.cars.get(str(car_id))
            if car is None:
                return False
            car.update(updates)
            self._dump()
            return True

    def delete_car(self, car_id) -> bool:
        with self._rw:
            if self.cars.pop(str(car_id), None) is not None:
                self._dump()
                return True
            return False

    # ---------- Insurance ----------
    def create_insurance(self, data: dict) -> str:
        with self._rw:
            iid = str(uuid.uuid4())
            record = dict(data)
            record["insurance_id"] = iid
            self.insurances[iid] = record
            self._dump()
            return iid

    def get_insurance(self, insurance_id) -> dict | None:
        return self.insurances.get(str(insurance_id))

    def insurance_for_car(self, car_id) -> dict | None:
        """Return the (single) policy attached to a car, if any."""
        cid = str(car_id)
        with self._rw:
            for ins in self.insurances.values():
                if ins.get("car_id") == cid:
                    return ins
        return None

    def update_insurance(self, insurance_id, updates: dict) -> bool:
        with self._rw:
            ins = self.insurances.get(str(insurance_id))
            if ins is None:
                return False
            ins.update(updates)
            self._dump()
            return True

    def delete_insurance(self, insurance_id) -> bool:
        with self._rw:
            if self.insurances.pop(str(insurance_id), None) is not None:
                self._dump()
                return True
            return False

    # ---------- Bookings (rentals + reservations) ----------
    def _bookings(self, kind: str) -> dict[str, dict]:
        if kind == BookingKind.RENTAL:
            return self.rentals
        if kind == BookingKind.RESERVATION:
            return self.reservations
        raise ValueError(f"Unknown booking kind: {kind!r}")

    def create_booking(self, kind: str, record: dict) -> str:
        """Create a new rental/reservation record and return its ID."""
        with self._rw:
            bid = str(uuid.uuid4())
            record = dict(record)
            record[f"{kind}_id"] = bid
            self._bookings(kind)[bid] = record
            self._dump()
            return bid

    def get_booking(self, kind: str, booking_id) -> dict | None:
        return self._bookings(kind).get(str(booking_id))

    def update_booking(self, kind: str, booking_id, updates: dict) -> bool:
        with self._rw:
            rec = self._bookings(kind).get(str(booking_id))
            if rec is None:
                return False
            rec.update(updates)
            self._dump()
            return True

    def delete_booking(self, kind: str, booking_id) -> bool:
        with self._rw:
            if self._bookings(kind).pop(str(booking_id), None) is not None:
                self._dump()
                return True
            return False

    def bookings(self, kind: str, car_id=None, user_id=None, statuses=None) -> list[dict]:
        """List bookings of one kind, optionally filtered by car, user and status."""
        with self._rw:
            out = list(self._bookings(kind).values())
        if car_id is not None:
            out = [b for b in out if b.get("car_id") == str(car_id)]
        if user_id is not None:
            out = [b for b in out if b.get("user_id") == str(user_id)]
        if statuses is not None:
            out = [b for b in out if b.get("status") in statuses]
        return out

    def find_overlapping(self, kind: str, car_id, start, end, statuses, exclude_id=None) -> list[dict]:
        """Bookings of `kind` on `car_id` in one of `statuses` whose window overlaps [start, end]."""
        key = f"{kind}_id"
        hits = []
        for b in self.bookings(kind, car_id=car_id, statuses=statuses):
            if exclude_id is not None and b.get(key) == str(exclude_id):
                continue
            if overlaps(b["start_date"], b["end_date"], start, end):
                hits.append(b)
        return hits
