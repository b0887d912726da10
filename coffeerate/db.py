"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from coffeerate.normalization import normalize_for_search

SMALL_SAMPLE_THRESHOLD = 3


class UniqueViolation(Exception):
    """Raised when a write collides with a unique constraint."""

    def __init__(self, constraint: str):
        super().__init__(constraint)
        self.constraint = constraint


class DbClient(Protocol):
    """Interface for database access."""

    def ensure_profile(self, user_id: str) -> "ProfileRecord":
        ...

    def get_profile(self, user_id: str) -> Optional["ProfileRecord"]:
        ...

    def set_display_name_if_unset(
        self, user_id: str, display_name: str
    ) -> Optional["ProfileRecord"]:
        ...

    def delete_profile(self, user_id: str) -> bool:
        ...

    def list_roasteries(
        self,
        *,
        q_norm: Optional[str] = None,
        city_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list["RoasteryRecord"], int]:
        ...

    def get_roastery(self, roastery_id: str) -> Optional["RoasteryRecord"]:
        ...

    def create_roastery(self, name: str, city: str) -> "RoasteryRecord":
        ...

    def list_coffees(
        self,
        *,
        roastery_id: Optional[str] = None,
        q_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[list["CoffeeRecord"], int]:
        ...

    def list_roastery_coffees(
        self, roastery_id: str, *, offset: int = 0, limit: int = 30
    ) -> tuple[list["CoffeeRecord"], int]:
        ...

    def get_coffee(self, coffee_id: str) -> Optional["CoffeeRecord"]:
        ...

    def create_coffee(self, roastery_id: str, name: str) -> "CoffeeRecord":
        ...

    def get_rating(self, user_id: str, coffee_id: str) -> Optional["RatingRecord"]:
        ...

    def upsert_rating(
        self,
        user_id: str,
        coffee_id: str,
        *,
        main: int,
        strength: int,
        acidity: int,
        aftertaste: int,
    ) -> "RatingRecord":
        ...


@dataclass
class ProfileRecord:
    user_id: str
    display_name: Optional[str]
    created_at: float


@dataclass
class RoasteryRecord:
    id: str
    name: str
    city: str
    created_at: float


@dataclass
class CoffeeRecord:
    id: str
    roastery_id: str
    name: str
    avg_main: Optional[float]
    ratings_count: int
    created_at: float

    @property
    def small_sample(self) -> bool:
        return self.ratings_count < SMALL_SAMPLE_THRESHOLD


@dataclass
class RatingRecord:
    """A rating row; scores are in the doubled storage scale (2..10)."""

    id: str
    coffee_id: str
    user_id: str
    main: int
    strength: int
    acidity: int
    aftertaste: int
    created_at: float
    updated_at: float

    @property
    def is_new(self) -> bool:
        return self.created_at == self.updated_at


def _new_id() -> str:
    return str(uuid.uuid4())


def _average_main(stored_mains: list[int]) -> Optional[float]:
    if not stored_mains:
        return None
    return round(sum(stored_mains) / len(stored_mains) / 2, 2)


def _sort_coffees(items: list[CoffeeRecord], *, roastery_scoped: bool) -> list[CoffeeRecord]:
    # Stable sorts, least significant key first.
    if roastery_scoped:
        items = sorted(items, key=lambda c: c.name)
        items = sorted(items, key=lambda c: c.created_at, reverse=True)
    else:
        items = sorted(items, key=lambda c: c.id, reverse=True)
    items = sorted(items, key=lambda c: c.ratings_count, reverse=True)
    return sorted(
        items,
        key=lambda c: (c.avg_main is None, -(c.avg_main or 0.0)),
    )


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.profiles: Dict[str, ProfileRecord] = {}
        self.roasteries: Dict[str, RoasteryRecord] = {}
        self.coffees: Dict[str, CoffeeRecord] = {}
        self.ratings: Dict[tuple[str, str], RatingRecord] = {}

    def ensure_profile(self, user_id: str) -> ProfileRecord:
        profile = self.profiles.get(user_id)
        if profile is None:
            profile = ProfileRecord(
                user_id=user_id, display_name=None, created_at=self.clock()
            )
            self.profiles[user_id] = profile
        return profile

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(user_id)

    def set_display_name_if_unset(
        self, user_id: str, display_name: str
    ) -> Optional[ProfileRecord]:
        profile = self.profiles.get(user_id)
        if profile is None or profile.display_name is not None:
            return None
        normalized = normalize_for_search(display_name)
        for other in self.profiles.values():
            if (
                other.display_name is not None
                and normalize_for_search(other.display_name) == normalized
            ):
                raise UniqueViolation("profiles_normalized_display_name_key")
        profile.display_name = display_name
        return profile

    def delete_profile(self, user_id: str) -> bool:
        if self.profiles.pop(user_id, None) is None:
            return False
        touched = set()
        for key in [k for k in self.ratings if k[0] == user_id]:
            touched.add(self.ratings.pop(key).coffee_id)
        for coffee_id in touched:
            self._refresh_aggregates(coffee_id)
        return True

    def list_roasteries(
        self,
        *,
        q_norm: Optional[str] = None,
        city_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[RoasteryRecord], int]:
        matches = []
        for roastery in self.roasteries.values():
            if q_norm and q_norm not in normalize_for_search(roastery.name):
                continue
            if city_norm and normalize_for_search(roastery.city) != city_norm:
                continue
            matches.append(roastery)
        matches.sort(key=lambda r: (r.name, r.id))
        return matches[offset : offset + limit], len(matches)

    def get_roastery(self, roastery_id: str) -> Optional[RoasteryRecord]:
        return self.roasteries.get(roastery_id)

    def create_roastery(self, name: str, city: str) -> RoasteryRecord:
        key = (normalize_for_search(name), normalize_for_search(city))
        for existing in self.roasteries.values():
            if (
                normalize_for_search(existing.name),
                normalize_for_search(existing.city),
            ) == key:
                raise UniqueViolation("roasteries_normalized_name_city_key")
        record = RoasteryRecord(
            id=_new_id(), name=name, city=city, created_at=self.clock()
        )
        self.roasteries[record.id] = record
        return record

    def list_coffees(
        self,
        *,
        roastery_id: Optional[str] = None,
        q_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[list[CoffeeRecord], int]:
        matches = [
            coffee
            for coffee in self.coffees.values()
            if (not roastery_id or coffee.roastery_id == roastery_id)
            and (not q_norm or q_norm in normalize_for_search(coffee.name))
        ]
        matches = _sort_coffees(matches, roastery_scoped=False)
        return matches[offset : offset + limit], len(matches)

    def list_roastery_coffees(
        self, roastery_id: str, *, offset: int = 0, limit: int = 30
    ) -> tuple[list[CoffeeRecord], int]:
        matches = [c for c in self.coffees.values() if c.roastery_id == roastery_id]
        matches = _sort_coffees(matches, roastery_scoped=True)
        return matches[offset : offset + limit], len(matches)

    def get_coffee(self, coffee_id: str) -> Optional[CoffeeRecord]:
        return self.coffees.get(coffee_id)

    def create_coffee(self, roastery_id: str, name: str) -> CoffeeRecord:
        normalized = normalize_for_search(name)
        for existing in self.coffees.values():
            if (
                existing.roastery_id == roastery_id
                and normalize_for_search(existing.name) == normalized
            ):
                raise UniqueViolation("coffees_roastery_id_normalized_name_key")
        record = CoffeeRecord(
            id=_new_id(),
            roastery_id=roastery_id,
            name=name,
            avg_main=None,
            ratings_count=0,
            created_at=self.clock(),
        )
        self.coffees[record.id] = record
        return record

    def get_rating(self, user_id: str, coffee_id: str) -> Optional[RatingRecord]:
        return self.ratings.get((user_id, coffee_id))

    def upsert_rating(
        self,
        user_id: str,
        coffee_id: str,
        *,
        main: int,
        strength: int,
        acidity: int,
        aftertaste: int,
    ) -> RatingRecord:
        now = self.clock()
        existing = self.ratings.get((user_id, coffee_id))
        if existing:
            existing.main = main
            existing.strength = strength
            existing.acidity = acidity
            existing.aftertaste = aftertaste
            existing.updated_at = now
            record = existing
        else:
            record = RatingRecord(
                id=_new_id(),
                coffee_id=coffee_id,
                user_id=user_id,
                main=main,
                strength=strength,
                acidity=acidity,
                aftertaste=aftertaste,
                created_at=now,
                updated_at=now,
            )
            self.ratings[(user_id, coffee_id)] = record
        self._refresh_aggregates(coffee_id)
        return record

    def _refresh_aggregates(self, coffee_id: str) -> None:
        coffee = self.coffees.get(coffee_id)
        if not coffee:
            return
        mains = [r.main for r in self.ratings.values() if r.coffee_id == coffee_id]
        coffee.avg_main = _average_main(mains)
        coffee.ratings_count = len(mains)


def _is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(orig)


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, clock: Callable[[], float] = time.time):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.clock = clock
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_profile(row: "ProfileRow") -> ProfileRecord:
        return ProfileRecord(
            user_id=row.user_id,
            display_name=row.display_name,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_roastery(row: "RoasteryRow") -> RoasteryRecord:
        return RoasteryRecord(
            id=row.id, name=row.name, city=row.city, created_at=row.created_at
        )

    @staticmethod
    def _to_coffee(row: "CoffeeRow") -> CoffeeRecord:
        return CoffeeRecord(
            id=row.id,
            roastery_id=row.roastery_id,
            name=row.name,
            avg_main=row.avg_main,
            ratings_count=row.ratings_count,
            created_at=row.created_at,
        )

    @staticmethod
    def _to_rating(row: "RatingRow") -> RatingRecord:
        return RatingRecord(
            id=row.id,
            coffee_id=row.coffee_id,
            user_id=row.user_id,
            main=row.main,
            strength=row.strength,
            acidity=row.acidity,
            aftertaste=row.aftertaste,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _commit(self, session: Session, constraint: str) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if _is_unique_violation(exc):
                raise UniqueViolation(constraint) from exc
            raise

    def ensure_profile(self, user_id: str) -> ProfileRecord:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if row is None:
                row = ProfileRow(user_id=user_id, created_at=self.clock())
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    # Created concurrently; read the winner.
                    session.rollback()
                    row = session.get(ProfileRow, user_id)
            return self._to_profile(row)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            return self._to_profile(row) if row else None

    def set_display_name_if_unset(
        self, user_id: str, display_name: str
    ) -> Optional[ProfileRecord]:
        constraint = "profiles_normalized_display_name_key"
        with self.Session() as session:
            try:
                result = session.execute(
                    update(ProfileRow)
                    .where(
                        ProfileRow.user_id == user_id,
                        ProfileRow.display_name.is_(None),
                    )
                    .values(
                        display_name=display_name,
                        normalized_display_name=normalize_for_search(display_name),
                    )
                )
            except IntegrityError as exc:
                session.rollback()
                if _is_unique_violation(exc):
                    raise UniqueViolation(constraint) from exc
                raise
            self._commit(session, constraint)
            if not result.rowcount:
                return None
            row = session.get(ProfileRow, user_id, populate_existing=True)
            return self._to_profile(row)

    def delete_profile(self, user_id: str) -> bool:
        with self.Session() as session:
            coffee_ids = list(
                session.execute(
                    select(RatingRow.coffee_id).where(RatingRow.user_id == user_id)
                ).scalars()
            )
            session.execute(delete(RatingRow).where(RatingRow.user_id == user_id))
            deleted = session.execute(
                delete(ProfileRow).where(ProfileRow.user_id == user_id)
            ).rowcount
            for coffee_id in coffee_ids:
                self._refresh_aggregates(session, coffee_id)
            session.commit()
            return bool(deleted)

    def list_roasteries(
        self,
        *,
        q_norm: Optional[str] = None,
        city_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[RoasteryRecord], int]:
        filters = []
        if q_norm:
            filters.append(RoasteryRow.normalized_name.contains(q_norm, autoescape=True))
        if city_norm:
            filters.append(RoasteryRow.normalized_city == city_norm)
        with self.Session() as session:
            total = session.execute(
                select(func.count()).select_from(RoasteryRow).where(*filters)
            ).scalar_one()
            rows = (
                session.execute(
                    select(RoasteryRow)
                    .where(*filters)
                    .order_by(RoasteryRow.name.asc(), RoasteryRow.id.asc())
                    .offset(offset)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_roastery(row) for row in rows], total

    def get_roastery(self, roastery_id: str) -> Optional[RoasteryRecord]:
        with self.Session() as session:
            row = session.get(RoasteryRow, roastery_id)
            return self._to_roastery(row) if row else None

    def create_roastery(self, name: str, city: str) -> RoasteryRecord:
        with self.Session() as session:
            row = RoasteryRow(
                id=_new_id(),
                name=name,
                city=city,
                normalized_name=normalize_for_search(name),
                normalized_city=normalize_for_search(city),
                created_at=self.clock(),
            )
            session.add(row)
            self._commit(session, "roasteries_normalized_name_city_key")
            return self._to_roastery(row)

    def list_coffees(
        self,
        *,
        roastery_id: Optional[str] = None,
        q_norm: Optional[str] = None,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[list[CoffeeRecord], int]:
        filters = []
        if roastery_id:
            filters.append(CoffeeRow.roastery_id == roastery_id)
        if q_norm:
            filters.append(CoffeeRow.normalized_name.contains(q_norm, autoescape=True))
        with self.Session() as session:
            total = session.execute(
                select(func.count()).select_from(CoffeeRow).where(*filters)
            ).scalar_one()
            rows = (
                session.execute(
                    select(CoffeeRow)
                    .where(*filters)
                    .order_by(
                        CoffeeRow.avg_main.desc().nulls_last(),
                        CoffeeRow.ratings_count.desc(),
                        CoffeeRow.id.desc(),
                    )
                    .offset(offset)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_coffee(row) for row in rows], total

    def list_roastery_coffees(
        self, roastery_id: str, *, offset: int = 0, limit: int = 30
    ) -> tuple[list[CoffeeRecord], int]:
        with self.Session() as session:
            total = session.execute(
                select(func.count())
                .select_from(CoffeeRow)
                .where(CoffeeRow.roastery_id == roastery_id)
            ).scalar_one()
            rows = (
                session.execute(
                    select(CoffeeRow)
                    .where(CoffeeRow.roastery_id == roastery_id)
                    .order_by(
                        CoffeeRow.avg_main.desc().nulls_last(),
                        CoffeeRow.ratings_count.desc(),
                        CoffeeRow.created_at.desc(),
                        CoffeeRow.name.asc(),
                    )
                    .offset(offset)
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [self._to_coffee(row) for row in rows], total

    def get_coffee(self, coffee_id: str) -> Optional[CoffeeRecord]:
        with self.Session() as session:
            row = session.get(CoffeeRow, coffee_id)
            return self._to_coffee(row) if row else None

    def create_coffee(self, roastery_id: str, name: str) -> CoffeeRecord:
        with self.Session() as session:
            row = CoffeeRow(
                id=_new_id(),
                roastery_id=roastery_id,
                name=name,
                normalized_name=normalize_for_search(name),
                avg_main=None,
                ratings_count=0,
                created_at=self.clock(),
            )
            session.add(row)
            self._commit(session, "coffees_roastery_id_normalized_name_key")
            return self._to_coffee(row)

    def get_rating(self, user_id: str, coffee_id: str) -> Optional[RatingRecord]:
        with self.Session() as session:
            row = session.execute(
                select(RatingRow).where(
                    RatingRow.user_id == user_id, RatingRow.coffee_id == coffee_id
                )
            ).scalar_one_or_none()
            return self._to_rating(row) if row else None

    def upsert_rating(
        self,
        user_id: str,
        coffee_id: str,
        *,
        main: int,
        strength: int,
        acidity: int,
        aftertaste: int,
    ) -> RatingRecord:
        now = self.clock()
        scores = {
            "main": main,
            "strength": strength,
            "acidity": acidity,
            "aftertaste": aftertaste,
        }
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"Rating upsert is not supported on {dialect}")

        stmt = insert(RatingRow).values(
            id=_new_id(),
            user_id=user_id,
            coffee_id=coffee_id,
            created_at=now,
            updated_at=now,
            **scores,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[RatingRow.user_id, RatingRow.coffee_id],
            set_={**scores, "updated_at": now},
        )
        with self.Session() as session:
            session.execute(stmt)
            self._refresh_aggregates(session, coffee_id)
            session.commit()
            row = session.execute(
                select(RatingRow).where(
                    RatingRow.user_id == user_id, RatingRow.coffee_id == coffee_id
                )
            ).scalar_one()
            return self._to_rating(row)

    def _refresh_aggregates(self, session: Session, coffee_id: str) -> None:
        avg_stored, count = session.execute(
            select(func.avg(RatingRow.main), func.count(RatingRow.id)).where(
                RatingRow.coffee_id == coffee_id
            )
        ).one()
        session.execute(
            update(CoffeeRow)
            .where(CoffeeRow.id == coffee_id)
            .values(
                avg_main=round(float(avg_stored) / 2, 2) if count else None,
                ratings_count=count,
            )
        )


Base = declarative_base()


class ProfileRow(Base):
    __tablename__ = "profiles"

    user_id = Column(String, primary_key=True)
    display_name = Column(String(32), nullable=True)
    normalized_display_name = Column(String, nullable=True, unique=True)
    created_at = Column(Float, nullable=False)


class RoasteryRow(Base):
    __tablename__ = "roasteries"
    __table_args__ = (UniqueConstraint("normalized_name", "normalized_city"),)

    id = Column(String, primary_key=True)
    name = Column(String(64), nullable=False)
    city = Column(String(64), nullable=False)
    normalized_name = Column(String, nullable=False, index=True)
    normalized_city = Column(String, nullable=False, index=True)
    created_at = Column(Float, nullable=False)


class CoffeeRow(Base):
    __tablename__ = "coffees"
    __table_args__ = (UniqueConstraint("roastery_id", "normalized_name"),)

    id = Column(String, primary_key=True)
    roastery_id = Column(
        String, ForeignKey("roasteries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(128), nullable=False)
    normalized_name = Column(String, nullable=False, index=True)
    avg_main = Column(Float, nullable=True)
    ratings_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)


class RatingRow(Base):
    __tablename__ = "ratings"
    __table_args__ = (UniqueConstraint("user_id", "coffee_id"),)

    id = Column(String, primary_key=True)
    coffee_id = Column(
        String, ForeignKey("coffees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        String, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    main = Column(SmallInteger, nullable=False)
    strength = Column(SmallInteger, nullable=False)
    acidity = Column(SmallInteger, nullable=False)
    aftertaste = Column(SmallInteger, nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
