import uuid
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import and_, case, create_engine, delete, event, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, aliased, sessionmaker
from sqlalchemy.pool import StaticPool
from imgvault.models import ContentType, Image, ImageInfo, UserInfo
from imgvault.settings import settings
from imgvault.storage.tables import Base, ImageRow, ImageVersionRow, UserRow
import logging

log = logging.getLogger(__name__)

# Dialects with native INSERT ... ON CONFLICT DO NOTHING
_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    kwargs: Dict[str, Any] = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    if engine.dialect.name not in _DIALECT_INSERTS:
        raise ValueError(f"Unsupported database dialect: {engine.dialect.name}")

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# -------------------------
# Metadata Repository
# -------------------------
class MetadataRepository:
    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self.engine = engine or create_db_engine(
            database_url or settings.database_url, echo=settings.database_echo
        )
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        log.info("Initialized metadata database (%s)", self.engine.dialect.name)

        # Ensure tables exist at initialization
        self.ensure_tables()

    def ensure_tables(self):
        Base.metadata.create_all(bind=self.engine)

    def _insert_ignore(self, session: Session, model, **values) -> int:
        insert = _DIALECT_INSERTS[self.engine.dialect.name]
        stmt = insert(model).values(**values).on_conflict_do_nothing()
        return session.execute(stmt).rowcount

    # -------------------------
    # Users
    # -------------------------
    def create_user(self, username: str) -> Optional[UserInfo]:
        """Registers username with a fresh namespace. None if it is taken."""
        base_path = uuid.uuid4().hex
        with self.session_factory.begin() as session:
            inserted = self._insert_ignore(
                session, UserRow, username=username, object_base_path=base_path
            )
        if not inserted:
            return None
        log.debug("Created user %s", username)
        return UserInfo(username=username, object_base_path=base_path)

    def find_user(self, username: str) -> Optional[UserInfo]:
        with self.session_factory() as session:
            row = session.execute(
                select(UserRow.username, UserRow.object_base_path)
                .where(UserRow.username == username)
            ).first()
        if row is None:
            return None
        return UserInfo(username=row.username, object_base_path=row.object_base_path)

    # -------------------------
    # Images
    # -------------------------
    def insert_image(
        self,
        image_id: str,
        name: str,
        extension: str,
        content_type: ContentType,
        username: str,
    ) -> bool:
        """Inserts an image row; an existing (name, username) pair is left alone."""
        with self.session_factory.begin() as session:
            inserted = self._insert_ignore(
                session,
                ImageRow,
                id=image_id,
                name=name,
                extension=extension,
                content_type=int(content_type),
                username=username,
            )
        log.debug("Inserted image %s (%s)", image_id, "new" if inserted else "exists")
        return bool(inserted)

    def insert_image_version(
        self,
        image_id: str,
        version: str,
        dimensions: Tuple[int, int],
        size: int,
    ) -> Optional[str]:
        """
            Appends a version to the lineage and makes it current, all in one
            transaction. Returns None if the version was already recorded.
        """
        width, height = dimensions
        with self.session_factory.begin() as session:
            inserted = self._insert_ignore(
                session,
                ImageVersionRow,
                image_id=image_id,
                version=version,
                current=True,
                width=width,
                height=height,
                size=size,
            )
            if not inserted:
                return None
            seq = session.execute(
                select(ImageVersionRow.seq).where(
                    ImageVersionRow.image_id == image_id,
                    ImageVersionRow.version == version,
                )
            ).scalar_one()
            self._promote(session, image_id, seq)
        log.debug("Inserted version %s of image %s", version, image_id)
        return version

    def find_image(self, image_id: str, username: str) -> Optional[ImageInfo]:
        with self.session_factory() as session:
            row = session.execute(
                select(
                    ImageRow.id,
                    ImageRow.name,
                    ImageRow.extension,
                    ImageRow.username,
                    ImageRow.content_type,
                    ImageVersionRow.version,
                )
                .join(ImageVersionRow, ImageVersionRow.image_id == ImageRow.id)
                .where(
                    ImageVersionRow.current.is_(True),
                    ImageRow.id == image_id,
                    ImageRow.username == username,
                )
            ).first()
        if row is None:
            return None
        return ImageInfo(
            id=row.id,
            name=row.name,
            extension=row.extension,
            username=row.username,
            content_type=ContentType(row.content_type),
            version=row.version,
        )

    def find_image_with_lineage(self, image_id: str, username: str) -> Optional[Image]:
        stmt = self._lineage_query(username).where(ImageRow.id == image_id)
        with self.session_factory() as session:
            row = session.execute(stmt).first()
        return _to_image(row) if row is not None else None

    def find_all_images(self, username: str) -> List[Image]:
        stmt = self._lineage_query(username).order_by(ImageRow.id)
        with self.session_factory() as session:
            rows = session.execute(stmt).all()
        return [_to_image(row) for row in rows]

    def find_image_id_by_name(self, name: str, username: str) -> Optional[str]:
        with self.session_factory() as session:
            return session.execute(
                select(ImageRow.id).where(ImageRow.name == name, ImageRow.username == username)
            ).scalar_one_or_none()

    def find_image_extension(self, image_id: str) -> Optional[str]:
        """Extension the image's object key was built with, current version or not."""
        with self.session_factory() as session:
            return session.execute(
                select(ImageRow.extension).where(ImageRow.id == image_id)
            ).scalar_one_or_none()

    def delete_image(self, image_id: str) -> int:
        """Deletes the image row; its versions go with it through the foreign key."""
        with self.session_factory.begin() as session:
            deleted = session.execute(delete(ImageRow).where(ImageRow.id == image_id)).rowcount
        log.debug("Deleted image %s (%d rows)", image_id, deleted)
        return deleted

    def rename_image(self, image_id: str, new_name: str) -> Optional[str]:
        with self.session_factory.begin() as session:
            updated = session.execute(
                update(ImageRow).where(ImageRow.id == image_id).values(name=new_name)
            ).rowcount
        if updated != 1:
            return None
        log.debug("Renamed image %s to %s", image_id, new_name)
        return new_name

    # -------------------------
    # Lineage navigation
    # -------------------------
    def revert_image_version(self, image_id: str) -> Optional[str]:
        """Moves the current pointer one step back. None at the initial version."""
        return self._step(image_id, forward=False)

    def restore_image_version(self, image_id: str) -> Optional[str]:
        """Moves the current pointer one step forward. None at the latest version."""
        return self._step(image_id, forward=True)

    def _step(self, image_id: str, forward: bool) -> Optional[str]:
        v = ImageVersionRow
        with self.session_factory.begin() as session:
            current = session.execute(
                select(v.seq, v.version)
                .where(v.image_id == image_id, v.current.is_(True))
                .with_for_update()
            ).first()
            if current is None:
                return None

            # compare against the stored timestamp, not a re-bound python value
            anchor = aliased(ImageVersionRow)
            current_ts = select(anchor.ts).where(anchor.seq == current.seq).scalar_subquery()
            if forward:
                neighbour = or_(v.ts > current_ts, and_(v.ts == current_ts, v.seq > current.seq))
                order = (v.ts.asc(), v.seq.asc())
            else:
                neighbour = or_(v.ts < current_ts, and_(v.ts == current_ts, v.seq < current.seq))
                order = (v.ts.desc(), v.seq.desc())

            target = session.execute(
                select(v.seq, v.version)
                .where(v.image_id == image_id, v.version != current.version, neighbour)
                .order_by(*order)
                .limit(1)
            ).first()
            if target is None:
                return None
            self._promote(session, image_id, target.seq)
        log.debug("Moved image %s from version %s to %s", image_id, current.version, target.version)
        return target.version

    def _promote(self, session: Session, image_id: str, seq: int):
        # single statement: the target becomes current, every sibling stops being current
        session.execute(
            update(ImageVersionRow)
            .where(ImageVersionRow.image_id == image_id)
            .values(current=case((ImageVersionRow.seq == seq, True), else_=False))
        )

    def _lineage_query(self, username: str):
        v = ImageVersionRow
        owned = select(ImageRow.id).where(ImageRow.username == username)
        ranked = (
            select(
                v.image_id,
                v.version,
                v.ts,
                v.current,
                v.width,
                v.height,
                v.size,
                func.row_number().over(partition_by=v.image_id, order_by=(v.ts, v.seq)).label("version_index"),
                func.count().over(partition_by=v.image_id).label("version_count"),
            )
            .where(v.image_id.in_(owned))
            .subquery("ranked")
        )
        return (
            select(
                ImageRow.id,
                ImageRow.name,
                ImageRow.extension,
                ImageRow.content_type,
                ImageRow.created_at,
                ranked.c.ts.label("last_modified"),
                ranked.c.version,
                ranked.c.width,
                ranked.c.height,
                ranked.c.size,
                ranked.c.version_index,
                ranked.c.version_count,
            )
            .outerjoin(ranked, and_(ranked.c.image_id == ImageRow.id, ranked.c.current.is_(True)))
            .where(ImageRow.username == username)
        )

    def close(self):
        self.engine.dispose()
        log.info("Closed metadata database")


def _to_image(row) -> Image:
    return Image(
        id=row.id,
        name=row.name,
        extension=row.extension,
        content_type=ContentType(row.content_type),
        created_at=row.created_at,
        last_modified=row.last_modified,
        version=row.version,
        width=row.width,
        height=row.height,
        size=row.size,
        version_index=row.version_index,
        version_count=row.version_count or 0,
    )
