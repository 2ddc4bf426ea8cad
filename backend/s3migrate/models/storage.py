"""Storage, mimetype and mount models referenced by the file cache."""
from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from s3migrate.models.base import Base

DIRECTORY_MIMETYPE = "httpd/unix-directory"


class Storage(Base):
    """A storage backend. ``id`` is the string identifier, e.g. ``local::/data/``."""
    __tablename__ = "oc_storages"

    numeric_id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    available: Mapped[int] = mapped_column(Integer, default=1)
    last_checked: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Mimetype(Base):
    __tablename__ = "oc_mimetypes"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    mimetype: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)


class Mount(Base):
    """Mount point of a user; ``mount_provider_class`` decides the home storage backend."""
    __tablename__ = "oc_mounts"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    storage_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    root_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mount_point: Mapped[str] = mapped_column(String(4000), nullable=False)
    mount_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    mount_provider_class: Mapped[str] = mapped_column(String(128), default="")
