"""FileCache model - one row per file or directory known to the catalog.

The migration only reads identity, path, size and mimetype, and only ever
writes the ``storage`` column (or deletes the row).
"""
from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from s3migrate.models.base import Base


class FileCache(Base):
    __tablename__ = "oc_filecache"

    fileid: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    storage: Mapped[int] = mapped_column(BigInteger, index=True, nullable=False)
    path: Mapped[str] = mapped_column(String(4000), default="", index=True)
    path_hash: Mapped[str] = mapped_column(String(32), default="")
    parent: Mapped[int] = mapped_column(BigInteger, default=-1)
    name: Mapped[str] = mapped_column(String(250), default="")
    mimetype: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mimepart: Mapped[int] = mapped_column(BigInteger, default=0)
    size: Mapped[int] = mapped_column(BigInteger, default=0)
    mtime: Mapped[int] = mapped_column(BigInteger, default=0)
    storage_mtime: Mapped[int] = mapped_column(BigInteger, default=0)
    etag: Mapped[str | None] = mapped_column(String(40), nullable=True)
