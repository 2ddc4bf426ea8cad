"""Import all models so SQLAlchemy metadata knows about them."""
from s3migrate.models.base import Base
from s3migrate.models.storage import Storage, Mimetype, Mount, DIRECTORY_MIMETYPE
from s3migrate.models.file_record import FileCache

__all__ = [
    "Base",
    "Storage", "Mimetype", "Mount", "FileCache",
    "DIRECTORY_MIMETYPE",
]
