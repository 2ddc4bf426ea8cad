"""camelCase base schemas for the migration API.

Python code stays snake_case; request and response JSON use camelCase
(``dryRun``, ``bytesFreed``, ``currentFile``).
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies. Accept either camelCase or field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CamelORMModel(CamelModel):
    """Responses built from service dataclasses or plain dicts."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
