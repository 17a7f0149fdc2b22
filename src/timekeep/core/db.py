from typing import Any

from pydantic import BaseModel, ConfigDict


class MongoModel(BaseModel):
    """Base for documents whose primary key field is aliased to `_id`."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_schema_serialization_defaults_required=True,
    )

    def to_mongo(self) -> dict[str, Any]:
        """Convert the model to a dictionary for MongoDB storage with _id field."""
        return self.model_dump(by_alias=True)
