from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GET = "get"
    FIND = "find"


class EventState(str, Enum):
    COMPLETED = "completed"
    ERRORED = "errored"


class WireModel(BaseModel):
    """Common behaviour for every inbound/outbound event document.

    Field names starting with an underscore on the wire are mapped through
    aliases. Unknown fields are kept so the response echoes the request.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("*", mode="before")
    @classmethod
    def _null_collections(cls, value: Any, info: ValidationInfo) -> Any:
        # A JSON null for a list/map field means "empty", not "invalid".
        if value is None and info.field_name:
            field = cls.model_fields.get(info.field_name)
            if field is not None and field.default_factory is not None:
                return field.default_factory()
        return value

    def to_body(self) -> Dict[str, Any]:
        body = self.model_dump(by_alias=True, mode="json")
        if body.get("error") is None:
            body.pop("error", None)
        return body


class ResourceEvent(WireModel):
    """Envelope fields shared by every single-resource event."""

    uuid: Optional[str] = Field(None, alias="_uuid")
    batch_id: Optional[str] = Field(None, alias="_batch_id")
    provider_kind: Optional[str] = Field(None, alias="_type")
    provider_type: Optional[str] = Field(None, alias="_provider")
    component_type: Optional[str] = Field(None, alias="_component")
    component_id: Optional[str] = Field(None, alias="_component_id")
    state: Optional[str] = Field(None, alias="_state")
    action: Optional[str] = Field(None, alias="_action")
    name: Optional[str] = None
    datacenter_type: Optional[str] = None
    datacenter_name: Optional[str] = None
    datacenter_region: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    service: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None


class CollectionEvent(WireModel):
    """A bulk `find` request and its response.

    `tags` is the filter every returned component must match.
    """

    uuid: Optional[str] = Field(None, alias="_uuid")
    batch_id: Optional[str] = Field(None, alias="_batch_id")
    provider_kind: Optional[str] = Field(None, alias="_type")
    service: Optional[str] = None
    datacenter_region: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    components: List[Dict[str, Any]] = Field(default_factory=list)
    state: Optional[str] = Field(None, alias="_state")
    error: Optional[str] = None
