"""Pydantic v2 models produced by the type mapper and the emitter."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from crudforge.profiles.models import ArtifactKind
from crudforge.resource.models import LogicalType, RelationKind


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class HTTPMethod(str, Enum):
    """HTTP methods a generated endpoint may use."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class CrudAction(str, Enum):
    """The canonical CRUD operations, in declaration order."""
    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EnvelopeShape(str, Enum):
    """Shape of the JSON body wrapping a successful response.

    * ``paginated_list`` -- ``{success, count, pagination{page, limit, total, pages}, data[]}``
    * ``item``           -- ``{success, data}``
    * ``deletion``       -- ``{success, data: {}}``
    """
    PAGINATED_LIST = "paginated_list"
    ITEM = "item"
    DELETION = "deletion"


class RelationStorage(str, Enum):
    """What a resource persists for one of its relations."""
    REFERENCE = "reference"
    REFERENCE_LIST = "reference_list"
    JOIN = "join"
    NONE = "none"


# ---------------------------------------------------------------------------
# Contract units
# ---------------------------------------------------------------------------

class PagingParams(BaseModel):
    """Query parameters accepted by a list endpoint."""

    model_config = ConfigDict(frozen=True)

    page_param: str
    limit_param: str
    sort_param: str
    default_page: int
    default_limit: int
    max_limit: int
    default_sort: str


class EndpointDescriptor(BaseModel):
    """One externally observable endpoint of a generated resource."""

    model_config = ConfigDict(frozen=True)

    action: CrudAction
    method: HTTPMethod
    path_template: str = Field(..., description="Path in the target's parameter syntax")
    success_status: int
    error_statuses: tuple[int, ...] = Field(default=())
    envelope: EnvelopeShape
    paging: Optional[PagingParams] = None

    @property
    def label(self) -> str:
        return f"{self.method.value} {self.path_template}"

    @property
    def has_id(self) -> bool:
        return self.action not in (CrudAction.LIST, CrudAction.CREATE)


# ---------------------------------------------------------------------------
# Type mapper output
# ---------------------------------------------------------------------------

class NativeFieldDescriptor(BaseModel):
    """A field resolved against one target profile."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    source_name: str = Field(..., description="Field name as declared in the IR")
    name: str = Field(..., description="Field name in the target's case")
    logical_type: LogicalType
    native_type: str = Field(..., description="Persistence-layer type expression")
    schema_type: str = Field(..., description="Validation-layer type expression")
    required: bool
    unique: bool = False
    model_annotations: tuple[str, ...] = Field(default=())
    validation_annotations: tuple[str, ...] = Field(default=())
    imports: tuple[str, ...] = Field(default=())
    enum_values: tuple[str, ...] = Field(default=())
    reference: Optional[str] = Field(default=None, description="Target resource of a reference")


class ResolvedRelation(BaseModel):
    """A relation resolved against a persistence model.

    ``storage`` says what, if anything, the resource persists for it:
    ``reference`` (single id / foreign key), ``reference_list`` (id array,
    document only), ``join`` (join construct owned by this resource) or
    ``none`` (the other side stores the link).  ``inverse`` relations are not
    declared on this resource; they hold the column another resource's
    OneToMany / OneToOne(other) relation needs here.  ``from_field`` relations
    come from a Reference field whose column is already among the mapped
    fields.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: RelationKind
    target: str
    target_plural: str
    storage: RelationStorage
    column: Optional[NativeFieldDescriptor] = None
    foreign_key: Optional[str] = Field(default=None, description="Foreign-key column, on whichever side stores it")
    join_name: Optional[str] = None
    join_table: Optional[str] = None
    join_left: Optional[str] = None
    join_right: Optional[str] = None
    self_referential: bool = False
    inverse: bool = False
    inverse_of: Optional[str] = Field(default=None, description="Declaring relation an inverse column serves")
    from_field: bool = False


# ---------------------------------------------------------------------------
# Generated artifact
# ---------------------------------------------------------------------------

class GeneratedArtifact(BaseModel):
    """One emitted source file, write-once."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    target_id: str
    resource_name: str
    name: str = Field(..., description="Logical artifact name, e.g. 'Task' or 'UserFriends'")
    source_text: str
    declared_endpoints: tuple[EndpointDescriptor, ...] = Field(default=())
