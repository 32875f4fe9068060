"""crudforge -- declarative resource-to-CRUD backend generator.

One set of resource descriptions goes in; equivalent Model, Validation,
Controller and Routes sources come out for every requested target stack,
checked against each other for a shared API contract.
"""

from crudforge.config import GeneratorConfig, PagingConfig
from crudforge.errors import (
    Cancelled,
    ContractMismatch,
    CrudforgeError,
    Diagnostic,
    SchemaError,
    SessionError,
    UnknownTargetError,
    UnsupportedConstraintError,
    UnsupportedTypeError,
)
from crudforge.session import (
    CancellationToken,
    GenerationSession,
    SessionOutput,
    SessionResult,
    SessionState,
)
from crudforge.writer import FileWriter

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "Cancelled",
    "ContractMismatch",
    "CrudforgeError",
    "Diagnostic",
    "FileWriter",
    "GenerationSession",
    "GeneratorConfig",
    "PagingConfig",
    "SchemaError",
    "SessionError",
    "SessionOutput",
    "SessionResult",
    "SessionState",
    "UnknownTargetError",
    "UnsupportedConstraintError",
    "UnsupportedTypeError",
    "__version__",
]
