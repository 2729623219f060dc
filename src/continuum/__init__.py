"""continuum: migrate CouchDB databases to new q/n/placement settings.

The migration runs in two phases through the cluster's HTTP API:

    from continuum import Continuum

    async with Continuum(couch_url="http://localhost:5984", source="alpha", q=4) as c:
        await c.create_replica()
        await c.replace_primary()
"""

__version__ = "0.1.0"

from continuum.checkpoint import (  # noqa: E402
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
    get_remaining,
)
from continuum.engine import Continuum, MigrationOptions  # noqa: E402
from continuum.exceptions import (  # noqa: E402
    ConfigurationError,
    ConflictError,
    ContinuumError,
    CouchServerError,
    DatabaseExistsError,
    DatabaseInUseError,
    IllegalDatabaseNameError,
    MismatchError,
    NotFoundError,
    PrimaryChangedError,
    ReplicaMismatchError,
    ReplicationTimeoutError,
    TransportFailure,
    UnauthorizedError,
)
from continuum.identity import DatabaseIdentity  # noqa: E402
from continuum.transport import CouchClient  # noqa: E402

__all__ = [
    "__version__",
    # Engine
    "Continuum",
    "MigrationOptions",
    "DatabaseIdentity",
    "CouchClient",
    # Checkpoints
    "CheckpointStore",
    "FileCheckpointStore",
    "InMemoryCheckpointStore",
    "get_remaining",
    # Exceptions
    "ContinuumError",
    "ConfigurationError",
    "TransportFailure",
    "CouchServerError",
    "NotFoundError",
    "UnauthorizedError",
    "DatabaseExistsError",
    "IllegalDatabaseNameError",
    "ConflictError",
    "DatabaseInUseError",
    "MismatchError",
    "ReplicaMismatchError",
    "PrimaryChangedError",
    "ReplicationTimeoutError",
]
