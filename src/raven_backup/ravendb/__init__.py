from .api import AdminClient, RavenAdminAPI
from .lifecycle import DatabaseLifecycleManager, build_database_document, generate_encryption_key
from .smuggler import (
    DISABLE_VERSIONING_FLAG,
    SmugglerFatalError,
    SmugglerWrapper,
    export_arguments,
    import_arguments,
)

__all__ = [
    "AdminClient",
    "RavenAdminAPI",
    "DatabaseLifecycleManager",
    "build_database_document",
    "generate_encryption_key",
    "DISABLE_VERSIONING_FLAG",
    "SmugglerFatalError",
    "SmugglerWrapper",
    "export_arguments",
    "import_arguments",
]
