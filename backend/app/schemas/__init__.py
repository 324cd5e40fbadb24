# Pydantic schemas
from app.schemas.user import (
    UserRole,
    UserRecord,
    UserResponse,
    UserCreate,
    UserUpdate,
)
from app.schemas.resource import (
    ResourceKind,
    Resource,
    ModuleSummary,
    ModuleCreate,
    ModuleRename,
    LinkCreate,
    ResourceList,
    ResolvedResource,
    PublicFile,
    FileStats,
)
from app.schemas.seminar import (
    Seminar,
    SeminarCreate,
    SeminarStatus,
    SeminarView,
    seminar_status,
)
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    SessionInfo,
    BotCheckResult,
)
