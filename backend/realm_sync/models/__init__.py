"""Re-export all ORM classes so metadata sees every table."""
from realm_sync.models.user import RefreshToken, User  # noqa: F401
from realm_sync.models.project import Project  # noqa: F401
from realm_sync.models.document import Document  # noqa: F401
from realm_sync.models.entity import Entity  # noqa: F401
from realm_sync.models.fact import Fact  # noqa: F401
from realm_sync.models.alert import Alert  # noqa: F401
from realm_sync.models.note import EntityNote, Note  # noqa: F401
from realm_sync.models.llm_cache import LLMCacheEntry  # noqa: F401
