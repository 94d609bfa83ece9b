"""Design persistence and the versioning engine."""

from rocket_templates.service.repository import (
    DesignRepository,
    InMemoryDesignRepository,
    JsonDirectoryDesignRepository,
    create_repository,
)
from rocket_templates.service.versioning import (
    DesignPage,
    DesignService,
    PageRequest,
    parse_pagination,
)

__all__ = [
    "DesignRepository",
    "InMemoryDesignRepository",
    "JsonDirectoryDesignRepository",
    "create_repository",
    "DesignPage",
    "DesignService",
    "PageRequest",
    "parse_pagination",
]
