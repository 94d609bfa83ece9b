"""
Material catalog.

Maps material ids to densities (kg/m^3). Ids missing from the catalog
resolve to the configured fallback density and are logged once per id.
"""

import logging
from typing import Dict, Iterator, Mapping, Optional, Set

from rocket_templates.project_config import DEFAULT_DENSITIES, MaterialsConfig

logger = logging.getLogger(__name__)


class MaterialCatalog(Mapping):
    """Read-only id -> density mapping with a fallback."""

    def __init__(self, densities: Optional[Mapping[str, float]] = None,
                 fallback_density: float = 750.0):
        self._densities: Dict[str, float] = dict(
            DEFAULT_DENSITIES if densities is None else densities
        )
        self.fallback_density = float(fallback_density)
        self._warned: Set[str] = set()

    @classmethod
    def from_config(cls, config: MaterialsConfig) -> 'MaterialCatalog':
        return cls(config.densities, config.fallback_density)

    def __getitem__(self, material_id: str) -> float:
        return self._densities[material_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._densities)

    def __len__(self) -> int:
        return len(self._densities)

    def density(self, material_id: str) -> float:
        """Density of a material, falling back for unknown ids."""
        if material_id in self._densities:
            return self._densities[material_id]
        if material_id not in self._warned:
            self._warned.add(material_id)
            logger.warning("Unknown material '%s', using fallback density %.1f kg/m^3",
                           material_id, self.fallback_density)
        return self.fallback_density
