"""
Catalog - techniques, presets and compliance thresholds loaded once at startup.

The catalog is validated as a whole when it is built: every technique must be
playable and every preset segment must reference a known technique. Lookups
of unknown ids raise ConfigurationError so callers can reject a selection
before any session state is touched.
"""

from __future__ import annotations
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, Iterable, List, Union

from .models import Technique, Preset, RankFilter
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

BUILTIN_CATALOG_PATH = Path(__file__).parent / "builtin_catalog.json"


class Catalog:
    """
    Read-only catalog of techniques and presets.

    Attributes:
        techniques: Techniques keyed by id (catalog order preserved)
        presets: Presets keyed by id (catalog order preserved)
        compliance_thresholds: Daily seconds required per technique id
    """

    def __init__(
        self,
        techniques: Iterable[Technique],
        presets: Iterable[Preset] = (),
        compliance_thresholds: Optional[Dict[str, int]] = None,
        version: str = "1.0",
    ):
        self.version = version
        self.techniques: Dict[str, Technique] = {}
        self.presets: Dict[str, Preset] = {}
        self.compliance_thresholds: Dict[str, int] = dict(compliance_thresholds or {})

        for technique in techniques:
            is_valid, msg = technique.validate()
            if not is_valid:
                raise ConfigurationError(f"Technique '{technique.id}': {msg}")
            if technique.id in self.techniques:
                raise ConfigurationError(f"Duplicate technique id '{technique.id}'")
            self.techniques[technique.id] = technique

        for preset in presets:
            self.check_preset(preset)
            if preset.id in self.presets:
                raise ConfigurationError(f"Duplicate preset id '{preset.id}'")
            self.presets[preset.id] = preset

    # ===== Lookups =====

    def technique(self, technique_id: str) -> Technique:
        """Return technique by id or raise ConfigurationError."""
        try:
            return self.techniques[technique_id]
        except KeyError:
            raise ConfigurationError(f"Unknown technique id '{technique_id}'") from None

    def preset(self, preset_id: str) -> Preset:
        """Return preset by id or raise ConfigurationError."""
        try:
            return self.presets[preset_id]
        except KeyError:
            raise ConfigurationError(f"Unknown preset id '{preset_id}'") from None

    def check_preset(self, preset: Preset) -> None:
        """Raise ConfigurationError unless *preset* is playable against this catalog."""
        is_valid, msg = preset.validate()
        if not is_valid:
            raise ConfigurationError(f"Preset '{preset.id}': {msg}")
        for i, segment in enumerate(preset.segments):
            if segment.technique_id not in self.techniques:
                raise ConfigurationError(
                    f"Preset '{preset.id}' segment {i} references unknown technique "
                    f"'{segment.technique_id}'"
                )

    def sorted_techniques(self, rank_key: Union[RankFilter, str, None] = RankFilter.PAS) -> List[Technique]:
        """
        Techniques ordered by rank for *rank_key* (1 = best).

        Unknown keys and missing ranks sort last with DEFAULT_RANK; ties keep
        catalog order.
        """
        return sorted(self.techniques.values(), key=lambda tech: tech.rank_for(rank_key))

    # ===== Serialization =====

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "techniques": [tech.to_dict() for tech in self.techniques.values()],
            "presets": [preset.to_dict() for preset in self.presets.values()],
            "complianceThresholds": dict(self.compliance_thresholds),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Catalog:
        try:
            techniques = [Technique.from_dict(item) for item in data.get("techniques", [])]
            presets = [Preset.from_dict(item) for item in data.get("presets", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed catalog data: {exc}") from exc
        thresholds = {str(k): int(v) for k, v in (data.get("complianceThresholds") or {}).items()}
        return cls(techniques, presets, thresholds, version=str(data.get("version", "1.0")))

    @classmethod
    def load(cls, path: Path) -> Catalog:
        """
        Load catalog from JSON file.

        Raises:
            FileNotFoundError: If file doesn't exist
            ConfigurationError: If the catalog contents are not playable
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ConfigurationError(f"Invalid catalog JSON in {path}: {exc}") from exc

        catalog = cls.from_dict(data)
        logger.info(
            "[catalog] Loaded %d techniques, %d presets from %s",
            len(catalog.techniques), len(catalog.presets), path.name,
        )
        return catalog

    def save(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        return path

    @classmethod
    def builtin(cls) -> Catalog:
        """Catalog bundled with the package."""
        return cls.load(BUILTIN_CATALOG_PATH)

    def __repr__(self) -> str:
        return f"Catalog(techniques={len(self.techniques)}, presets={len(self.presets)})"
