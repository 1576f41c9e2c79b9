"""
Capability Resolver for the IdLE engine.

Merges the step-type metadata catalogs contributed by loaded step packs
(plus optional host-supplied metadata) into one catalog, and collects the
capabilities advertised by the supplied providers.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..errors import DuplicateStepTypeMetadata, MissingStepTypeMetadata, ValidationError
from ..providers.base_provider import BaseProvider
from ..security.validator import assert_no_callables
from ..steps.core import CORE_STEP_PACK
from ..steps.registry import StepPack

logger = logging.getLogger(__name__)

CAPABILITY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._\-]*$")
HOST_METADATA_OWNER = "Providers.StepMetadata"

# step type -> {"RequiredCapabilities": (cap, ...)}
Catalog = Dict[str, Dict[str, Tuple[str, ...]]]


def normalize_capabilities(raw: Any, path: str) -> Tuple[str, ...]:
    """
    Validate and normalize a capability list: sorted, de-duplicated.

    Args:
        raw: A capability string or a sequence of them
        path: Location used in error messages

    Returns:
        Sorted tuple of unique capability identifiers
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise ValidationError(f"{path} must be a list of capability identifiers", path=path)

    capabilities: Set[str] = set()
    for index, capability in enumerate(raw):
        if not isinstance(capability, str) or not CAPABILITY_PATTERN.match(capability):
            raise ValidationError(
                f"Invalid capability identifier {capability!r} at {path}[{index}]",
                path=f"{path}[{index}]",
            )
        capabilities.add(capability)
    return tuple(sorted(capabilities))


class CapabilityResolver:
    """
    Builds the merged step-type catalog.

    A step type is owned by exactly one contributor. Host metadata may add
    new step types but never redefine pack-owned ones.
    """

    def __init__(self, step_packs: Optional[Iterable[StepPack]] = None, include_core: bool = True):
        """
        Initialize the resolver.

        Args:
            step_packs: Loaded step packs contributing metadata
            include_core: Whether to include the built-in core pack
        """
        packs = list(step_packs or [])
        if include_core and not any(p is CORE_STEP_PACK for p in packs):
            packs.insert(0, CORE_STEP_PACK)
        self.step_packs = packs

    def resolve_catalog(self, host_metadata: Optional[Mapping[str, Any]] = None) -> Catalog:
        """
        Merge pack catalogs and host metadata.

        Args:
            host_metadata: Providers.StepMetadata supplement (step type -> entry)

        Returns:
            Merged catalog

        Raises:
            DuplicateStepTypeMetadata: If two contributors define the same step type
            SecurityViolation: If host metadata carries callables
            ValidationError: If an entry is malformed
        """
        catalog: Catalog = {}
        owners: Dict[str, str] = {}

        for pack in self.step_packs:
            for step_type, entry in pack.get_step_metadata_catalog().items():
                self._add(catalog, owners, step_type, entry, pack.name)

        if host_metadata is not None:
            assert_no_callables(host_metadata, HOST_METADATA_OWNER)
            if not isinstance(host_metadata, Mapping):
                raise ValidationError(f"{HOST_METADATA_OWNER} must be a mapping", path=HOST_METADATA_OWNER)
            for step_type, entry in host_metadata.items():
                self._add(catalog, owners, step_type, entry, HOST_METADATA_OWNER)

        logger.info(
            f"Resolved step catalog with {len(catalog)} step types from "
            f"{len(self.step_packs)} step packs"
        )
        return catalog

    def _add(self, catalog: Catalog, owners: Dict[str, str], step_type: str,
             entry: Any, owner: str) -> None:
        if step_type in catalog:
            raise DuplicateStepTypeMetadata(step_type, owners[step_type], owner)

        path = f"{owner}.{step_type}"
        if not isinstance(step_type, str) or not step_type.strip():
            raise ValidationError(f"Invalid step type {step_type!r} in {owner}", path=owner)
        if not isinstance(entry, Mapping):
            raise ValidationError(f"Metadata for {path} must be a mapping", path=path)

        unknown = set(entry) - {"RequiredCapabilities", "Description"}
        if unknown:
            raise ValidationError(
                f"Unknown metadata keys for {path}: {', '.join(sorted(unknown))}", path=path
            )

        catalog[step_type] = {
            "RequiredCapabilities": normalize_capabilities(
                entry.get("RequiredCapabilities"), f"{path}.RequiredCapabilities"
            )
        }
        owners[step_type] = owner


def required_capabilities(catalog: Catalog, step_type: str, step_name: Optional[str] = None) -> Tuple[str, ...]:
    """Capabilities a step type requires; raises MissingStepTypeMetadata if unknown."""
    entry = catalog.get(step_type)
    if entry is None:
        raise MissingStepTypeMetadata(step_type, step_name)
    return entry["RequiredCapabilities"]


def collect_provider_capabilities(providers: Optional[Mapping[str, Any]]) -> Dict[str, Tuple[str, ...]]:
    """
    Collect the capabilities advertised by each provider.

    Only values implementing the BaseProvider contract are consulted.

    Returns:
        Provider alias -> sorted, de-duplicated capability tuple
    """
    advertised: Dict[str, Tuple[str, ...]] = {}
    for alias, provider in (providers or {}).items():
        if not isinstance(provider, BaseProvider):
            continue
        advertised[alias] = normalize_capabilities(
            provider.get_capabilities(), f"Providers.{alias}.GetCapabilities()"
        )
    return advertised


def find_missing_capabilities(required: Iterable[str], advertised: Mapping[str, Tuple[str, ...]]) -> List[str]:
    """Return the required capabilities no provider advertises."""
    available = {cap for caps in advertised.values() for cap in caps}
    return sorted(set(required) - available)
