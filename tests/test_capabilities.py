"""
Tests for step packs, the capability resolver and handler registration.
"""

import functools

import pytest

from idle_engine.engine.capability_resolver import (
    HOST_METADATA_OWNER,
    CapabilityResolver,
    collect_provider_capabilities,
    find_missing_capabilities,
    normalize_capabilities,
    required_capabilities,
)
from idle_engine.errors import (
    DuplicateStepTypeMetadata,
    MissingStepTypeMetadata,
    SecurityViolation,
    StepHandlerNotFound,
    ValidationError,
)
from idle_engine.steps import CORE_PACK_NAME, EMIT_EVENT, StepHandlerRegistry, StepPack, load_common_step_pack

from .helpers import TEST_PACK, ScriptedProvider, legacy_step, noop_step, scripted_step


class TestCatalogResolution:
    """Merging step-pack metadata catalogs."""

    def test_core_pack_always_included(self):
        catalog = CapabilityResolver().resolve_catalog()

        assert EMIT_EVENT in catalog
        assert catalog[EMIT_EVENT]["RequiredCapabilities"] == ()

    def test_packs_merge(self):
        catalog = CapabilityResolver([TEST_PACK, load_common_step_pack()]).resolve_catalog()

        assert catalog["Test.Scripted"]["RequiredCapabilities"] == ("Test.Script",)
        assert catalog["IdLE.Identity.Disable"]["RequiredCapabilities"] == ("IdLE.Identity.Disable",)

    def test_duplicate_step_type_across_packs(self):
        first = StepPack("Pack.One", {"X": {"RequiredCapabilities": ["A"]}})
        second = StepPack("Pack.Two", {"X": {"RequiredCapabilities": ["B"]}})

        with pytest.raises(DuplicateStepTypeMetadata) as exc_info:
            CapabilityResolver([first, second]).resolve_catalog()

        message = str(exc_info.value)
        assert "'X'" in message
        assert "Pack.One" in message
        assert "Pack.Two" in message
        assert "supplement" in message

    def test_host_cannot_redefine_core_type(self):
        with pytest.raises(DuplicateStepTypeMetadata) as exc_info:
            CapabilityResolver().resolve_catalog({EMIT_EVENT: {"RequiredCapabilities": []}})

        assert exc_info.value.owners == (CORE_PACK_NAME, HOST_METADATA_OWNER)

    def test_host_metadata_rejects_callables(self):
        with pytest.raises(SecurityViolation):
            CapabilityResolver().resolve_catalog({"Custom.Step": {"RequiredCapabilities": noop_step}})

    def test_unknown_metadata_key(self):
        with pytest.raises(ValidationError, match="Handler"):
            CapabilityResolver().resolve_catalog({"Custom.Step": {"Handler": "noop_step"}})

    def test_required_capabilities_lookup(self):
        catalog = CapabilityResolver([TEST_PACK]).resolve_catalog()

        assert required_capabilities(catalog, "Test.Scripted") == ("Test.Script",)
        with pytest.raises(MissingStepTypeMetadata):
            required_capabilities(catalog, "Nope", "Step 1")


class TestCapabilities:
    """Capability normalization and provider advertisement."""

    def test_normalize_sorts_and_deduplicates(self):
        raw = ["IdLE.Identity.Read", "IdLE.Entitlement.Grant", "IdLE.Identity.Read"]

        assert normalize_capabilities(raw, "caps") == ("IdLE.Entitlement.Grant", "IdLE.Identity.Read")

    @pytest.mark.parametrize("capability", ["Has Space", "", ".Leading", 42])
    def test_invalid_capability(self, capability):
        with pytest.raises(ValidationError):
            normalize_capabilities([capability], "caps")

    def test_collect_ignores_non_providers(self):
        providers = {
            "Script": ScriptedProvider(capabilities=["Test.B", "Test.A"]),
            "StepRegistry": {"Test.Noop": "noop_step"},
        }

        assert collect_provider_capabilities(providers) == {"Script": ("Test.A", "Test.B")}

    def test_provider_with_bad_capability(self):
        with pytest.raises(ValidationError):
            collect_provider_capabilities({"Script": ScriptedProvider(capabilities=["bad cap"])})

    def test_find_missing(self):
        advertised = {"One": ("A",), "Two": ("B",)}

        assert find_missing_capabilities(["A", "B", "C"], advertised) == ["C"]


class TestHandlerRegistry:
    """Named handler registration and resolution."""

    def test_resolves_pack_default(self):
        registry = StepHandlerRegistry()
        registry.register_pack(TEST_PACK)

        assert registry.resolve("Test.Noop") == ("noop_step", noop_step)

    def test_step_registry_wins(self):
        registry = StepHandlerRegistry()
        registry.register_pack(TEST_PACK)

        name, handler = registry.resolve("Test.Noop", {"Test.Noop": "scripted_step"})

        assert name == "scripted_step"
        assert handler is scripted_step

    def test_explicit_registration(self):
        registry = StepHandlerRegistry()
        registry.register("custom.legacy", legacy_step, step_types=["Custom.Step"])

        assert registry.has_handler("custom.legacy")
        assert registry.resolve("Custom.Step") == ("custom.legacy", legacy_step)

    def test_unmapped_step_type(self):
        with pytest.raises(StepHandlerNotFound):
            StepHandlerRegistry().resolve("Custom.Step")

    def test_name_conflict(self):
        registry = StepHandlerRegistry()
        registry.register("handler", noop_step)

        with pytest.raises(ValidationError, match="already registered"):
            registry.register("handler", legacy_step)

    def test_rejects_lambda(self):
        with pytest.raises(ValidationError):
            StepHandlerRegistry().register("inline", lambda context, step: None)

    def test_rejects_closure(self):
        def local_handler(context, step):
            return None

        with pytest.raises(ValidationError):
            StepHandlerRegistry().register("local", local_handler)

    def test_rejects_partial(self):
        with pytest.raises(ValidationError):
            StepHandlerRegistry().register("partial", functools.partial(noop_step, None))

    def test_pack_handler_must_exist(self):
        with pytest.raises(ValidationError, match="unknown handler"):
            StepPack("Broken", {"X": {"Handler": "nowhere"}}, handlers=[noop_step])

    def test_pack_from_yaml(self, tmp_path):
        metadata = tmp_path / "metadata.yaml"
        metadata.write_text(
            "Custom.Step:\n  Handler: noop_step\n  RequiredCapabilities:\n    - Custom.Cap\n",
            encoding="utf-8",
        )

        pack = StepPack.from_yaml("Custom", metadata, handlers=[noop_step])

        assert pack.get_step_metadata_catalog() == {"Custom.Step": {"RequiredCapabilities": ["Custom.Cap"]}}
        assert pack.step_handlers == {"Custom.Step": "noop_step"}
