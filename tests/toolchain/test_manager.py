"""
Unit tests for high-level toolchain operations.
"""

from unittest.mock import Mock

import pytest

from multimoon.core.exceptions import RegistryFormatError, ToolchainNotFoundError
from multimoon.toolchain.installer import InstallPipeline, InstallResult
from multimoon.toolchain.manager import ToolchainManager
from multimoon.toolchain.registry import Registry


@pytest.fixture
def registry(registry_builder, core_zip) -> Registry:
    return (
        registry_builder.add("old", 100, {"moon": b"old"}, core_zip)
        .add("new", 300, {"moon": b"new"}, core_zip)
        .add("mid", 200, {"moon": b"mid"}, core_zip)
        .build()
    )


@pytest.fixture
def pipeline(config, linux_platform):
    pipeline = InstallPipeline(config, platform=linux_platform)
    pipeline.run = Mock(
        side_effect=lambda registry, toolchain, force=False: InstallResult(
            toolchain_name=toolchain.name, skipped=False
        )
    )
    return pipeline


def _manager(config, registry, pipeline):
    return ToolchainManager(
        config,
        fetch_registry=lambda url: registry,
        pipeline_factory=lambda cfg: pipeline,
    )


def _install(config, content):
    config.bin_dir.mkdir(parents=True, exist_ok=True)
    (config.bin_dir / "moon").write_bytes(content)


class TestShow:
    """Test ToolchainManager.show()."""

    def test_current(self, config, registry, pipeline):
        _install(config, b"mid")
        assert _manager(config, registry, pipeline).show().name == "mid"

    def test_unlisted(self, config, registry, pipeline):
        _install(config, b"custom build")
        assert _manager(config, registry, pipeline).show() is None

    def test_newest_match_wins(self, config, registry_builder, core_zip, pipeline):
        """Test identical binaries published twice resolve to the newest."""
        registry = (
            registry_builder.add("a", 100, {"moon": b"same"}, core_zip)
            .add("b", 200, {"moon": b"same"}, core_zip)
            .build()
        )
        _install(config, b"same")
        assert _manager(config, registry, pipeline).show().name == "b"

    def test_empty_registry(self, config, pipeline):
        empty = Registry(toolchains=(), last_modified=0, downloadfrom="https://x/")
        with pytest.raises(RegistryFormatError, match="no toolchains found"):
            _manager(config, empty, pipeline).show()


class TestList:
    """Test ToolchainManager.list()."""

    def test_oldest_first_with_current(self, config, registry, pipeline):
        _install(config, b"new")

        listing = _manager(config, registry, pipeline).list()

        assert [(t.name, current) for t, current in listing] == [
            ("old", False),
            ("mid", False),
            ("new", True),
        ]


class TestUpdate:
    """Test update operations."""

    def test_update_to_latest(self, config, registry, pipeline):
        result = _manager(config, registry, pipeline).update_to_latest()

        assert result.toolchain_name == "new"
        _, toolchain = pipeline.run.call_args[0]
        assert toolchain.name == "new"

    def test_update_named(self, config, registry, pipeline):
        _manager(config, registry, pipeline).update("old", force=True)

        args, kwargs = pipeline.run.call_args
        assert args[1].name == "old"
        assert kwargs == {"force": True}

    def test_rollback_is_update(self, config, registry, pipeline):
        _manager(config, registry, pipeline).rollback("mid")
        assert pipeline.run.call_args[0][1].name == "mid"

    def test_unknown_toolchain(self, config, registry, pipeline):
        with pytest.raises(ToolchainNotFoundError, match="toolchain nope not found"):
            _manager(config, registry, pipeline).update("nope")
        pipeline.run.assert_not_called()
