"""Unit tests for convoy.config.loader module."""

from pathlib import Path

import pytest
import yaml

from convoy.config import loader
from convoy.config.loader import (
    config_exists,
    create_default_config,
    ensure_config_dir,
    get_config_path,
    load_config,
)
from convoy.config.models import ConvoyConfig
from convoy.core.errors import ConfigError


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / ".convoy"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config_file(temp_config_dir: Path) -> Path:
    """Create a config file mixing alias and field names."""
    config_path = temp_config_dir / "config.yaml"
    content = {
        "reconnect": {"baseDelayMs": 250, "maxDelayMs": 2000, "maxAttempts": 4},
        "directory": {"heartbeat_timeout_ms": 15000},
    }
    with config_path.open("w") as f:
        yaml.dump(content, f)
    return config_path


class TestEnsureConfigDir:
    """Test ensure_config_dir function."""

    def test_creates_directory_and_logs(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """ensure_config_dir creates the directory and its logs/ child."""
        target = tmp_path / "home" / ".convoy"
        monkeypatch.setattr(loader, "get_config_dir", lambda: target)

        result = ensure_config_dir()

        assert result == target
        assert (target / "logs").is_dir()

    def test_idempotent(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Calling ensure_config_dir twice is safe."""
        target = tmp_path / ".convoy"
        monkeypatch.setattr(loader, "get_config_dir", lambda: target)

        assert ensure_config_dir() == ensure_config_dir()


class TestGetConfigPath:
    """Test get_config_path resolution."""

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """CONVOY_CONFIG takes priority over the default location."""
        custom = tmp_path / "fleet.yaml"
        monkeypatch.setenv("CONVOY_CONFIG", str(custom))

        assert get_config_path() == custom

    def test_default_location(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without CONVOY_CONFIG the path is ~/.convoy/config.yaml."""
        monkeypatch.delenv("CONVOY_CONFIG", raising=False)

        assert get_config_path() == Path.home() / ".convoy" / "config.yaml"

    def test_blank_env_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A whitespace-only CONVOY_CONFIG falls back to the default."""
        monkeypatch.setenv("CONVOY_CONFIG", "   ")

        assert get_config_path().name == "config.yaml"


class TestCreateDefaultConfig:
    """Test create_default_config function."""

    def test_writes_loadable_yaml(self, tmp_path: Path) -> None:
        """The written file loads into the default configuration."""
        config_path = create_default_config(tmp_path / "cfg")

        assert config_path.name == "config.yaml"
        with config_path.open() as f:
            data = yaml.safe_load(f)
        assert data["reconnect"]["base_delay_ms"] == 1000
        assert load_config(config_path) == ConvoyConfig()

    def test_refuses_to_overwrite(self, temp_config_file: Path) -> None:
        """An existing file is kept unless overwrite=True."""
        with pytest.raises(ConfigError, match="already exists"):
            create_default_config(temp_config_file.parent)

    def test_overwrite(self, temp_config_file: Path) -> None:
        """overwrite=True replaces the existing file."""
        create_default_config(temp_config_file.parent, overwrite=True)

        assert load_config(temp_config_file).reconnect.base_delay_ms == 1000


class TestLoadConfig:
    """Test load_config function."""

    def test_loads_aliases_and_field_names(self, temp_config_file: Path) -> None:
        """Both key styles are honoured and defaults fill the gaps."""
        config = load_config(temp_config_file)

        assert config.reconnect.base_delay_ms == 250
        assert config.reconnect.max_attempts == 4
        assert config.directory.heartbeat_timeout_ms == 15000
        assert config.bus.max_messages == 10_000

    def test_uses_env_path(
        self, temp_config_file: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """With no argument the CONVOY_CONFIG path is loaded."""
        monkeypatch.setenv("CONVOY_CONFIG", str(temp_config_file))

        assert load_config().reconnect.max_delay_ms == 2000

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises ConfigError pointing at config init."""
        with pytest.raises(ConfigError, match="convoy config init") as exc_info:
            load_config(tmp_path / "absent.yaml")

        assert exc_info.value.config_file == str(tmp_path / "absent.yaml")

    def test_empty_file_gives_defaults(self, temp_config_dir: Path) -> None:
        """An empty YAML document means all defaults."""
        path = temp_config_dir / "config.yaml"
        path.write_text("")

        assert load_config(path) == ConvoyConfig()

    def test_malformed_yaml(self, temp_config_dir: Path) -> None:
        """Unparseable YAML raises ConfigError."""
        path = temp_config_dir / "config.yaml"
        path.write_text("reconnect: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_config(path)

    def test_non_mapping_root(self, temp_config_dir: Path) -> None:
        """A list at the document root is rejected."""
        path = temp_config_dir / "config.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_validation_errors_listed(self, temp_config_dir: Path) -> None:
        """Field errors are reported with their dotted location."""
        path = temp_config_dir / "config.yaml"
        with path.open("w") as f:
            yaml.dump({"scheduler": {"max_retries": -3}}, f)

        with pytest.raises(ConfigError, match="validation failed") as exc_info:
            load_config(path)

        assert "scheduler" in exc_info.value.message
        assert "validation_errors" in exc_info.value.details


class TestConfigExists:
    """Test config_exists function."""

    def test_true_for_existing(self, temp_config_file: Path) -> None:
        """config_exists is True for a present file."""
        assert config_exists(temp_config_file) is True

    def test_false_for_missing(self, tmp_path: Path) -> None:
        """config_exists is False for an absent file."""
        assert config_exists(tmp_path / "nope.yaml") is False
