import os
import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union, Tuple, List
import yaml
import toml
import json
from dataclasses import dataclass
import structlog
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler, FileModifiedEvent

from flowperf.core.exceptions import ConfigError

logger = structlog.get_logger()


@dataclass(frozen=True)
class PerformanceConfig:
    """Runtime switches for the metrics collector"""
    enable_memory_monitoring: bool = True
    enable_network_monitoring: bool = True
    enable_render_monitoring: bool = True
    memory_check_interval_ms: int = 5000
    render_threshold_ms: float = 16.0
    network_threshold_ms: float = 1000.0
    reporting_endpoint: Optional[str] = None


CONFIG_FILE_NAMES = [
    "flowperf.yaml", "flowperf.yml", "flowperf.toml", "flowperf.json",
    "config.yaml", "config.yml", "config.toml", "config.json",
]


class ConfigFileHandler(FileSystemEventHandler):

    def __init__(self, config_manager: "ConfigManager"):
        self.config_manager = config_manager

    def on_modified(self, event: FileModifiedEvent):
        if event.is_directory:
            return

        path = Path(event.src_path)
        if self.config_manager.config_path and path.name == self.config_manager.config_path.name:
            logger.info("Config file modified", path=str(path))
            self.config_manager.reload()


class ConfigManager:

    DEFAULT_CONFIG = {
        "monitoring": {
            "enable_memory_monitoring": True,
            "enable_network_monitoring": True,
            "enable_render_monitoring": True,
            "memory_check_interval_ms": 5000,
            "render_threshold_ms": 16,
            "network_threshold_ms": 1000,
        },
        "network": {
            "cache_ttl_ms": 300000,
            "cache_capacity": 100,
            "max_concurrency": 10,
            "request_delay_ms": 10,
            "batch_pause_ms": 100,
            "request_timeout_s": 10,
        },
        "leak_detection": {
            "snapshot_every": 10,
            "settle_delay_ms": 100,
            "continuous_interval_ms": 5000,
            "growth_window": 5,
            "growth_threshold_percent": 20,
        },
        "reporting": {
            "destination": "console",
            "endpoint": None,
            "output_dir": "reports",
            "format": "json",
            "history_size": 100,
            "alert_history_size": 50,
            "interval_s": 60,
            "timeframe_hours": 24,
        },
        "logging": {
            "level": "INFO",
            "format": "json",
            "file": None,
            "console": True,
            "performance": True,
        },
    }

    def __init__(self, config_path: Optional[Union[str, Path]] = None, auto_reload: bool = False):
        self.config_path = Path(config_path) if config_path else self._find_config_file()
        self.auto_reload = auto_reload
        self._config: Dict[str, Any] = {}
        self._observer: Optional[Observer] = None

        self.load()

        if self.auto_reload and self.config_path and self.config_path.exists():
            self._setup_file_watcher()

    def _find_config_file(self) -> Optional[Path]:
        search_paths = [
            Path.cwd(),
            Path.home() / ".flowperf",
            Path("/etc/flowperf") if os.name != 'nt' else Path.home() / "AppData" / "Roaming" / "flowperf",
        ]

        for path in search_paths:
            for name in CONFIG_FILE_NAMES:
                config_file = path / name
                if config_file.exists():
                    logger.info("Found config file", path=str(config_file))
                    return config_file

        return None

    def _setup_file_watcher(self):
        self._observer = Observer()
        handler = ConfigFileHandler(self)

        watch_dir = self.config_path.parent
        self._observer.schedule(handler, str(watch_dir), recursive=False)
        self._observer.start()

        logger.info("Config auto-reload enabled", directory=str(watch_dir))

    def load(self) -> None:
        if not self.config_path or not self.config_path.exists():
            logger.warning("No config file found, using defaults")
            self._config = copy.deepcopy(self.DEFAULT_CONFIG)
            return

        try:
            suffix = self.config_path.suffix.lower()

            with open(self.config_path, 'r', encoding='utf-8') as f:
                if suffix in ['.yaml', '.yml']:
                    loaded = yaml.safe_load(f)
                elif suffix == '.toml':
                    loaded = toml.load(f)
                elif suffix == '.json':
                    loaded = json.load(f)
                else:
                    raise ConfigError("config_path", f"Unsupported config format: {suffix}")

            self._config = self._merge_with_defaults(loaded or {})

            logger.info("Config loaded", path=str(self.config_path))

        except Exception as e:
            logger.error("Failed to load config", path=str(self.config_path), error=str(e))
            self._config = copy.deepcopy(self.DEFAULT_CONFIG)

    def reload(self) -> None:
        logger.info("Reloading configuration")
        old_config = copy.deepcopy(self._config)

        try:
            self.load()
            logger.info("Configuration reloaded")
        except Exception as e:
            logger.error("Failed to reload config, keeping old config", error=str(e))
            self._config = old_config

    def _merge_with_defaults(self, config: Dict[str, Any]) -> Dict[str, Any]:
        def deep_merge(default: Dict, override: Dict) -> Dict:
            result = copy.deepcopy(default)

            for key, value in override.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = deep_merge(result[key], value)
                else:
                    result[key] = value

            return result

        return deep_merge(self.DEFAULT_CONFIG, config)

    def get(self, key: str, default: Any = None) -> Any:
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

        logger.info("Config updated", key=key, value=value)

    def save(self, path: Optional[Union[str, Path]] = None) -> None:
        save_path = Path(path) if path else self.config_path

        if not save_path:
            save_path = Path.cwd() / "flowperf.yaml"

        try:
            suffix = save_path.suffix.lower()

            with open(save_path, 'w', encoding='utf-8') as f:
                if suffix in ['.yaml', '.yml']:
                    yaml.dump(self._config, f, default_flow_style=False, sort_keys=False)
                elif suffix == '.toml':
                    toml.dump(self._config, f)
                elif suffix == '.json':
                    json.dump(self._config, f, indent=2)
                else:
                    raise ConfigError("path", f"Unsupported config format: {suffix}")

            logger.info("Config saved", path=str(save_path))

        except Exception as e:
            logger.error("Failed to save config", path=str(save_path), error=str(e))
            raise

    def get_section(self, section: str) -> Dict[str, Any]:
        return self._config.get(section, {})

    def update_section(self, section: str, values: Dict[str, Any]) -> None:
        if section not in self._config:
            self._config[section] = {}

        self._config[section].update(values)
        logger.info("Config section updated", section=section)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    def validate(self) -> Tuple[bool, List[str]]:
        """Validate configuration values"""
        errors = []

        if self.get("monitoring.memory_check_interval_ms", 5000) < 10:
            errors.append("monitoring.memory_check_interval_ms must be at least 10")

        if self.get("monitoring.render_threshold_ms", 16) <= 0:
            errors.append("monitoring.render_threshold_ms must be positive")

        if self.get("monitoring.network_threshold_ms", 1000) <= 0:
            errors.append("monitoring.network_threshold_ms must be positive")

        if self.get("network.cache_capacity", 100) < 1:
            errors.append("network.cache_capacity must be at least 1")

        if self.get("network.cache_ttl_ms", 300000) <= 0:
            errors.append("network.cache_ttl_ms must be positive")

        max_concurrency = self.get("network.max_concurrency", 10)
        if max_concurrency < 1 or max_concurrency > 10:
            errors.append("network.max_concurrency must be between 1 and 10")

        if self.get("leak_detection.snapshot_every", 10) < 1:
            errors.append("leak_detection.snapshot_every must be at least 1")

        if self.get("reporting.history_size", 100) < 1:
            errors.append("reporting.history_size must be at least 1")

        if self.get("reporting.format", "json") not in ("json", "html", "csv"):
            errors.append("reporting.format must be one of json, html, csv")

        if self.get("reporting.destination", "console") not in (None, "console", "download", "api"):
            errors.append("reporting.destination must be one of console, download, api")

        if self.get("reporting.interval_s", 60) <= 0:
            errors.append("reporting.interval_s must be positive")

        if self.get("leak_detection.continuous_interval_ms", 5000) < 10:
            errors.append("leak_detection.continuous_interval_ms must be at least 10")

        valid = len(errors) == 0

        if not valid:
            for error in errors:
                logger.error("Config validation error", error=error)

        return valid, errors

    def performance_config(self) -> PerformanceConfig:
        """Build the collector configuration from the monitoring section"""
        section = self.get_section("monitoring")
        return PerformanceConfig(
            enable_memory_monitoring=bool(section.get("enable_memory_monitoring", True)),
            enable_network_monitoring=bool(section.get("enable_network_monitoring", True)),
            enable_render_monitoring=bool(section.get("enable_render_monitoring", True)),
            memory_check_interval_ms=int(section.get("memory_check_interval_ms", 5000)),
            render_threshold_ms=float(section.get("render_threshold_ms", 16)),
            network_threshold_ms=float(section.get("network_threshold_ms", 1000)),
            reporting_endpoint=self.get("reporting.endpoint"),
        )

    def load_from_env(self) -> None:
        """Load configuration values from FLOWPERF_<SECTION>_<KEY> variables"""
        for key, value in os.environ.items():
            if not key.startswith("FLOWPERF_"):
                continue

            rest = key[len("FLOWPERF_"):].lower()
            section = next((s for s in self._config if rest.startswith(f"{s}_")), None)
            if section is None:
                continue
            config_key = f"{section}.{rest[len(section) + 1:]}"

            if value.lower() in ["true", "false"]:
                value = value.lower() == "true"
            elif value.isdigit():
                value = int(value)
            elif "." in value and value.replace(".", "", 1).isdigit():
                value = float(value)

            self.set(config_key, value)

        logger.info("Configuration loaded from environment variables")

    def cleanup(self) -> None:
        """Stop the file watcher, if any"""
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Config file watcher stopped")


def create_default_config(path: Union[str, Path] = "flowperf.yaml") -> None:
    """Write the default configuration to ``path`` unless it already exists"""
    config_path = Path(path)

    if config_path.exists():
        logger.warning(f"Config file already exists: {config_path}")
        return

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config = ConfigManager(config_path)
    config.save(config_path)
    logger.info(f"Default configuration created: {config_path}")
