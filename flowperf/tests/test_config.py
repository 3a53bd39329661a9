"""Tests for configuration management"""

import pytest
import json
from pathlib import Path
import yaml
import toml

from flowperf.core.config import ConfigManager, PerformanceConfig, create_default_config
from flowperf.profiling.leak_detector import MemoryLeakDetector
from flowperf.profiling.network_optimizer import NetworkOptimizer
from flowperf.reporting.reporter import ReportConfig
from flowperf.reporting.serializers import ReportFormat
from flowperf.tests.conftest import CountingTransport, FakeMemoryProbe


class TestConfigManager:
    """Test ConfigManager class"""

    def test_default_config_creation(self, temp_dir, monkeypatch):
        """Test creation with default configuration"""
        monkeypatch.chdir(temp_dir)
        config = ConfigManager(config_path=None, auto_reload=False)

        assert config.get("monitoring.memory_check_interval_ms") == 5000
        assert config.get("network.cache_ttl_ms") == 300000
        assert config.get("reporting.format") == "json"

    def test_config_loading_yaml(self, temp_dir):
        """Test loading configuration from YAML file"""
        config_data = {
            "network": {"max_concurrency": 4},
            "reporting": {"format": "html"}
        }

        config_path = temp_dir / "flowperf.yaml"
        with open(config_path, 'w') as f:
            yaml.dump(config_data, f)

        config = ConfigManager(config_path, auto_reload=False)

        assert config.get("network.max_concurrency") == 4
        assert config.get("reporting.format") == "html"
        # Should merge with defaults
        assert config.get("network.cache_capacity") == 100

    def test_config_loading_toml(self, temp_dir):
        """Test loading configuration from TOML file"""
        config_path = temp_dir / "flowperf.toml"
        with open(config_path, 'w') as f:
            toml.dump({"leak_detection": {"snapshot_every": 25}}, f)

        config = ConfigManager(config_path, auto_reload=False)

        assert config.get("leak_detection.snapshot_every") == 25
        assert config.get("leak_detection.growth_window") == 5

    def test_config_loading_json(self, temp_dir):
        """Test loading configuration from JSON file"""
        config_path = temp_dir / "flowperf.json"
        with open(config_path, 'w') as f:
            json.dump({"monitoring": {"render_threshold_ms": 33}}, f)

        config = ConfigManager(config_path, auto_reload=False)

        assert config.get("monitoring.render_threshold_ms") == 33

    def test_unsupported_format_uses_defaults(self, temp_dir):
        config_path = temp_dir / "flowperf.ini"
        config_path.write_text("[network]\nmax_concurrency = 2\n")

        config = ConfigManager(config_path, auto_reload=False)

        assert config.get("network.max_concurrency") == 10

    def test_config_get_set(self, config_manager):
        """Test getting and setting configuration values"""
        # Test get with default
        assert config_manager.get("nonexistent.key", "default") == "default"

        # Test set and get
        config_manager.set("test.key", "test_value")
        assert config_manager.get("test.key") == "test_value"

        # Test nested set and get
        config_manager.set("nested.deep.key", 42)
        assert config_manager.get("nested.deep.key") == 42

    def test_config_save_load(self, temp_dir, config_manager):
        """Test saving and loading configuration"""
        config_manager.set("reporting.output_dir", "perf-reports")

        for name in ("saved_config.yaml", "saved_config.toml", "saved_config.json"):
            save_path = temp_dir / name
            config_manager.save(save_path)

            new_config = ConfigManager(save_path, auto_reload=False)
            assert new_config.get("reporting.output_dir") == "perf-reports"

    def test_sections(self, config_manager):
        config_manager.update_section("reporting", {"interval_s": 5})

        assert config_manager.get_section("reporting")["interval_s"] == 5
        assert config_manager.get_section("missing") == {}
        assert config_manager.to_dict()["reporting"]["interval_s"] == 5

    def test_config_validation(self, config_manager):
        """Test configuration validation"""
        valid, errors = config_manager.validate()
        assert valid
        assert len(errors) == 0

        config_manager.set("network.max_concurrency", 20)
        config_manager.set("reporting.format", "xml")
        valid, errors = config_manager.validate()
        assert not valid
        assert len(errors) == 2

    def test_reporting_validation(self, config_manager):
        config_manager.set("reporting.destination", "email")
        config_manager.set("reporting.interval_s", 0)
        config_manager.set("leak_detection.continuous_interval_ms", 1)

        valid, errors = config_manager.validate()

        assert not valid
        assert errors == [
            "reporting.destination must be one of console, download, api",
            "reporting.interval_s must be positive",
            "leak_detection.continuous_interval_ms must be at least 10",
        ]

    def test_environment_variable_loading(self, config_manager, monkeypatch):
        """Test loading from environment variables"""
        monkeypatch.setenv("FLOWPERF_NETWORK_MAX_CONCURRENCY", "3")
        monkeypatch.setenv("FLOWPERF_LEAK_DETECTION_SETTLE_DELAY_MS", "50")
        monkeypatch.setenv("FLOWPERF_MONITORING_ENABLE_RENDER_MONITORING", "false")
        monkeypatch.setenv("FLOWPERF_MONITORING_RENDER_THRESHOLD_MS", "8.5")

        config_manager.load_from_env()

        assert config_manager.get("network.max_concurrency") == 3
        assert config_manager.get("leak_detection.settle_delay_ms") == 50
        assert config_manager.get("monitoring.enable_render_monitoring") is False
        assert config_manager.get("monitoring.render_threshold_ms") == 8.5

    def test_config_reload(self, temp_dir):
        """Test configuration reloading"""
        config_path = temp_dir / "reload_config.yaml"
        with open(config_path, 'w') as f:
            yaml.dump({"reporting": {"format": "json"}}, f)

        config = ConfigManager(config_path, auto_reload=False)
        assert config.get("reporting.format") == "json"

        with open(config_path, 'w') as f:
            yaml.dump({"reporting": {"format": "csv"}}, f)

        config.reload()
        assert config.get("reporting.format") == "csv"

    def test_managers_are_independent(self, temp_dir):
        first_path = temp_dir / "first.yaml"
        second_path = temp_dir / "second.yaml"
        for path, capacity in ((first_path, 10), (second_path, 20)):
            with open(path, 'w') as f:
                yaml.dump({"network": {"cache_capacity": capacity}}, f)

        first = ConfigManager(first_path, auto_reload=False)
        second = ConfigManager(second_path, auto_reload=False)
        first.set("network.max_concurrency", 2)

        assert first.get("network.cache_capacity") == 10
        assert second.get("network.cache_capacity") == 20
        assert second.get("network.max_concurrency") == 10
        assert NetworkOptimizer.from_config(second, transport=CountingTransport()).max_concurrency == 10

    def test_auto_reload_watcher_cleanup(self, temp_dir):
        config_path = temp_dir / "flowperf.yaml"
        with open(config_path, 'w') as f:
            yaml.dump({}, f)

        config = ConfigManager(config_path, auto_reload=True)
        assert config._observer is not None

        config.cleanup()
        assert config._observer is None


class TestPerformanceConfig:
    """Test collector configuration"""

    def test_defaults(self):
        config = PerformanceConfig()

        assert config.enable_memory_monitoring
        assert config.memory_check_interval_ms == 5000
        assert config.render_threshold_ms == 16
        assert config.network_threshold_ms == 1000
        assert config.reporting_endpoint is None

    def test_from_config_manager(self, config_manager):
        config = config_manager.performance_config()

        assert not config.enable_memory_monitoring
        assert config.memory_check_interval_ms == 1000
        assert config.enable_network_monitoring

    def test_create_default_config(self, temp_dir):
        path = temp_dir / "nested" / "flowperf.yaml"

        create_default_config(path)
        create_default_config(path)

        with open(path) as f:
            data = yaml.safe_load(f)
        assert data["network"]["cache_capacity"] == 100


class TestComponentsFromConfig:
    """Test building components from configuration"""

    def test_network_optimizer(self, config_manager):
        optimizer = NetworkOptimizer.from_config(config_manager, transport=CountingTransport())

        assert optimizer.cache.capacity == 10
        assert optimizer.cache.default_ttl_ms == 60000
        assert optimizer.max_concurrency == 5
        assert optimizer.request_delay == 0

    def test_leak_detector(self, config_manager):
        detector = MemoryLeakDetector.from_config(config_manager, memory_probe=FakeMemoryProbe())

        assert detector.snapshot_every == 5
        assert detector.settle_delay == 0
        assert detector.growth_window == 5
        assert detector.monitoring_interval_ms == 5000

    def test_leak_detector_monitoring_interval(self, config_manager):
        config_manager.set("leak_detection.continuous_interval_ms", 250)

        detector = MemoryLeakDetector.from_config(config_manager, memory_probe=FakeMemoryProbe())

        assert detector.monitoring_interval_ms == 250

    def test_report_config(self, config_manager, temp_dir):
        config_manager.update_section("reporting", {
            "destination": "download",
            "format": "csv",
            "output_dir": str(temp_dir),
            "timeframe_hours": None,
        })

        report_config = ReportConfig.from_config(config_manager)

        assert report_config.destination == "download"
        assert report_config.format == ReportFormat.CSV
        assert report_config.output_dir == str(temp_dir)
        assert report_config.timeframe_hours is None

    def test_report_config_defaults(self, config_manager):
        report_config = ReportConfig.from_config(config_manager)

        assert report_config.destination == "console"
        assert report_config.format == ReportFormat.JSON
        assert report_config.timeframe_hours == 24
