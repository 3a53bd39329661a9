"""Test suite for flowperf"""

# Test configuration
TEST_CONFIG = {
    "monitoring": {
        "enable_memory_monitoring": False,  # Tests drive polling explicitly
        "memory_check_interval_ms": 1000,
        "render_threshold_ms": 16,
        "network_threshold_ms": 1000
    },
    "network": {
        "cache_ttl_ms": 60000,
        "cache_capacity": 10,
        "max_concurrency": 5,
        "request_delay_ms": 0,
        "batch_pause_ms": 0
    },
    "leak_detection": {
        "snapshot_every": 5,
        "settle_delay_ms": 0
    },
    "reporting": {
        "format": "json",
        "history_size": 100
    },
    "logging": {
        "level": "DEBUG",
        "console": True
    }
}
