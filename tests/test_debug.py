"""DebugManager 单元测试"""

from modelrelay.routing.debug import DebugManager
from structlog.testing import capture_logs


class TestDebugManager:
    """分级记录、过滤与 structlog 转发"""

    def test_records_levels(self):
        manager = DebugManager()
        manager.debug("d")
        manager.info("i")
        manager.warn("w")
        manager.error("e")

        assert [e.level for e in manager.get_logs()] == ["debug", "info", "warn", "error"]
        assert [e.message for e in manager.get_logs(level="warn")] == ["w"]

    def test_default_category_follows_level(self):
        manager = DebugManager()
        manager.warn("w")
        entry = manager.get_logs()[0]
        assert entry.category == "warning"
        assert entry.source == "system"
        assert entry.data == {}

    def test_filter_by_category(self):
        manager = DebugManager()
        manager.info("a", {"k": 1}, "FallbackOrchestrator", "fallback")
        manager.info("b", category="other")

        entries = manager.get_logs(category="fallback")
        assert len(entries) == 1
        assert entries[0].data == {"k": 1}
        assert entries[0].source == "FallbackOrchestrator"

    def test_ring_buffer(self):
        """超过上限时丢弃最早的记录"""
        manager = DebugManager(max_entries=3)
        for i in range(5):
            manager.info(f"m{i}")
        assert [e.message for e in manager.get_logs()] == ["m2", "m3", "m4"]

    def test_clear(self):
        manager = DebugManager()
        manager.error("e")
        manager.clear()
        assert manager.get_logs() == []

    def test_forwarded_to_structlog(self):
        with capture_logs() as logs:
            manager = DebugManager()
            manager.warn("model failed", {"model_id": "A"}, "FallbackOrchestrator", "fallback")

        assert logs == [
            {
                "event": "model failed",
                "log_level": "warning",
                "source": "FallbackOrchestrator",
                "category": "fallback",
                "data": {"model_id": "A"},
            }
        ]
