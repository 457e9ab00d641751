"""Keyed TTL store: memory backend, view invalidation, publish log."""

from projecthub.services import cache_service, event_bus


class TestMemoryBackend:
    def test_publish_log_is_bounded(self):
        backend = cache_service._MemoryBackend(publish_log_size=3)
        for i in range(5):
            backend.publish("notifications", str(i))
        assert list(backend.published) == [("notifications", "2"), ("notifications", "3"),
                                           ("notifications", "4")]

    def test_default_bound(self, app):
        for i in range(cache_service.PUBLISH_LOG_SIZE + 10):
            event_bus.publish(event_bus.CONFLICTS_CHANNEL, {"n": i})
        recent = event_bus.recent(event_bus.CONFLICTS_CHANNEL)
        assert len(recent) == cache_service.PUBLISH_LOG_SIZE
        assert recent[-1] == {"n": cache_service.PUBLISH_LOG_SIZE + 9}

    def test_invalidate_views_only_touches_one_project(self, app):
        cache_service.set_cached(cache_service.view_key("tasks", 1, "a"), [1])
        cache_service.set_cached(cache_service.view_key("tasks", 1, "b"), [2])
        cache_service.set_cached(cache_service.view_key("tasks", 2, "a"), [3])
        cache_service.invalidate_views("tasks", 1)
        assert cache_service.get_cached(cache_service.view_key("tasks", 1, "a")) is None
        assert cache_service.get_cached(cache_service.view_key("tasks", 1, "b")) is None
        assert cache_service.get_cached(cache_service.view_key("tasks", 2, "a")) == [3]
