import os

from PIL import Image

from spinreel.graphics.sprites import SpriteCache
from spinreel.runtime.health import MB, HealthMonitor, HealthStatus, classify, manage_memory


def test_classify() -> None:
    assert classify(100 * MB, 0, 2) is HealthStatus.READY
    assert classify(350 * MB, 0, 2) is HealthStatus.BUSY
    assert classify(100 * MB, 2, 2) is HealthStatus.BUSY
    assert classify(450 * MB, 0, 2) is HealthStatus.DEGRADED
    assert classify(100 * MB, 3, 2) is HealthStatus.DEGRADED
    assert classify(150 * MB, 0, 2, busy_mb=100, degraded_mb=200) is HealthStatus.BUSY


def test_snapshot_measures_this_process() -> None:
    monitor = HealthMonitor(busy_mb=100_000, degraded_mb=200_000)
    health = monitor.snapshot(queue_length=3, active_jobs=1, max_workers=2, worker_pids=[os.getpid()], completed=4)
    assert health.status is HealthStatus.READY
    assert health.queue_length == 3
    assert health.workers_alive == 1
    assert health.completed == 4
    # own process counted twice: once as coordinator, once as a "worker"
    assert health.memory_usage_bytes >= 2 * monitor.memory_usage_bytes() * 0.9
    assert health.memory_mb > 0

    data = health.as_dict()
    assert data["status"] == "ready"
    assert data["memory_usage_bytes"] == health.memory_usage_bytes


def test_status_uses_largest_process_not_total() -> None:
    rss = HealthMonitor().memory_usage_bytes()
    busy_mb = 2 * rss // MB + 1
    monitor = HealthMonitor(busy_mb=busy_mb, degraded_mb=busy_mb + 100)
    pids = [os.getpid(), os.getpid()]
    health = monitor.snapshot(queue_length=0, active_jobs=0, max_workers=4, worker_pids=pids)
    assert health.memory_usage_bytes / MB > busy_mb
    assert health.status is HealthStatus.READY
    assert not monitor.should_trim(health.peak_process_bytes)


def test_vanished_worker_is_skipped() -> None:
    monitor = HealthMonitor()
    # pid far above any pid_max
    assert monitor.memory_usage_bytes([2 ** 31 - 1]) > 0


def test_should_trim() -> None:
    monitor = HealthMonitor(busy_mb=300, degraded_mb=400)
    assert not monitor.should_trim(200 * MB)
    assert monitor.should_trim(301 * MB)


def test_manage_memory_keeps_essential_sprites() -> None:
    sprites = SpriteCache()
    sprites.get("face", lambda: Image.new("RGB", (8, 8)), essential=True)
    sprites.freeze()
    for key in range(5):
        sprites.get(key, lambda: Image.new("RGB", (8, 8)))

    assert manage_memory(sprites) == 5
    stats = sprites.stats()
    assert stats.volatile_count == 0
    assert stats.essential_count == 1
