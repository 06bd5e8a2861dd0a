import asyncio
import threading

from event_pipeline.core.dedupe import DedupSet


async def test_add_reports_first_sighting_only():
    seen = DedupSet("users")
    assert seen.add("1")
    assert not seen.add("1")
    assert seen.add("2")
    assert "1" in seen
    assert "3" not in seen
    assert len(seen) == 2
    assert seen.duplicates == 1


async def test_concurrent_threads_admit_each_key_once():
    seen = DedupSet()
    admitted = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for key in range(500):
            if seen.add(str(key)):
                admitted.append(key)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(admitted) == list(range(500))
    assert seen.duplicates == 7 * 500


async def test_concurrent_tasks_admit_each_key_once():
    seen = DedupSet()

    async def offer(key):
        await asyncio.sleep(0)
        return seen.add(key)

    results = await asyncio.gather(*[offer("42") for _ in range(20)])
    assert results.count(True) == 1
