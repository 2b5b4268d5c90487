from PIL import Image

from phototriage.library.image_cache import ImageCache


def small_image():
    return Image.new("RGB", (2, 2))


def test_get_returns_cached_image():
    cache = ImageCache()
    key = ImageCache.key_for("a", (100, 100))
    image = small_image()
    cache.put(key, image)
    assert cache.get(key) is image
    assert cache.get(ImageCache.key_for("a", (200, 200))) is None


def test_sizes_do_not_collide():
    assert ImageCache.key_for("a1", (23, 4)) != ImageCache.key_for("a", (123, 4))


def test_count_limit_evicts_least_recent():
    cache = ImageCache(count_limit=2)
    a, b, c = (ImageCache.key_for(name, (1, 1)) for name in "abc")
    cache.put(a, small_image())
    cache.put(b, small_image())
    cache.get(a)
    cache.put(c, small_image())

    assert a in cache
    assert b not in cache
    assert c in cache
    assert len(cache) == 2


def test_cost_limit_evicts():
    cache = ImageCache(cost_limit=100)
    a, b = ImageCache.key_for("a", (1, 1)), ImageCache.key_for("b", (1, 1))
    cache.put(a, small_image(), cost=60)
    cache.put(b, small_image(), cost=60)

    assert a not in cache
    assert b in cache
    assert cache.total_cost == 60


def test_oversized_image_is_not_cached():
    cache = ImageCache(cost_limit=10)
    key = ImageCache.key_for("big", (1, 1))
    assert cache.put(key, Image.new("RGB", (10, 10))) is False
    assert len(cache) == 0


def test_replacing_entry_updates_cost():
    cache = ImageCache()
    key = ImageCache.key_for("a", (1, 1))
    cache.put(key, small_image(), cost=40)
    cache.put(key, small_image(), cost=10)
    assert cache.total_cost == 10


def test_remove_identifier_drops_every_size():
    cache = ImageCache()
    cache.put(ImageCache.key_for("a", (1, 1)), small_image(), cost=5)
    cache.put(ImageCache.key_for("a", (2, 2)), small_image(), cost=5)
    cache.put(ImageCache.key_for("b", (1, 1)), small_image(), cost=5)

    cache.remove_identifier("a")
    assert len(cache) == 1
    assert cache.total_cost == 5

    cache.clear()
    assert len(cache) == 0
    assert cache.total_cost == 0
