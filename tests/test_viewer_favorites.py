"""Tests for viewer-side favourites."""

import pytest

from models.entities import Command
from models.results import ErrorKind
from services.viewer_favorites import ViewerFavorites


@pytest.fixture
def favorites(adapter, settings):
    return ViewerFavorites(adapter, settings)


@pytest.mark.asyncio
async def test_toggle_round_trips_through_storage(favorites, adapter, settings):
    assert (await favorites.toggle(2)).success
    assert (await favorites.toggle(5)).success
    assert (await favorites.toggle(2)).success
    assert favorites.ids() == {5}

    reloaded = ViewerFavorites(adapter, settings)
    assert await reloaded.load() == {5}


@pytest.mark.asyncio
async def test_admin_favorite_counts_for_viewer(favorites):
    await favorites.load()
    starred = Command(id=1, name="n", command="c", favorite=True)
    plain = Command(id=2, name="n", command="c")

    assert favorites.is_favorited(starred)
    assert not favorites.is_favorited(plain)
    await favorites.toggle(2)
    assert favorites.is_favorited(plain)


@pytest.mark.asyncio
async def test_failed_write_is_reported_and_not_applied(favorites, store, settings):
    assert (await favorites.toggle(1)).success
    store.fail_keys.add(settings.storage_namespace + settings.viewer_favorites_key)

    result = await favorites.toggle(2)

    assert result.error == ErrorKind.WRITE_FAILED
    assert favorites.ids() == {1}


@pytest.mark.asyncio
async def test_corrupt_favorites_read_as_empty(favorites, adapter, settings):
    await adapter.set(settings.viewer_favorites_key, "[1, 2")
    assert await favorites.load() == set()


@pytest.mark.asyncio
async def test_favorites_do_not_touch_command_records(favorites, adapter):
    await favorites.toggle(1)
    assert await adapter.list("dst:") == set()
