import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from cinescope.core.cache import cache
from cinescope.db.models import (
    FAVORITES_LIST_NAME,
    LEGACY_FAVORITES_LIST_NAME,
    TREASURE_LIST_NAME,
    MovieList,
)
from cinescope.services.movie_list_service import (
    DuplicateListItemError,
    InvalidListPayloadError,
    ListItemNotFoundError,
    ListLimitReachedError,
    MovieListNotFoundError,
    NotListOwnerError,
    SystemListError,
    add_item,
    check_item,
    create_list,
    create_treasure_lists,
    delete_list,
    ensure_system_lists,
    list_user_lists,
    migrate_favorites,
    remove_item,
    show_list,
    toggle_favorite,
)
from db_utils import add_user, make_session


class TestMovieLists(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.alice = add_user(self.db)
        self.bob = add_user(self.db, "bob@example.com")
        ensure_system_lists(self.db, self.alice)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_system_lists_are_created_once(self) -> None:
        self.assertEqual(ensure_system_lists(self.db, self.alice), [])
        names = sorted(row["name"] for row in list_user_lists(self.db, self.alice))
        self.assertEqual(names, sorted([FAVORITES_LIST_NAME, TREASURE_LIST_NAME]))

    def test_create_list_validates_name(self) -> None:
        with self.assertRaises(InvalidListPayloadError):
            create_list(self.db, self.alice, "   ")
        movie_list = create_list(self.db, self.alice, "  Soirée horreur ", "  ")
        self.assertEqual(movie_list.name, "Soirée horreur")
        self.assertIsNone(movie_list.description)
        self.assertFalse(movie_list.is_system)

    def test_list_limit(self) -> None:
        with patch("cinescope.services.movie_list_service.MAX_LISTS_PER_USER", 3):
            create_list(self.db, self.alice, "Une de plus")
            with self.assertRaises(ListLimitReachedError):
                create_list(self.db, self.alice, "Une de trop")

    def test_add_item_counts_and_rejects_duplicates(self) -> None:
        movie_list = create_list(self.db, self.alice, "À voir")
        add_item(self.db, self.alice, movie_list.id, "movie", 603)
        add_item(self.db, self.alice, movie_list.id, "tv", 603)
        with self.assertRaises(DuplicateListItemError):
            add_item(self.db, self.alice, movie_list.id, "movie", 603)

        counts = {row["name"]: row["item_count"] for row in list_user_lists(self.db, self.alice)}
        self.assertEqual(counts["À voir"], 2)
        self.assertEqual(counts[FAVORITES_LIST_NAME], 0)

    def test_add_item_rejects_bad_type_and_foreign_list(self) -> None:
        movie_list = create_list(self.db, self.alice, "À voir")
        with self.assertRaises(InvalidListPayloadError):
            add_item(self.db, self.alice, movie_list.id, "person", 1)
        with self.assertRaises(MovieListNotFoundError):
            add_item(self.db, self.bob, movie_list.id, "movie", 1)

    def test_item_limit(self) -> None:
        movie_list = create_list(self.db, self.alice, "Courte")
        with patch("cinescope.services.movie_list_service.MAX_ITEMS_PER_LIST", 1):
            add_item(self.db, self.alice, movie_list.id, "movie", 1)
            with self.assertRaises(ListLimitReachedError):
                add_item(self.db, self.alice, movie_list.id, "movie", 2)

    def test_system_list_cannot_be_deleted(self) -> None:
        favorites = self.db.query(MovieList).filter_by(user_id=self.alice.id, name=FAVORITES_LIST_NAME).one()
        with self.assertRaises(SystemListError):
            delete_list(self.db, self.alice, favorites.id)

    def test_delete_list_removes_items(self) -> None:
        movie_list = create_list(self.db, self.alice, "Temporaire")
        add_item(self.db, self.alice, movie_list.id, "movie", 1)
        self.assertEqual(delete_list(self.db, self.alice, movie_list.id), "Temporaire")
        self.assertEqual(check_item(self.db, self.alice, "movie", 1), [])
        with self.assertRaises(MovieListNotFoundError):
            delete_list(self.db, self.alice, movie_list.id)

    def test_toggle_favorite(self) -> None:
        self.assertTrue(toggle_favorite(self.db, self.alice, "movie", 27205))
        rows = check_item(self.db, self.alice, "movie", 27205)
        self.assertEqual([r["list_name"] for r in rows], [FAVORITES_LIST_NAME])
        self.assertFalse(toggle_favorite(self.db, self.alice, "movie", 27205))
        self.assertEqual(check_item(self.db, self.alice, "movie", 27205), [])

    def test_toggle_favorite_creates_missing_list(self) -> None:
        self.assertTrue(toggle_favorite(self.db, self.bob, "tv", 1396))
        names = [row["name"] for row in list_user_lists(self.db, self.bob)]
        self.assertEqual(names, [FAVORITES_LIST_NAME])

    def test_remove_item_checks_owner(self) -> None:
        movie_list = create_list(self.db, self.alice, "À voir")
        item = add_item(self.db, self.alice, movie_list.id, "movie", 1)
        with self.assertRaises(NotListOwnerError):
            remove_item(self.db, self.bob, item.id)
        self.assertEqual(remove_item(self.db, self.alice, item.id).name, "À voir")
        with self.assertRaises(ListItemNotFoundError):
            remove_item(self.db, self.alice, item.id)

    def test_maintenance_commands(self) -> None:
        self.db.add(MovieList(user_id=self.bob.id, name=LEGACY_FAVORITES_LIST_NAME))
        self.db.commit()

        self.assertEqual(create_treasure_lists(self.db), 1)
        self.assertEqual(create_treasure_lists(self.db), 0)
        self.assertEqual(migrate_favorites(self.db), 1)

        bob_lists = {row["name"]: row["is_system"] for row in list_user_lists(self.db, self.bob)}
        self.assertEqual(bob_lists, {FAVORITES_LIST_NAME: True, TREASURE_LIST_NAME: True})


class TestShowList(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        cache.clear()
        self.db = make_session()
        self.alice = add_user(self.db)
        self.movie_list = create_list(self.db, self.alice, "Mix")
        add_item(self.db, self.alice, self.movie_list.id, "movie", 603)
        add_item(self.db, self.alice, self.movie_list.id, "tv", 1396)
        add_item(self.db, self.alice, self.movie_list.id, "movie", 999999)

    def tearDown(self) -> None:
        self.db.close()
        cache.clear()

    async def test_show_list_merges_details_newest_first(self) -> None:
        client = MagicMock()

        async def details_many(kind, ids, append=None):
            known = {"movie_603": {"id": 603, "title": "Matrix"}, "tv_1396": {"id": 1396, "name": "Breaking Bad"}}
            return {f"{kind}_{i}": known[f"{kind}_{i}"] for i in ids if f"{kind}_{i}" in known}

        client.details_many = AsyncMock(side_effect=details_many)
        with patch("cinescope.services.movie_list_service.get_tmdb_client", return_value=client):
            movie_list, items = await show_list(self.db, self.alice, self.movie_list.id)

        self.assertEqual(movie_list.name, "Mix")
        self.assertEqual([i["id"] for i in items], [1396, 603])
        self.assertTrue(items[0]["is_series"])
        self.assertIn("list_item_id", items[1])

    async def test_show_list_is_owner_scoped(self) -> None:
        bob = add_user(self.db, "bob@example.com")
        with self.assertRaises(MovieListNotFoundError):
            await show_list(self.db, bob, self.movie_list.id)
