import unittest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from cinescope.core.cache import cache
from cinescope.db.models import FAVORITES_LIST_NAME, MovieList, MovieListItem
from cinescope.services.content_service import ContentNotFoundError
from cinescope.services.recommendation_service import (
    MAX_CANDIDATES_PER_SEED,
    RecommendationScorer,
    build_profile,
    candidate_ids,
    merge_profiles,
    recommend_for_content,
    recommend_for_user,
)
from cinescope.services.tmdb_client import TMDBClient
from db_utils import add_user, make_session


def _detail(tmdb_id, *, genres=(), keywords=(), director=None, cast=(), rating=7.0, **extra):
    item = {
        "id": tmdb_id,
        "title": f"Film {tmdb_id}",
        "release_date": "2010-01-01",
        "vote_average": rating,
        "genres": [{"id": g} for g in genres],
        "keywords": {"keywords": [{"id": k} for k in keywords]},
        "credits": {
            "crew": [{"id": director, "job": "Director"}] if director else [],
            "cast": [{"id": c} for c in cast],
        },
    }
    item.update(extra)
    return item


class TestProfiles(unittest.TestCase):
    def test_build_profile_for_tv_show(self) -> None:
        show = {
            "genre_ids": [18],
            "keywords": {"results": [{"id": 5}]},
            "created_by": [{"id": 66633}],
            "credits": {"cast": [{"id": i} for i in range(15)]},
            "vote_average": 8.9,
        }
        profile = build_profile(show)
        self.assertEqual(profile["genres"], {18})
        self.assertEqual(profile["keywords"], {5})
        self.assertEqual(profile["directors"], {66633})
        self.assertEqual(len(profile["cast"]), 10)
        self.assertEqual(profile["rating"], 8.9)

    def test_merge_profiles_averages_rating(self) -> None:
        merged = merge_profiles([
            build_profile(_detail(1, genres=[1], rating=8.0)),
            build_profile(_detail(2, genres=[2], rating=6.0)),
        ])
        self.assertEqual(merged["genres"], {1, 2})
        self.assertEqual(merged["rating"], 7.0)


class TestScorer(unittest.TestCase):
    def test_rating_bonus(self) -> None:
        self.assertEqual(RecommendationScorer.rating_bonus(7.0, 7.0), 2.0)
        self.assertEqual(RecommendationScorer.rating_bonus(5.0, 8.0), 1.0)
        self.assertEqual(RecommendationScorer.rating_bonus(9.0, 3.0), 0.0)

    def test_score_adds_every_shared_attribute(self) -> None:
        seed = build_profile(_detail(1, genres=[1, 2], keywords=[10], director=99, cast=[7, 8], rating=7.0))
        candidate = build_profile(_detail(2, genres=[2], keywords=[10], director=99, cast=[8], rating=7.0))
        score, reasons = RecommendationScorer.score(seed, candidate)
        # 3 genre + 2 keyword + 5 director + 2 cast + 2 rating
        self.assertEqual(score, 14)
        self.assertIn("Même réalisateur", reasons)

    def test_rank_orders_and_drops_zero_scores(self) -> None:
        seed = build_profile(_detail(1, genres=[1], rating=9.0))
        candidates = [
            _detail(2, genres=[1], rating=6.0),
            _detail(3, genres=[1], rating=6.5),
            _detail(4, rating=2.0),
        ]
        ranked = RecommendationScorer.rank(seed, candidates, "movie")
        self.assertEqual([r["id"] for r in ranked], [3, 2])
        self.assertEqual(ranked[0]["kind"], "movie")
        self.assertEqual(ranked[0]["year"], "2010")

    def test_rank_breaks_score_ties_on_rating_then_id(self) -> None:
        seed = build_profile(_detail(1, genres=[1], rating=10.0))
        candidates = [
            _detail(8, genres=[1], rating=6.0),
            _detail(5, genres=[1], rating=6.5),
            _detail(4, genres=[1], rating=6.0),
            _detail(9, genres=[1], rating=7.0),
        ]
        ranked = RecommendationScorer.rank(seed, candidates, "movie")
        self.assertEqual({r["score"] for r in ranked}, {3})
        self.assertEqual([r["id"] for r in ranked], [9, 5, 4, 8])

    def test_candidate_ids_deduplicates_and_excludes(self) -> None:
        item = {
            "id": 1,
            "recommendations": {"results": [{"id": 2}, {"id": 1}, {"id": 3}]},
            "similar": {"results": [{"id": 3}, {"id": 4}, {"id": 5}]},
        }
        self.assertEqual(candidate_ids(item, exclude={4}), [2, 3, 5])

    def test_candidate_ids_are_capped_after_deduplication(self) -> None:
        item = {
            "id": 1,
            "recommendations": {"results": [{"id": 1}] + [{"id": i} for i in range(2, 17)]},
            "similar": {"results": [{"id": i} for i in range(10, 31)]},
        }
        ids = candidate_ids(item)
        self.assertEqual(len(ids), MAX_CANDIDATES_PER_SEED)
        self.assertEqual(ids, list(range(2, 22)))


class TestRecommendForContent(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        cache.clear()

    def tearDown(self) -> None:
        cache.clear()

    async def test_ranks_hydrated_candidates(self) -> None:
        seed = _detail(1, genres=[1], director=9, rating=8.0,
                       recommendations={"results": [{"id": 2}, {"id": 3}]})
        client = MagicMock()
        client.details_many = AsyncMock(return_value={
            "movie_2": _detail(2, genres=[1], director=9, rating=8.0),
            "movie_3": _detail(3, genres=[1], rating=8.0),
        })
        with patch("cinescope.services.recommendation_service.get_content_detail",
                   new=AsyncMock(return_value=seed)), \
             patch("cinescope.services.recommendation_service.get_tmdb_client", return_value=client):
            results = await recommend_for_content("movie", 1, limit=5)
            again = await recommend_for_content("movie", 1, limit=1)

        self.assertEqual([r["id"] for r in results], [2, 3])
        self.assertEqual([r["id"] for r in again], [2])
        self.assertEqual(client.details_many.await_count, 1)

    async def test_missing_seed_gives_empty_list(self) -> None:
        with patch("cinescope.services.recommendation_service.get_content_detail",
                   new=AsyncMock(side_effect=ContentNotFoundError("gone"))):
            self.assertEqual(await recommend_for_content("movie", 1), [])


class TestRecommendForUser(unittest.IsolatedAsyncioTestCase):
    """Personal picks against an in-memory database and a fake TMDb."""

    SEED_RATINGS = {101: 5.0, 102: 6.0, 103: 7.0, 104: 8.0, 105: 9.0, 106: 10.0}

    def setUp(self) -> None:
        cache.clear()
        self.db = make_session()
        self.user = add_user(self.db)
        self.requested: list[int] = []
        client = TMDBClient(
            "test-key",
            language="fr-FR",
            transport=httpx.MockTransport(self._handler),
            retry_backoff=0,
        )
        self.patchers = [
            patch("cinescope.services.content_service.get_tmdb_client", return_value=client),
            patch("cinescope.services.recommendation_service.get_tmdb_client", return_value=client),
        ]
        for patcher in self.patchers:
            patcher.start()

    def tearDown(self) -> None:
        for patcher in self.patchers:
            patcher.stop()
        self.db.close()
        cache.clear()

    def _seed_detail(self, tmdb_id: int) -> dict:
        return _detail(
            tmdb_id,
            genres=[tmdb_id - 100],
            rating=self.SEED_RATINGS[tmdb_id],
            recommendations={"results": [{"id": 500}, {"id": 600}, {"id": 101}]},
        )

    def _handler(self, request: httpx.Request) -> httpx.Response:
        tmdb_id = int(request.url.path.rsplit("/", 1)[-1])
        self.requested.append(tmdb_id)
        if tmdb_id in self.SEED_RATINGS:
            return httpx.Response(200, json=self._seed_detail(tmdb_id))
        if tmdb_id == 600:
            return httpx.Response(200, json=_detail(600, genres=[2, 3], rating=8.0))
        return httpx.Response(404, json={})

    def _add_list(self, name: str, is_system: bool = False) -> MovieList:
        movie_list = MovieList(user_id=self.user.id, name=name, is_system=is_system)
        self.db.add(movie_list)
        self.db.commit()
        return movie_list

    def _add_item(self, movie_list: MovieList, tmdb_id: int, added_at: datetime | None = None) -> None:
        item = MovieListItem(movie_list_id=movie_list.id, tmdb_id=tmdb_id, tmdb_type="movie")
        if added_at is not None:
            item.added_at = added_at
        self.db.add(item)
        self.db.commit()

    async def test_seeds_are_latest_favourites_and_saved_titles_are_excluded(self) -> None:
        favourites = self._add_list(FAVORITES_LIST_NAME, is_system=True)
        for day in (3, 6, 1, 5, 2, 4):
            self._add_item(favourites, 100 + day, datetime(2026, 1, day))
        self._add_item(self._add_list("À voir"), 500)

        original_rank = RecommendationScorer.rank
        with patch.object(RecommendationScorer, "rank", side_effect=original_rank) as rank:
            results = await recommend_for_user(self.db, self.user)

        # five newest favourites, newest first, then one batch for the only new title
        self.assertEqual(self.requested, [106, 105, 104, 103, 102, 600])

        profile = rank.call_args.args[0]
        expected = merge_profiles([build_profile(self._seed_detail(i)) for i in (106, 105, 104, 103, 102)])
        self.assertEqual(profile, expected)
        self.assertEqual(profile["rating"], 8.0)
        self.assertEqual(profile["genres"], {2, 3, 4, 5, 6})

        self.assertEqual([r["id"] for r in results], [600])
        # 2 shared genres + exact rating match + high rating
        self.assertEqual(results[0]["score"], 9.0)

    async def test_no_favourites_means_no_picks(self) -> None:
        self._add_list(FAVORITES_LIST_NAME, is_system=True)
        self._add_item(self._add_list("À voir"), 500)

        self.assertEqual(await recommend_for_user(self.db, self.user), [])
        self.assertEqual(self.requested, [])
