import unittest
from datetime import datetime
from unittest.mock import patch

import httpx

from cinescope.core.cache import cache
from cinescope.core.config import settings
from cinescope.services.omdb_client import fetch_omdb_scores, imdb_id_of, normalize_omdb_payload
from cinescope.services.showtimes_provider import (
    LOCAL_TZ,
    ShowtimesProvider,
    haversine_km,
    is_valid_coordinate,
)
from cinescope.services.tmdb_client import (
    TMDBClient,
    TMDBConfigError,
    TMDBUpstreamError,
    poster_url,
)


class TestTMDBClient(unittest.IsolatedAsyncioTestCase):
    def _client(self, handler) -> TMDBClient:
        return TMDBClient("test-key", language="fr-FR", transport=httpx.MockTransport(handler), retry_backoff=0)

    def test_missing_api_key_raises(self) -> None:
        with patch.object(settings, "TMDB_API_KEY", ""):
            with self.assertRaises(TMDBConfigError):
                TMDBClient()

    def test_poster_url(self) -> None:
        self.assertEqual(poster_url("/x.jpg"), "https://image.tmdb.org/t/p/w500/x.jpg")
        self.assertIsNone(poster_url(None))

    async def test_get_merges_key_and_language(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"genres": [{"id": 27, "name": "Horreur"}]})

        genres = await self._client(handler).movie_genres()

        self.assertEqual(genres, [{"id": 27, "name": "Horreur"}])
        self.assertEqual(seen["api_key"], "test-key")
        self.assertEqual(seen["language"], "fr-FR")
        self.assertEqual(seen["path"], "/3/genre/movie/list")

    async def test_non_200_yields_empty_payload(self) -> None:
        client = self._client(lambda request: httpx.Response(404, json={"status_message": "nope"}))
        self.assertEqual(await client.details("movie", 1), {})

    async def test_network_errors_are_retried_then_raised(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ConnectError("boom", request=request)

        with self.assertRaises(TMDBUpstreamError):
            await self._client(handler).search_multi("dune")
        self.assertEqual(len(calls), 3)

    async def test_unknown_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            await self._client(lambda r: httpx.Response(200, json={})).details("person", 1)

    async def test_details_many_skips_missing_titles(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/2"):
                return httpx.Response(404)
            return httpx.Response(200, json={"id": int(request.url.path.rsplit("/", 1)[1])})

        results = await self._client(handler).details_many("movie", [1, 2, 3, 1])
        self.assertEqual(sorted(results), ["movie_1", "movie_3"])


class TestOmdb(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        cache.clear()

    def tearDown(self) -> None:
        cache.clear()

    def test_imdb_id_from_movie_or_external_ids(self) -> None:
        self.assertEqual(imdb_id_of({"imdb_id": "tt0133093"}), "tt0133093")
        self.assertEqual(imdb_id_of({"external_ids": {"imdb_id": "tt0903747"}}), "tt0903747")
        self.assertIsNone(imdb_id_of({}))

    def test_normalize_payload_adds_numeric_scores(self) -> None:
        data = normalize_omdb_payload({
            "imdbRating": "8.7",
            "Ratings": [
                {"Source": "Rotten Tomatoes", "Value": "83%"},
                {"Source": "Metacritic", "Value": "73/100"},
            ],
        })
        self.assertEqual(data["imdb_rating_float"], 8.7)
        self.assertEqual(data["rotten_tomatoes_percent"], 83.0)
        self.assertEqual(data["metacritic_score_int"], 73.0)
        self.assertEqual(data["RottenTomatoesScore"], "83%")
        self.assertEqual(data["MetacriticScore"], "73/100")

    async def test_no_api_key_means_no_lookup(self) -> None:
        with patch.object(settings, "OMDB_API_KEY", ""):
            self.assertIsNone(await fetch_omdb_scores({"imdb_id": "tt0133093"}))

    async def test_fetch_and_cache(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.params["i"])
            return httpx.Response(200, json={"Response": "True", "imdbRating": "8.7", "Ratings": []})

        transport = httpx.MockTransport(handler)
        with patch.object(settings, "OMDB_API_KEY", "omdb-key"):
            first = await fetch_omdb_scores({"imdb_id": "tt0133093"}, transport=transport)
            second = await fetch_omdb_scores({"imdb_id": "tt0133093"}, transport=transport)

        self.assertEqual(first["imdb_rating_float"], 8.7)
        self.assertEqual(first, second)
        self.assertEqual(calls, ["tt0133093"])

    async def test_unknown_title_is_not_cached(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={"Response": "False", "Error": "Movie not found!"})

        transport = httpx.MockTransport(handler)
        with patch.object(settings, "OMDB_API_KEY", "omdb-key"):
            self.assertIsNone(await fetch_omdb_scores({"imdb_id": "tt0000000"}, transport=transport))
            self.assertIsNone(await fetch_omdb_scores({"imdb_id": "tt0000000"}, transport=transport))
        self.assertEqual(len(calls), 2)

    async def test_network_error_returns_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("down", request=request)

        with patch.object(settings, "OMDB_API_KEY", "omdb-key"):
            result = await fetch_omdb_scores({"id": 5, "imdb_id": "tt1"}, transport=httpx.MockTransport(handler))
        self.assertIsNone(result)


PARIS = (48.8566, 2.3522)


def _movieglu_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/cinemasNearby/":
        return httpx.Response(200, json={"cinemas": [
            {"cinema_id": 1, "cinema_name": "Le Grand Rex", "address": "1 bd Poissonnière",
             "city": "Paris", "lat": 48.8707, "lng": 2.3479},
            {"cinema_id": 2, "cinema_name": "Pathé Bellecour", "city": "Lyon", "lat": 45.7578, "lng": 4.8320},
            {"cinema_id": 3, "cinema_name": "MK2 Bibliothèque", "city": "Paris", "lat": 48.8330, "lng": 2.3760},
        ]})
    if request.url.path == "/cinemaShowTimes/":
        if request.url.params["cinema_id"] == "3":
            return httpx.Response(200, json={"films": []})
        return httpx.Response(200, json={"films": [
            {"film_id": 603, "film_name": "Matrix", "showings": {
                "Standard": {"times": [{"start_time": "20:15", "screen_name": "Salle 1"}]},
                "3D": {"times": [{"start_time": "22:00"}]},
            }},
            {"film_id": 604, "film_name": "Matrix Reloaded", "showings": {
                "Standard": {"times": [{"start_time": "18:00"}]},
            }},
        ]})
    return httpx.Response(404)


class TestShowtimesProvider(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        cache.clear()
        self.provider = ShowtimesProvider(
            transport=httpx.MockTransport(_movieglu_handler),
            now=datetime(2026, 10, 18, 14, 30, tzinfo=LOCAL_TZ),
        )

    def tearDown(self) -> None:
        cache.clear()

    def test_haversine(self) -> None:
        self.assertAlmostEqual(haversine_km(*PARIS, 45.7640, 4.8357), 392, delta=3)
        self.assertEqual(haversine_km(*PARIS, *PARIS), 0)

    def test_coordinate_ranges(self) -> None:
        self.assertTrue(is_valid_coordinate(-90, 180))
        self.assertFalse(is_valid_coordinate(91, 0))
        self.assertFalse(is_valid_coordinate(0, -181))

    def test_headers_use_sandbox_geolocation(self) -> None:
        self.provider.territory = "XX"
        headers = self.provider.headers(*PARIS)
        self.assertEqual(headers["geolocation"], "-22.0;14.0")
        self.assertEqual(headers["api-version"], "v201")
        self.assertEqual(headers["device-datetime"], "2026-10-18T14:30:00.000Z")

        self.provider.territory = "FR"
        self.assertEqual(self.provider.headers(*PARIS)["geolocation"], "48.8566;2.3522")

    async def test_far_cinemas_are_dropped(self) -> None:
        cinemas = await self.provider.find_nearby_cinemas(*PARIS)
        self.assertEqual([c["cinema_id"] for c in cinemas], [1, 3])

    async def test_only_standard_showings_for_requested_film(self) -> None:
        showtimes = await self.provider.get_cinema_showtimes("1", *PARIS, movie_id=603)
        self.assertEqual(showtimes, [{"film_id": 603, "title": "Matrix", "time": "20:15", "screen": "Salle 1"}])

    async def test_nearby_showtimes_skip_cinemas_without_screenings(self) -> None:
        cinemas = await self.provider.find_nearby_showtimes(*PARIS)
        self.assertEqual(len(cinemas), 1)
        self.assertEqual(cinemas[0]["name"], "Le Grand Rex")
        self.assertEqual(len(cinemas[0]["showtimes"]), 2)

    async def test_upstream_failure_degrades_to_empty(self) -> None:
        provider = ShowtimesProvider(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        self.assertEqual(await provider.find_nearby_showtimes(*PARIS, movie_id=603), [])

    async def test_unexpected_payload_shapes_degrade_to_empty(self) -> None:
        provider = ShowtimesProvider(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[1, 2])))
        self.assertEqual(await provider.find_nearby_cinemas(*PARIS), [])
        self.assertEqual(await provider.get_cinema_showtimes("1", *PARIS), [])
        self.assertEqual(await provider.find_nearby_showtimes(*PARIS), [])

    async def test_malformed_films_degrade_to_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"films": ["Matrix"]})

        provider = ShowtimesProvider(transport=httpx.MockTransport(handler))
        self.assertEqual(await provider.get_cinema_showtimes("1", *PARIS, movie_id=603), [])
