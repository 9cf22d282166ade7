import re
import unittest
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from fastapi import Request
from fastapi.testclient import TestClient

from cinescope.db.session import get_db
from cinescope.deps.auth import get_optional_user
from cinescope.main import app
from cinescope.services.catalog_service import InvalidCatalogRequestError
from cinescope.services.movie_list_service import DuplicateListItemError
from cinescope.services.quiz_service import QuizInactiveError

EMPTY_MENU = {"movie_genres": [], "tv_genres": []}
TOKEN_PATTERN = re.compile(r'name="_token" value="([^"]+)"')


def _fake_user(**overrides):
    base = {"id": 1, "email": "alice@example.com", "is_admin": False, "is_active": True}
    base.update(overrides)
    return SimpleNamespace(**base)


class WebTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(app, follow_redirects=False)
        app.dependency_overrides[get_db] = lambda: iter([object()])
        self.menu_patcher = patch(
            "cinescope.core.templating.get_all_genres_menu",
            new=AsyncMock(return_value=EMPTY_MENU),
        )
        self.menu_patcher.start()

    def tearDown(self) -> None:
        self.menu_patcher.stop()
        app.dependency_overrides.clear()

    def login_as(self, user) -> None:
        def fake_optional_user(request: Request):
            request.state.user = user
            return user

        app.dependency_overrides[get_optional_user] = fake_optional_user


class TestSystemAndCatalog(WebTestCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_search_suggestions(self) -> None:
        with patch(
            "cinescope.api.catalog.search_suggestions",
            new=AsyncMock(return_value={"results": [{"id": 603, "media_type": "movie"}]}),
        ):
            response = self.client.get("/api/search", params={"q": "matrix"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"][0]["id"], 603)

    def test_unknown_genre_is_404_page(self) -> None:
        with patch(
            "cinescope.api.catalog.fetch_content",
            new=AsyncMock(side_effect=InvalidCatalogRequestError("nope")),
        ):
            response = self.client.get("/list/westerns")
        self.assertEqual(response.status_code, 404)
        self.assertIn("Ce genre n&#39;existe pas.", response.text)

    def test_genre_listing_renders_cards(self) -> None:
        result = {
            "items": [{"id": 694, "title": "Shining", "year": "1980", "is_series": False,
                       "vote_average": 8.2, "badges": []}],
            "list_title": "Films : Horreur",
            "is_series": False,
            "total_pages": 3,
            "total_results": 60,
        }
        with patch("cinescope.api.catalog.fetch_content", new=AsyncMock(return_value=result)) as fetch:
            response = self.client.get("/list/27", params={"sort": "vote_average.asc", "page": 2})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Shining", response.text)
        fetch.assert_awaited_once_with("27", "vote_average", "asc", 2)

    def test_non_numeric_or_out_of_range_page_is_404_page(self) -> None:
        with patch("cinescope.api.catalog.fetch_content", new=AsyncMock()) as fetch, \
             patch("cinescope.api.catalog.fetch_in_theaters", new=AsyncMock()) as theaters, \
             patch("cinescope.api.catalog.search_page", new=AsyncMock()) as search:
            for url, params in (
                ("/list/27", {"page": "abc"}),
                ("/cinema", {"page": "501"}),
                ("/search", {"q": "matrix", "page": "0"}),
            ):
                response = self.client.get(url, params=params)
                self.assertEqual(response.status_code, 404, url)
                self.assertIn("Cette page n&#39;existe pas.", response.text)
        fetch.assert_not_called()
        theaters.assert_not_called()
        search.assert_not_called()

    def test_empty_search_redirects_home(self) -> None:
        response = self.client.get("/search", params={"q": "  "})
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/selection")

    def test_movie_page(self) -> None:
        page = {
            "item": {"id": 603, "title": "Matrix", "vote_average": 8.2, "overview": "Neo..."},
            "is_series": False,
            "omdb": None,
            "watch_providers": {"flatrate": [], "rent": [], "buy": []},
            "links": {"tmdb": "https://www.themoviedb.org/movie/603", "imdb": None,
                      "rotten_tomatoes": None, "metacritic": None},
            "badges": [{"key": "classic", "label": "Classique 80/90", "icon": "fa-popcorn", "reason": "Sorti en 1999"}],
        }
        with patch("cinescope.api.content.build_content_page", new=AsyncMock(return_value=page)), \
             patch("cinescope.api.content.recommend_for_content", new=AsyncMock(return_value=[])):
            response = self.client.get("/movie/603")
        self.assertEqual(response.status_code, 200)
        self.assertIn("Classique 80/90", response.text)


class TestJsonEndpoints(WebTestCase):
    def test_showtimes_require_coordinates(self) -> None:
        response = self.client.get("/api/showtimes/nearby", params={"lat": "48.85"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["error"]["code"], "MISSING_COORDINATES")

        response = self.client.get("/api/showtimes/nearby", params={"lat": "95", "lng": "2.35"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"]["error"]["code"], "INVALID_COORDINATES")

    def test_showtimes_success(self) -> None:
        provider = SimpleNamespace(find_nearby_showtimes=AsyncMock(return_value=[{
            "cinema_id": 1, "name": "Le Grand Rex", "address": "", "city": "Paris",
            "distance": 1.6, "lat": 48.87, "lng": 2.34,
            "showtimes": [{"film_id": 603, "title": "Matrix", "time": "20:15", "screen": None}],
        }]))
        with patch("cinescope.api.showtimes.get_showtimes_provider", return_value=provider):
            response = self.client.get(
                "/api/showtimes/nearby",
                params={"lat": "48.8566", "lng": "2.3522", "movieId": "603"},
            )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["count"], 1)
        provider.find_nearby_showtimes.assert_awaited_once_with(48.8566, 2.3522, 603)

    def test_recommendations_api(self) -> None:
        response = self.client.get("/api/recommendations/person/1")
        self.assertEqual(response.status_code, 404)

        row = {"id": 604, "kind": "movie", "is_series": False, "title": "Matrix Reloaded",
               "poster_path": None, "vote_average": 7.0, "year": "2003", "score": 12.0,
               "reasons": ["Même réalisateur"]}
        with patch("cinescope.api.recommendations.recommend_for_content",
                   new=AsyncMock(return_value=[row])):
            response = self.client.get("/api/recommendations/movie/603", params={"limit": 5})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)


class TestMovieListRoutes(WebTestCase):
    def test_pages_redirect_anonymous_users_to_login(self) -> None:
        response = self.client.get("/mes-listes")
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/login")

    def test_json_routes_return_401_for_anonymous_users(self) -> None:
        response = self.client.post(
            "/mes-listes/favoris/toggle",
            json={"tmdbId": 603, "tmdbType": "movie"},
            headers={"accept": "application/json"},
        )
        self.assertEqual(response.status_code, 401)

    def test_toggle_favorite(self) -> None:
        self.login_as(_fake_user())
        with patch("cinescope.api.movie_lists.toggle_favorite", return_value=True) as toggle:
            response = self.client.post("/mes-listes/favoris/toggle", json={"tmdbId": 603, "tmdbType": "movie"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Ajouté aux favoris")
        self.assertEqual(toggle.call_args.args[2:], ("movie", 603))

    def test_toggle_favorite_rejects_bad_type(self) -> None:
        self.login_as(_fake_user())
        response = self.client.post("/mes-listes/favoris/toggle", json={"tmdbId": 603, "tmdbType": "person"})
        self.assertEqual(response.status_code, 422)

    def test_add_item(self) -> None:
        self.login_as(_fake_user())
        item = SimpleNamespace(id=9, movie_list=SimpleNamespace(name="À voir"))
        with patch("cinescope.api.movie_lists.add_item", return_value=item):
            response = self.client.post("/mes-listes/4/add/movie/603")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json(), {"message": "Ajouté avec succès !", "list_name": "À voir", "item_id": 9})

        with patch("cinescope.api.movie_lists.add_item", side_effect=DuplicateListItemError("dup")):
            response = self.client.post("/mes-listes/4/add/movie/603")
        self.assertEqual(response.status_code, 409)

    def test_create_list_needs_valid_token(self) -> None:
        self.login_as(_fake_user())
        with patch("cinescope.api.movie_lists.create_list") as create:
            response = self.client.post("/mes-listes/creer", data={"name": "Soirée", "_token": "forged"})
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/mes-listes/creer")
        create.assert_not_called()

    def test_create_list(self) -> None:
        self.login_as(_fake_user())
        form_page = self.client.get("/mes-listes/creer")
        token = TOKEN_PATTERN.search(form_page.text).group(1)

        with patch("cinescope.api.movie_lists.create_list",
                   return_value=SimpleNamespace(id=7, name="Soirée")) as create:
            response = self.client.post("/mes-listes/creer", data={"name": " Soirée ", "_token": token})
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/mes-listes/7")
        self.assertEqual(create.call_args.args[2:], ("Soirée", None))

    def test_list_delete_token_does_not_delete_item_with_same_id(self) -> None:
        self.login_as(_fake_user())
        summary = {"id": 7, "name": "Soirée", "description": None, "is_system": False,
                   "created_at": datetime(2026, 10, 1), "item_count": 0}
        with patch("cinescope.api.movie_lists.list_user_lists", return_value=[summary]):
            page = self.client.get("/mes-listes")
        list_token = TOKEN_PATTERN.search(page.text).group(1)

        with patch("cinescope.api.movie_lists.get_list_item",
                   return_value=SimpleNamespace(id=7, movie_list_id=3)), \
             patch("cinescope.api.movie_lists.remove_item") as remove:
            response = self.client.post("/mes-listes/item/7/supprimer", data={"_token": list_token})
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/mes-listes/3")
        remove.assert_not_called()

        with patch("cinescope.api.movie_lists.delete_list", return_value="Soirée") as delete:
            response = self.client.post("/mes-listes/7/supprimer", data={"_token": list_token})
        self.assertEqual(response.headers["location"], "/mes-listes")
        delete.assert_called_once()


class TestQuizRoutes(WebTestCase):
    def _quiz(self, **overrides):
        base = {
            "id": 1, "title": "Les classiques", "theme": "classiques", "difficulty": "facile",
            "is_active": True,
            "questions": [SimpleNamespace(id=11, text="Qui a réalisé Vertigo ?",
                                          choices=["Hitchcock", "Welles", "Ford", "Hawks"],
                                          correct_answer="Hitchcock", explanation=None)],
        }
        base.update(overrides)
        return SimpleNamespace(**base)

    def test_submit_renders_result(self) -> None:
        quiz = self._quiz()
        result = SimpleNamespace(score=1, reward="🏆 Maître du 7e Art")
        with patch("cinescope.api.quiz.get_playable_quiz", return_value=quiz), \
             patch("cinescope.api.quiz.submit_quiz", return_value=result) as submit:
            response = self.client.post("/quiz/1/submit", data={"question_11": "Hitchcock"})
        self.assertEqual(response.status_code, 200)
        self.assertIn("Maître du 7e Art", response.text)
        self.assertEqual(submit.call_args.args[2], {"question_11": "Hitchcock"})
        self.assertIsNone(submit.call_args.args[3])

    def test_inactive_quiz_redirects(self) -> None:
        with patch("cinescope.api.quiz.get_playable_quiz", side_effect=QuizInactiveError("off")):
            response = self.client.get("/quiz/1/play")
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/quiz")

    def test_my_results_needs_login(self) -> None:
        response = self.client.get("/quiz/mes-resultats")
        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers["location"], "/login")

    def test_admin_requires_admin(self) -> None:
        self.login_as(_fake_user())
        response = self.client.get("/admin/quiz")
        self.assertEqual(response.status_code, 403)

    def test_admin_index(self) -> None:
        self.login_as(_fake_user(is_admin=True))
        with patch("cinescope.api.admin_quiz.list_all_quizzes", return_value=[self._quiz()]):
            response = self.client.get("/admin/quiz")
        self.assertEqual(response.status_code, 200)
        self.assertIn("Les classiques", response.text)

    def test_admin_create_quiz(self) -> None:
        self.login_as(_fake_user(is_admin=True))
        token = TOKEN_PATTERN.search(self.client.get("/admin/quiz/nouveau").text).group(1)
        form = {
            "_token": token,
            "title": "Hitchcock",
            "theme": "realisateurs",
            "difficulty": "moyen",
            "is_active": "1",
            "questions-0-text": "Qui a réalisé Vertigo ?",
            "questions-0-choices": "Hitchcock, Welles, Ford, Hawks",
            "questions-0-correct_answer": "Hitchcock",
            "questions-0-explanation": "",
            "questions-1-text": "",
            "questions-1-choices": "",
            "questions-1-correct_answer": "",
            "questions-1-explanation": "",
        }
        with patch("cinescope.api.admin_quiz.create_quiz") as create:
            response = self.client.post("/admin/quiz/nouveau", data=form)
        self.assertEqual(response.status_code, 303)
        payload = create.call_args.args[1]
        self.assertEqual(payload.title, "Hitchcock")
        self.assertEqual(len(payload.questions), 1)
        self.assertEqual(payload.questions[0].choices, ["Hitchcock", "Welles", "Ford", "Hawks"])

    def test_admin_create_quiz_shows_errors(self) -> None:
        self.login_as(_fake_user(is_admin=True))
        token = TOKEN_PATTERN.search(self.client.get("/admin/quiz/nouveau").text).group(1)
        form = {
            "_token": token,
            "title": "Hitchcock",
            "theme": "realisateurs",
            "difficulty": "moyen",
            "questions-0-text": "Qui a réalisé Vertigo ?",
            "questions-0-choices": "Hitchcock, Welles",
            "questions-0-correct_answer": "Hitchcock",
        }
        with patch("cinescope.api.admin_quiz.create_quiz") as create:
            response = self.client.post("/admin/quiz/nouveau", data=form)
        self.assertEqual(response.status_code, 400)
        create.assert_not_called()


class TestAuthRoutes(WebTestCase):
    def test_login_failure(self) -> None:
        with patch("cinescope.api.auth.authenticate_user", return_value=None):
            response = self.client.post("/login", data={"email": "a@example.com", "password": "nope"})
        self.assertEqual(response.status_code, 401)
        self.assertIn("Identifiants invalides.", response.text)

    def test_login_sets_cookie(self) -> None:
        with patch("cinescope.api.auth.authenticate_user", return_value=_fake_user()):
            response = self.client.post("/login", data={"email": "alice@example.com", "password": "s3cretpass"})
        self.assertEqual(response.status_code, 303)
        self.assertIn("cinescope_token=", response.headers["set-cookie"])
        self.assertIn("HttpOnly", response.headers["set-cookie"])

    def test_register_validation_errors(self) -> None:
        with patch("cinescope.api.auth.create_user") as create:
            response = self.client.post(
                "/register",
                data={"email": "alice@example.com", "password": "s3cretpass", "password_confirm": "different"},
            )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Passwords do not match", response.text)
        create.assert_not_called()
