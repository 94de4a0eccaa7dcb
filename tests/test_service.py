import pytest

from catalog.criteria import FilterCriteria
from catalog.errors import NotFound, UpstreamRateLimited
from catalog.service import CatalogService, get_catalog_service, set_catalog_service

from conftest import Fail


def _record(game_id, name, rating=None, **extra):
    record = {'id': game_id, 'name': name}
    if rating is not None:
        record['rating'] = rating
    record.update(extra)
    return record


def test_search_games_resolves_and_normalizes(service, upstream):
    upstream.on(
        'games',
        [_record(1, 'Halo', 88.0, age_ratings=[50], websites=[60], genres=[{'id': 5, 'name': 'Shooter'}])],
    )
    upstream.on('age_ratings', [{'id': 50, 'category': 2, 'rating': 4}])
    upstream.on('websites', [{'id': 60, 'category': 27, 'url': 'https://xbox.com/halo'}])

    games = service.search_games(FilterCriteria(genres=[5]))

    assert len(games) == 1
    assert games[0].pegi == 16
    assert games[0].external_links == {'xbox': 'https://xbox.com/halo'}
    assert 'genres = (5)' in upstream.calls_to('games')[0]['body']


def test_rating_filter_paginates_after_post_filter(service, upstream):
    upstream.on(
        'games',
        [
            _record(1, 'A', 69.4),
            _record(2, 'B', 69.6),
            _record(3, 'C', 75.0),
            _record(4, 'D', 80.2),
            _record(5, 'E'),
        ],
    )

    games = service.search_games(FilterCriteria(rating_min=70, limit=2, offset=1))

    assert [game.id for game in games] == [3, 4]
    assert upstream.calls_to('games')[0]['body'].endswith('limit 500; offset 0;')


def test_get_games_count(service, upstream):
    upstream.on('games/count', {'count': 42})

    assert service.get_games_count(FilterCriteria(rating_min=70, rating_max=80)) == 42
    assert upstream.calls_to('games/count')[0]['body'] == 'where rating >= 69 & rating <= 95;'


def test_get_game_by_id_expands_similar_games_and_caches(service, upstream):
    def games_handler(body):
        if 'where id = 7;' in body:
            return [_record(7, 'Portal', 90.0, slug='portal', similar_games=[8])]
        return [_record(8, 'Portal 2', 95.0, cover={'image_id': 'co8'})]

    upstream.on('games', games_handler)

    game = service.get_game_by_id('7')
    again = service.get_game_by_id(7)

    assert game.slug == 'portal'
    assert [similar.name for similar in game.similar_games] == ['Portal 2']
    assert again is game
    assert len(upstream.calls_to('games')) == 2


def test_get_game_by_slug(service, upstream):
    upstream.on('games', [_record(9, 'Celeste', slug='celeste')])

    game = service.get_game_by_id('celeste')

    assert game.id == 9
    assert 'where slug = "celeste";' in upstream.calls_to('games')[0]['body']


def test_get_game_by_id_not_found(service, upstream):
    upstream.on('games', [])

    with pytest.raises(NotFound):
        service.get_game_by_id(123)


def test_get_games_by_ids_empty_makes_no_calls(service, upstream):
    assert service.get_games_by_ids([]) == []
    assert upstream.calls == []


def test_get_games_by_ids_keeps_request_order(service, upstream):
    upstream.on('games', [_record(3, 'Three'), _record(1, 'One'), _record(2, 'Two')])

    games = service.get_games_by_ids(['2', 3, 1, 2, 'bad'])

    assert [game.id for game in games] == [2, 3, 1]
    assert 'where id = (2,3,1);' in upstream.calls_to('games')[0]['body']


def test_popular_games_rate_limited_returns_empty(service, upstream, sleeps):
    upstream.on('games', Fail(429))

    assert service.get_popular_games() == []
    assert sleeps == [1.0, 2.0, 4.0]


def test_showcase_limits_are_capped(service, upstream):
    service.get_popular_games(500)
    service.get_upcoming_games('nope')

    bodies = [call['body'] for call in upstream.calls_to('games')]
    assert bodies[0].endswith('limit 50;')
    assert bodies[1].endswith('limit 12;')


def test_search_propagates_rate_limit(service, upstream):
    upstream.on('games', Fail(429))

    with pytest.raises(UpstreamRateLimited):
        service.search_games(FilterCriteria())


def test_shared_service_instance():
    service = CatalogService()
    set_catalog_service(service)

    assert get_catalog_service() is service


def test_cached_game_links_cannot_be_mutated(service, upstream):
    upstream.on(
        'games',
        [_record(7, 'Halo', websites=[{'id': 1, 'category': 13, 'url': 'https://store.steampowered.com/app/7'}])],
    )
    game = service.get_game_by_id(7)

    with pytest.raises(TypeError):
        game.external_links['steam'] = 'https://evil.example'

    assert service.get_game_by_id(7).external_links == {
        'steam': 'https://store.steampowered.com/app/7'
    }
