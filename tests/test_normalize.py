import pytest

from catalog.criteria import FilterCriteria
from catalog.normalize import (
    NamedRef,
    NormalizedGame,
    cover_url_from_cover,
    normalize_game,
    normalize_games,
    pegi_from_age_ratings,
    post_filter,
    store_links_from_websites,
)


def _game(game_id, name='Game', rating=None, genres=()):
    return NormalizedGame(
        id=game_id,
        name=name,
        rating=rating,
        genres=tuple(NamedRef(genre_id, f'Genre {genre_id}') for genre_id in genres),
    )


@pytest.mark.parametrize(
    'age_ratings, expected',
    [
        ([{'category': 2, 'rating': 3}], 12),
        ([{'category': 1, 'rating': 9}, {'category': 2, 'rating': 5}], 18),
        ([{'category': 2, 'rating': 9}], None),
        ([{'category': 1, 'rating': 3}], None),
        ([], None),
    ],
)
def test_pegi_from_age_ratings(age_ratings, expected):
    assert pegi_from_age_ratings(age_ratings) == expected


def test_store_links_by_category_and_url():
    websites = [
        {'category': 13, 'url': 'https://store.steampowered.com/app/1'},
        {'category': 1, 'url': 'https://example.com'},
        {'url': 'https://www.gog.com/game/witcher'},
        {'url': 'https://www.xbox.com/games/halo'},
    ]

    assert store_links_from_websites(websites) == {
        'steam': 'https://store.steampowered.com/app/1',
        'gog': 'https://www.gog.com/game/witcher',
        'xbox': 'https://www.xbox.com/games/halo',
    }


def test_store_links_empty_is_none():
    assert store_links_from_websites([{'category': 1, 'url': 'https://example.com'}]) is None


def test_cover_url_variants():
    assert cover_url_from_cover({'image_id': 'co1abc'}) == (
        'https://images.igdb.com/igdb/image/upload/t_cover_big/co1abc.jpg'
    )
    assert cover_url_from_cover({'url': '//images.igdb.com/x.jpg'}) == (
        'https://images.igdb.com/x.jpg'
    )
    assert cover_url_from_cover('co2', size='t_thumb').endswith('/t_thumb/co2.jpg')
    assert cover_url_from_cover(None) is None


def test_normalize_game_reshapes_record():
    record = {
        'id': 1942,
        'name': ' The Witcher 3 ',
        'slug': 'the-witcher-3',
        'rating': 92.6,
        'first_release_date': 1431993600,
        'cover': {'image_id': 'co1wyy'},
        'genres': [{'id': 12, 'name': 'RPG'}, {'id': 12, 'name': 'RPG'}],
        'game_engines': [{'id': 7, 'name': 'REDengine'}],
        'age_ratings': [{'id': 1, 'category': 2, 'rating': 5}],
        'websites': [{'id': 2, 'category': 17, 'url': 'https://gog.com/witcher3'}],
        'videos': [{'video_id': 'abc123'}],
        'screenshots': [{'image_id': 'sc1'}],
        'language_supports': [{'language': {'name': 'English'}, 'language_support_type': 1}],
        'similar_games': [{'id': 5, 'name': 'Dragon Age', 'cover': {'image_id': 'co5'}}],
    }

    game = normalize_game(record)

    assert game.id == 1942
    assert game.name == 'The Witcher 3'
    assert game.display_rating == 93
    assert game.release_date == '2015-05-19T00:00:00.000Z'
    assert game.genres == (NamedRef(12, 'RPG'),)
    assert game.engines == (NamedRef(7, 'REDengine'),)
    assert game.pegi == 18
    assert game.external_links == {'gog': 'https://gog.com/witcher3'}
    assert game.trailer_video_id == 'abc123'
    assert game.screenshots[0].url.endswith('/t_screenshot_big/sc1.jpg')
    assert game.language_supports[0].language == 'English'
    assert game.similar_games[0].cover_url.endswith('/co5.jpg')
    assert game.to_dict()['genres'] == ({'id': 12, 'name': 'RPG'},)


def test_normalize_games_skips_records_without_id():
    games = normalize_games([{'name': 'Nameless'}, {'id': 3, 'name': 'Ok'}])

    assert [game.id for game in games] == [3]


def test_post_filter_uses_rounded_rating_bounds():
    games = [
        _game(1, rating=69.5),
        _game(2, rating=69.4),
        _game(3, rating=None),
        _game(4, rating=85.0),
    ]

    kept = post_filter(games, FilterCriteria(rating_min=70, rating_max=80))

    assert [game.id for game in kept] == [1]


def test_post_filter_requires_every_facet_id():
    games = [_game(1, genres=(5, 8)), _game(2, genres=(5,)), _game(3, genres=(5, 8, 9))]

    kept = post_filter(games, FilterCriteria(genres=[5, 8]))

    assert [game.id for game in kept] == [1, 3]


def test_post_filter_sorts_by_display_rating_when_deferred():
    games = [_game(1, rating=71.2), _game(2, rating=88.0), _game(3, rating=70.6)]

    kept = post_filter(games, FilterCriteria(rating_min=70, sort_by='rating-desc'))

    assert [game.id for game in kept] == [2, 1, 3]


def test_post_filter_puts_prefix_matches_first():
    games = [
        _game(1, name='The Legend of Zelda'),
        _game(2, name='Zelda II'),
        _game(3, name='Hyrule Warriors: Zelda'),
        _game(4, name='zelda classic'),
    ]

    kept = post_filter(games, FilterCriteria(search='Zelda'))

    assert [game.id for game in kept] == [2, 4, 1, 3]


def test_external_links_are_read_only():
    game = normalize_game(
        {'id': 1, 'name': 'Halo', 'websites': [{'category': 27, 'url': 'https://xbox.com/halo'}]}
    )

    with pytest.raises(TypeError):
        game.external_links['steam'] = 'https://example.com'

    data = game.to_dict()
    data['external_links']['steam'] = 'https://example.com'
    assert game.external_links == {'xbox': 'https://xbox.com/halo'}


def test_similar_games_keep_genres():
    game = normalize_game(
        {
            'id': 1,
            'name': 'Portal',
            'similar_games': [
                {'id': 2, 'name': 'Portal 2', 'genres': [{'id': 9, 'name': 'Puzzle'}]},
            ],
        }
    )

    assert game.similar_games[0].genres == (NamedRef(9, 'Puzzle'),)
    assert game.to_dict()['similar_games'][0]['genres'] == ({'id': 9, 'name': 'Puzzle'},)
