from werkzeug.datastructures import MultiDict

from catalog.criteria import FilterCriteria, resolve_page_size


def test_from_params_reads_request_style_keys():
    params = MultiDict(
        {
            'search': '  zelda ',
            'ratingMin': '70',
            'ratingMax': '90.5',
            'genres': '12,31,12',
            'platforms': '[6, 48]',
            'ageRatings': '16',
            'sortBy': 'rating-desc',
            'limit': '40',
            'offset': '80',
        }
    )

    criteria = FilterCriteria.from_params(params)

    assert criteria.search == 'zelda'
    assert criteria.rating_min == 70.0
    assert criteria.rating_max == 90.5
    assert criteria.genres == (12, 31)
    assert criteria.platforms == (6, 48)
    assert criteria.engines == ()
    assert criteria.age_ratings == (16,)
    assert criteria.sort_by == 'rating-desc'
    assert criteria.limit == 40
    assert criteria.offset == 80


def test_from_params_accepts_snake_case_aliases():
    criteria = FilterCriteria.from_params(
        {'rating_min': 50, 'release_date_min': '2021-06-01', 'pegi': '7'}
    )

    assert criteria.rating_min == 50.0
    assert criteria.release_date_min == 1622505600
    assert criteria.age_ratings == (7,)


def test_blank_values_are_ignored():
    criteria = FilterCriteria.from_params({'search': '   ', 'ratingMin': '', 'genres': ''})

    assert criteria.search is None
    assert criteria.rating_min is None
    assert criteria.genres == ()
    assert not criteria.has_filters()


def test_page_size_is_clamped():
    assert resolve_page_size(0) == 20
    assert resolve_page_size('abc') == 20
    assert resolve_page_size(9999) == 500
    assert FilterCriteria(limit=-5, offset='x').limit == 20
    assert FilterCriteria(offset=-3).offset == 0


def test_client_rating_sort_requires_rating_filter_without_search():
    assert FilterCriteria(rating_min=10, sort_by='rating-asc').uses_client_rating_sort
    assert not FilterCriteria(sort_by='rating-asc').uses_client_rating_sort
    assert not FilterCriteria(
        rating_min=10, sort_by='rating-asc', search='mario'
    ).uses_client_rating_sort


def test_with_facet_adds_to_existing_ids():
    criteria = FilterCriteria(genres=[5])

    extended = criteria.with_facet('genres', 8)

    assert extended.genres == (5, 8)
    assert criteria.genres == (5,)
    assert criteria.with_facet('genres', 5) is criteria
