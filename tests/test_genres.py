"""Tests for the genre taxonomy."""
from genres import GENRE_TAXONOMY, FALLBACK_GENRE_KEYS, clean_tag, get_genre, match_genre, resolve_genre, subject_query


def test_clean_tag_strips_prefix_case_insensitively():
    assert clean_tag("Subject:Fantasy ") == "fantasy"
    assert clean_tag("SUBJECT:fiction") == "fiction"
    assert clean_tag("Horror") == "horror"


def test_resolve_genre_matches_taxonomy_label():
    assert resolve_genre(["Fantasy"]) == "Fantasy"
    assert resolve_genre(["subject:Cyberpunk"]) == "Sci-Fi"


def test_first_entry_in_declaration_order_wins():
    # "fiction" is tagged on both Fiction and Trending; Fiction is declared first.
    assert resolve_genre(["fiction"]) == "Fiction"
    # Category order does not matter, taxonomy order does.
    assert resolve_genre(["Horror", "History"]) == "Non Fiction"


def test_unmatched_category_falls_back_to_first_raw_value():
    assert resolve_genre(["Juvenile Nonsense", "Cooking"]) == "Juvenile Nonsense"


def test_no_categories_resolves_to_none():
    assert resolve_genre(None) is None
    assert resolve_genre([]) is None
    assert match_genre([""]) is None


def test_subject_query_uses_first_tag():
    assert subject_query("Young Adult") == "subject:young"
    assert subject_query("Cooking") == "subject:cooking"


def test_fallback_keys_exist_in_taxonomy():
    keys = {g.key for g in GENRE_TAXONOMY}
    assert set(FALLBACK_GENRE_KEYS) <= keys
    assert get_genre("nonexistent") is None
