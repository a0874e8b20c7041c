from partyrooms.client.codes import build_share_url, normalize_room_code


def test_normalize_strips_folds_and_truncates() -> None:
    assert normalize_room_code("ab-12 cd!!") == "AB12CD"


def test_normalize_truncates_to_six_characters() -> None:
    assert normalize_room_code("abcdefgh") == "ABCDEF"


def test_normalize_empty_and_symbols_only() -> None:
    assert normalize_room_code("") == ""
    assert normalize_room_code(None) == ""
    assert normalize_room_code(" -!? ") == ""


def test_normalize_drops_non_ascii_letters() -> None:
    assert normalize_room_code("ñandú7") == "AND7"


def test_share_url_sets_room_parameter() -> None:
    url = build_share_url("http://127.0.0.1:8000/games/rps/", "xy-z12")

    assert url == "http://127.0.0.1:8000/games/rps/?room=XYZ12"


def test_share_url_replaces_existing_room_and_keeps_other_params() -> None:
    url = build_share_url("https://play.example/games/ttt/?lang=es&room=OLD111", "new222")

    assert url == "https://play.example/games/ttt/?lang=es&room=NEW222"
