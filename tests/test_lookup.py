import pytest

from utils.lookup import LocationTable, get_locations, load_locations

TABLE = {
    "US": {
        "name": "United States",
        "states": {"WA": {"name": "Washington", "cities": {"3961": {"name": "Seattle"}}}},
    },
    "SE": {"name": "Sweden", "states": {}},
}


def test_bundled_table_loads():
    table = get_locations()

    assert len(table) > 0
    assert table.resolve("US", "WA", 3961) == {
        "country": "United States",
        "state": "Washington",
        "city": "Seattle",
    }


def test_unknown_country_keeps_raw_code_and_drops_dependents():
    table = LocationTable(TABLE)

    assert table.resolve("ZZ", "01", 42) == {"country": "ZZ"}


def test_unknown_state_keeps_raw_state_and_city_codes():
    table = LocationTable(TABLE)

    assert table.resolve("SE", "26", 1234) == {"country": "Sweden", "state": "26", "city": "1234"}
    assert table.resolve("US", "ZZ", "3961") == {"country": "United States", "state": "ZZ", "city": "3961"}
    assert table.resolve("US", "ZZ") == {"country": "United States", "state": "ZZ"}


def test_unknown_city_keeps_raw_code():
    table = LocationTable(TABLE)

    assert table.resolve("US", "WA", 99999) == {
        "country": "United States",
        "state": "Washington",
        "city": "99999",
    }


def test_missing_codes_are_omitted():
    table = LocationTable(TABLE)

    assert table.resolve("US") == {"country": "United States"}
    assert table.resolve(None, "WA", 3961) == {}


def test_load_locations_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_locations(str(tmp_path / "missing.json"))


def test_load_locations_rejects_invalid_json(tmp_path):
    path = tmp_path / "table.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValueError):
        load_locations(str(path))


def test_load_locations_rejects_non_object(tmp_path):
    path = tmp_path / "table.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError):
        load_locations(str(path))
