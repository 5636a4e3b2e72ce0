from app.core.reference_data import ReferenceData, get_reference_data


def test_default_table_has_seed_symbols():
    data = get_reference_data()
    assert data.has_symbol("aapl")
    assert data.get("MSFT")["name"] == "Microsoft Corporation"
    assert "NIFTY" in data.indices


def test_unknown_symbol_falls_back_to_default():
    data = get_reference_data()
    assert data.get("NOPE") == data.get("AAPL")


def test_sector_members():
    assert get_reference_data().symbols_in_sector("Financial") == ["JPM"]


def test_table_is_read_only():
    data = ReferenceData()
    row = data.get("AAPL")
    try:
        row["price"] = 0
    except TypeError:
        pass
    assert data.get("AAPL")["price"] != 0
