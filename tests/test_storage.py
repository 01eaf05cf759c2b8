import pytest

from coinconvert.errors import InvalidKeyError
from coinconvert.models import CoinEntity, PriceEntity
from coinconvert.storage import JsonFileStore, validate_key


@pytest.mark.parametrize("key", ["", "a{b", "a}b", "a(b", "a)b", "a/b", "a@b", "a:b"])
def test_invalid_keys_are_rejected(store, key):
    with pytest.raises(InvalidKeyError):
        store.get(key)
    with pytest.raises(InvalidKeyError):
        store.set(key, 1)
    with pytest.raises(InvalidKeyError):
        store.has(key)


def test_non_string_key_is_rejected():
    with pytest.raises(InvalidKeyError):
        validate_key(None)


def test_get_returns_default_for_missing_key(store):
    assert store.get("coingecko_prices") is None
    assert store.get("coingecko_prices", []) == []
    assert store.has("coingecko_prices") is False


def test_set_get_delete(store):
    assert store.set("coingecko_prices", [{"s": "btc", "p": 1.0, "l": 1}])
    assert store.has("coingecko_prices")
    assert store.get("coingecko_prices") == [{"s": "btc", "p": 1.0, "l": 1}]

    assert store.delete("coingecko_prices") is True
    assert store.delete("coingecko_prices") is False
    assert store.get("coingecko_prices") is None


def test_records_persist_across_instances(tmp_path):
    path = tmp_path / "cache.json"
    JsonFileStore(path).set("coingecko_coin_list", ["x"])

    assert JsonFileStore(path).get("coingecko_coin_list") == ["x"]


def test_entities_are_stored_with_compact_keys(store):
    store.set(
        "fake_prices",
        [PriceEntity(symbol="BTC", price_usd=50000.0, last_updated=1700000000)],
    )
    store.set("fake_coin_list", [CoinEntity(api_id="bitcoin", symbol="btc", name="Bitcoin")])

    assert store.get("fake_prices") == [{"s": "btc", "p": 50000.0, "l": 1700000000}]
    assert store.get("fake_coin_list") == [{"i": "bitcoin", "s": "btc", "n": "Bitcoin"}]
    assert PriceEntity.model_validate(store.get("fake_prices")[0]).symbol == "btc"


def test_batch_operations(store):
    store.set_many({"a": 1, "b": 2})

    assert store.get_many(["a", "b", "c"], default=0) == {"a": 1, "b": 2, "c": 0}

    store.delete_many(["a", "c"])
    assert store.get_many(["a", "b"]) == {"a": None, "b": 2}


def test_set_many_with_invalid_key_writes_nothing(store):
    with pytest.raises(InvalidKeyError):
        store.set_many({"good": 1, "bad:key": 2})

    assert store.has("good") is False


def test_clear_removes_everything(store):
    store.set_many({"a": 1, "b": 2})

    assert store.clear() is True
    assert store.get_many(["a", "b"]) == {"a": None, "b": None}


def test_corrupt_file_is_treated_as_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    assert store.get("a", "default") == "default"

    store.set("a", 1)
    assert store.get("a") == 1


def test_set_replaces_whole_record(store):
    store.set("fake_prices", [1, 2, 3])
    store.set("fake_prices", [4])

    assert store.get("fake_prices") == [4]
