import json
from pathlib import Path

import pytest

from order_tracking_status.api.client import ReplayClient
from order_tracking_status.api.shipday import ProviderError


def test_replay_client_indexes_orders_and_progress(tmp_path: Path):
    a = {"orderNumber": "ORD-1", "orderId": 9001, "orderStatus": {"orderState": "STARTED"}}
    b = {"orderNumber": "ORD-2"}
    file_path = tmp_path / "recorded.json"
    file_path.write_text(json.dumps({
        "orders": [a, b],
        "progress": {"tid-1": {"dynamicData": {"estimatedTimeInMinutes": 5}}},
    }), encoding="utf-8")

    client = ReplayClient(file_path)

    assert client.configured
    assert client.fetch_order("ORD-1") == a
    assert client.fetch_order("9001") == a      # by provider order id too
    assert client.fetch_order("ORD-2") == b
    assert client.fetch_progress("tid-1")["dynamicData"]["estimatedTimeInMinutes"] == 5


def test_replay_client_bare_list_and_misses(tmp_path: Path):
    file_path = tmp_path / "orders.json"
    file_path.write_text(json.dumps([{"orderNumber": "A"}]), encoding="utf-8")

    client = ReplayClient(file_path)

    assert client.fetch_order("A") == {"orderNumber": "A"}
    with pytest.raises(ProviderError) as e:
        client.fetch_order("MISSING")
    assert e.value.status == 404
    with pytest.raises(ProviderError):
        client.fetch_progress("nope")


def test_replay_client_requires_a_file(tmp_path: Path):
    with pytest.raises(ValueError):
        ReplayClient(tmp_path / "absent.json")
    with pytest.raises(ValueError):
        ReplayClient(tmp_path)
