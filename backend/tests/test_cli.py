def _seed(services):
    services.activity_log.append({
        "kind": "sale", "id": "s1", "paymentMethod": "cash",
        "items": [{"itemId": "rose-red", "quantity": 3, "unitPrice": 120}],
    })
    services.activity_log.append({"kind": "write_off", "id": "w1", "itemId": "rose-red", "quantityRemoved": 1})


def test_activities_list_and_summary(runner, services):
    result = runner.invoke(args=["activities", "list"])
    assert "No activities recorded." in result.output

    _seed(services)
    result = runner.invoke(args=["activities", "list"])
    assert result.exit_code == 0
    assert "write-off rose-red x1" in result.output
    assert "sale [cash] rose-red x3" in result.output

    result = runner.invoke(args=["activities", "summary"])
    assert result.exit_code == 0
    assert "Orders: 1" in result.output
    assert "Cash sales: 360" in result.output


def test_activities_clear_requires_confirmation(runner, services):
    _seed(services)
    result = runner.invoke(args=["activities", "clear"], input="n\n")
    assert result.exit_code != 0
    assert len(services.activity_log) == 2

    result = runner.invoke(args=["activities", "clear", "--yes"])
    assert result.exit_code == 0
    assert len(services.activity_log) == 0


def test_inventory_refresh(runner, content_store):
    result = runner.invoke(args=["inventory", "refresh"])
    assert result.exit_code == 0
    assert "Fetched 3 items" in result.output

    content_store.fail[("GET", "/api/products")] = 500
    result = runner.invoke(args=["inventory", "refresh"])
    assert result.exit_code != 0
    assert "Inventory fetch failed" in result.output


def test_shifts_close(runner, services, content_store):
    _seed(services)
    result = runner.invoke(args=["shifts", "close", "--date", "2024-05-01", "--worker-id", "7", "--refresh"])
    assert result.exit_code == 0, result.output
    assert "Created shift record shift-1" in result.output
    assert "Cash total: 360" in result.output
    assert "idle -> loading -> built -> upserting -> done" in result.output
    assert len(services.activity_log) == 0


def test_shifts_close_failure_exits_non_zero(runner, services, content_store):
    _seed(services)
    content_store.fail[("POST", "/api/shift-reports")] = 500
    result = runner.invoke(args=["shifts", "close", "--date", "2024-05-01", "--worker-id", "7"])
    assert result.exit_code != 0
    assert "state: failed" in result.output
    assert len(services.activity_log) == 2


def test_shifts_close_rejects_bad_cash(runner):
    result = runner.invoke(args=["shifts", "close", "--date", "2024-05-01", "--worker-id", "7", "--cash", "lots"])
    assert result.exit_code != 0
