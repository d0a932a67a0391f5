"""
tests/test_api_ledger.py -- Integration tests for the ledger routes under /api/v1.

Covers:
  - /currency/load, /account/load|add|update|remove with the account
    rule keys (_id required/invalid/notFound, startBalance
    invalid/positive/negative, name exist, currency required/invalid/notFound)
  - /category/load|add|update|move|remove on the nested tree
  - /operation/load|add|update|remove, filters, and balances
  - Every ledger route requires authentication

Tests in a class run in file order against one module-scoped user, the way
a client session would.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _error_code(resp) -> str:
    return resp.json()["error"]["code"]


def _accounts(client: TestClient, token: str) -> list[dict]:
    resp = client.get("/api/v1/account/load", headers=auth_headers(token))
    assert resp.status_code == 200, f"Account load failed: {resp.text}"
    return resp.json()["accounts"]


def _find(nodes: list[dict], name: str) -> dict | None:
    for node in nodes:
        if node["name"] == name:
            return node
        found = _find(node["children"], name)
        if found is not None:
            return found
    return None


def _tree(client: TestClient, token: str) -> list[dict]:
    resp = client.get("/api/v1/category/load", headers=auth_headers(token))
    assert resp.status_code == 200, f"Category load failed: {resp.text}"
    return resp.json()["categories"]


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/v1/currency/load"),
        ("get", "/api/v1/account/load"),
        ("post", "/api/v1/account/add"),
        ("get", "/api/v1/category/load"),
        ("post", "/api/v1/category/move"),
        ("get", "/api/v1/operation/load"),
        ("post", "/api/v1/operation/remove"),
    ],
)
def test_requires_auth(api_client: tuple[TestClient, str, int], method: str, path: str) -> None:
    client, _, _ = api_client
    resp = getattr(client, method)(path)
    assert resp.status_code == 401, f"{method.upper()} {path} should require auth, got {resp.status_code}"


class TestAccounts:
    def test_load_default(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        accounts = _accounts(client, token)
        assert len(accounts) == 2
        for account in accounts:
            assert isinstance(account["name"], str)
            assert account["type"] == "standart"
            assert account["balance"] == 0

    def test_load_after_ready(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        resp = client.post("/api/v1/user/status", json={"status": "ready"}, headers=auth_headers(token))
        assert resp.status_code == 200
        assert len(_accounts(client, token)) == 2

    def test_currency_load(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        resp = client.get("/api/v1/currency/load", headers=auth_headers(token))
        assert resp.status_code == 200
        currencies = resp.json()["currencyList"]
        assert {c["code"] for c in currencies} == {"USD", "EUR", "RUB"}
        assert all(isinstance(c["_id"], int) for c in currencies)

    def test_add(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        currencies = client.get("/api/v1/currency/load", headers=auth_headers(token)).json()["currencyList"]
        resp = client.post(
            "/api/v1/account/add",
            json={"name": "debt", "startBalance": -100, "type": "debt", "currency": currencies[0]["_id"]},
            headers=auth_headers(token),
        )
        assert resp.status_code == 200, f"Account add failed: {resp.text}"
        assert len(resp.json()["accounts"]) == 3
        debt = next(a for a in resp.json()["accounts"] if a["name"] == "debt")
        assert debt["startBalance"] == -100
        assert debt["order"] == 2

    @pytest.mark.parametrize(
        "body,status,code",
        [
            ({"name": "ghost"}, 400, "account.add.error.currency.required"),
            ({"name": "ghost", "currency": "usd"}, 400, "account.add.error.currency.invalid"),
            ({"name": "ghost", "currency": 9999}, 404, "account.add.error.currency.notFound"),
        ],
    )
    def test_add_currency_errors(
        self, api_client: tuple[TestClient, str, int], body: dict, status: int, code: str
    ) -> None:
        client, token, _ = api_client
        resp = client.post("/api/v1/account/add", json=body, headers=auth_headers(token))
        assert resp.status_code == status, f"{body}: expected {status}, got {resp.status_code}"
        assert _error_code(resp) == code

    def test_update_errors(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        accounts = _accounts(client, token)
        debt = next(a for a in accounts if a["type"] == "debt")
        standart = next(a for a in accounts if a["type"] == "standart")

        cases = [
            ({}, 400, "account.update.error._id.required"),
            ({"_id": "wrong id"}, 400, "account.update.error._id.invalid"),
            ({"_id": 99999}, 404, "account.update.error._id.notFound"),
            ({"_id": standart["_id"], "startBalance": "wrong balance"}, 400, "account.update.error.startBalance.invalid"),
            ({"_id": debt["_id"], "startBalance": 10}, 400, "account.update.error.startBalance.positive"),
            ({"_id": standart["_id"], "startBalance": -10}, 400, "account.update.error.startBalance.negative"),
            ({"_id": debt["_id"], "name": "debt"}, 400, "account.update.error.name.exist"),
            ({"_id": standart["_id"], "name": "debt"}, 400, "account.update.error.name.exist"),
        ]
        for body, status, code in cases:
            resp = client.post("/api/v1/account/update", json=body, headers=auth_headers(token))
            assert resp.status_code == status, f"{body}: expected {status}, got {resp.status_code}"
            assert _error_code(resp) == code, f"{body}: expected {code}, got {_error_code(resp)}"

    def test_update_without_changes(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        accounts = _accounts(client, token)
        target = accounts[0]
        resp = client.post("/api/v1/account/update", json={"_id": target["_id"]}, headers=auth_headers(token))
        assert resp.status_code == 200
        assert resp.json()["accounts"] == accounts

    def test_update_name(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        accounts = _accounts(client, token)
        target = accounts[1]
        resp = client.post(
            "/api/v1/account/update", json={"_id": target["_id"], "name": "Savings"}, headers=auth_headers(token)
        )
        assert resp.status_code == 200
        updated = next(a for a in resp.json()["accounts"] if a["_id"] == target["_id"])
        assert updated["name"] == "Savings"
        for key in ("startBalance", "status", "order"):
            assert updated[key] == target[key], f"{key} changed unexpectedly"

    def test_archive(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        target = _accounts(client, token)[1]
        resp = client.post(
            "/api/v1/account/update", json={"_id": target["_id"], "status": "archived"}, headers=auth_headers(token)
        )
        assert resp.status_code == 200
        assert next(a for a in resp.json()["accounts"] if a["_id"] == target["_id"])["status"] == "archived"

    def test_remove(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        debt = next(a for a in _accounts(client, token) if a["name"] == "debt")
        resp = client.post("/api/v1/account/remove", json={"_id": debt["_id"]}, headers=auth_headers(token))
        assert resp.status_code == 200
        assert debt["_id"] not in {a["_id"] for a in resp.json()["accounts"]}

        again = client.post("/api/v1/account/remove", json={"_id": debt["_id"]}, headers=auth_headers(token))
        assert again.status_code == 404
        assert _error_code(again) == "account.remove.error._id.notFound"


class TestCategories:
    def test_load_root(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        tree = _tree(client, token)
        assert len(tree) == 1
        root = tree[0]
        assert root["isSystem"] is True
        assert root["type"] == "any"
        assert root["parent"] is None
        assert root["children"] == []

    def test_add(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        resp = client.post("/api/v1/category/add", json={"name": "Food"}, headers=auth_headers(token))
        assert resp.status_code == 200, f"Category add failed: {resp.text}"
        data = resp.json()
        food = _find(data["categories"], "Food")
        assert food is not None
        assert data["newId"] == food["_id"]
        assert food["parent"] == data["categories"][0]["_id"]

        resp = client.post(
            "/api/v1/category/add", json={"name": "Cafe", "parent": food["_id"]}, headers=auth_headers(token)
        )
        assert resp.status_code == 200
        assert [c["name"] for c in _find(resp.json()["categories"], "Food")["children"]] == ["Cafe"]

    def test_add_errors(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        food = _find(_tree(client, token), "Food")
        cases = [
            ({"name": ""}, 400, "category.add.error.name.required"),
            ({"name": "food"}, 400, "category.add.error.name.exist"),
            ({"name": "Salary", "type": "income", "parent": food["_id"]}, 400, "category.add.error.type.incompatible"),
            ({"name": "Misc", "parent": 99999}, 404, "category.add.error._id.notFound"),
        ]
        for body, status, code in cases:
            resp = client.post("/api/v1/category/add", json=body, headers=auth_headers(token))
            assert resp.status_code == status, f"{body}: expected {status}, got {resp.status_code}"
            assert _error_code(resp) == code

    def test_update(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        tree = _tree(client, token)
        cafe = _find(tree, "Cafe")
        resp = client.post(
            "/api/v1/category/update", json={"_id": cafe["_id"], "name": "Restaurants"}, headers=auth_headers(token)
        )
        assert resp.status_code == 200
        assert _find(resp.json()["categories"], "Restaurants")["_id"] == cafe["_id"]

        locked = client.post(
            "/api/v1/category/update", json={"_id": tree[0]["_id"], "name": "All"}, headers=auth_headers(token)
        )
        assert locked.status_code == 400
        assert _error_code(locked) == "category.update.error._id.isSystem"

    def test_move(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        tree = _tree(client, token)
        root, food, restaurants = tree[0], _find(tree, "Food"), _find(tree, "Restaurants")

        cycle = client.post(
            "/api/v1/category/move", json={"_id": food["_id"], "to": restaurants["_id"]}, headers=auth_headers(token)
        )
        assert cycle.status_code == 400
        assert _error_code(cycle) == "category.move.error.to.invalid"

        resp = client.post(
            "/api/v1/category/move", json={"_id": restaurants["_id"], "to": root["_id"]}, headers=auth_headers(token)
        )
        assert resp.status_code == 200
        names = [c["name"] for c in resp.json()["categories"][0]["children"]]
        assert names == ["Food", "Restaurants"]

    def test_remove(self, api_client: tuple[TestClient, str, int]) -> None:
        client, token, _ = api_client
        restaurants = _find(_tree(client, token), "Restaurants")
        resp = client.post("/api/v1/category/remove", json={"_id": restaurants["_id"]}, headers=auth_headers(token))
        assert resp.status_code == 200
        assert _find(resp.json()["categories"], "Restaurants") is None


class TestOperations:
    @pytest.fixture
    def wallet_id(self, api_client: tuple[TestClient, str, int]) -> int:
        client, token, _ = api_client
        accounts = _accounts(client, token)
        wallet = next((a for a in accounts if a["name"] == "wallet"), None)
        if wallet is None:
            usd = next(
                c
                for c in client.get("/api/v1/currency/load", headers=auth_headers(token)).json()["currencyList"]
                if c["code"] == "USD"
            )
            resp = client.post(
                "/api/v1/account/add",
                json={"name": "wallet", "currency": usd["_id"], "startBalance": 100},
                headers=auth_headers(token),
            )
            wallet = next(a for a in resp.json()["accounts"] if a["name"] == "wallet")
        return wallet["_id"]

    def test_add(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        food = _find(_tree(client, token), "Food")
        resp = client.post(
            "/api/v1/operation/add",
            json={
                "account": wallet_id,
                "category": food["_id"],
                "amount": -12.5,
                "created": "2024-03-01T10:00:00",
                "comment": "lunch",
            },
            headers=auth_headers(token),
        )
        assert resp.status_code == 201, f"Operation add failed: {resp.text}"
        op = resp.json()
        assert op["account"] == wallet_id
        assert op["category"] == food["_id"]
        assert op["amount"] == -12.5
        assert op["created"] == "2024-03-01T10:00:00+00:00"
        assert op["comment"] == "lunch"

        client.post(
            "/api/v1/operation/add",
            json={"account": wallet_id, "amount": 40, "created": "2024-03-02T09:00:00"},
            headers=auth_headers(token),
        )
        wallet = next(a for a in _accounts(client, token) if a["_id"] == wallet_id)
        assert wallet["balance"] == 127.5

    def test_add_errors(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        cases = [
            ({"account": wallet_id, "amount": 0}, 400, "operation.add.error.amount.invalid"),
            ({"account": wallet_id, "amount": "lots"}, 400, "operation.add.error.amount.invalid"),
            ({"amount": 5}, 400, "operation.add.error.account.required"),
            ({"account": 99999, "amount": 5}, 404, "operation.add.error.account.notFound"),
            ({"account": wallet_id, "category": 99999, "amount": 5}, 404, "operation.add.error.category.notFound"),
        ]
        for body, status, code in cases:
            resp = client.post("/api/v1/operation/add", json=body, headers=auth_headers(token))
            assert resp.status_code == status, f"{body}: expected {status}, got {resp.status_code}"
            assert _error_code(resp) == code

    def test_load_filters(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        headers = auth_headers(token)

        ops = client.get("/api/v1/operation/load", params={"account": wallet_id}, headers=headers).json()["operations"]
        assert [o["amount"] for o in ops] == [40, -12.5], "Newest first"

        day = client.get(
            "/api/v1/operation/load", params={"dateFrom": "2024-03-01", "dateTo": "2024-03-01"}, headers=headers
        ).json()["operations"]
        assert [o["comment"] for o in day] == ["lunch"]

        paged = client.get("/api/v1/operation/load", params={"limit": 1, "skip": 1}, headers=headers).json()
        assert len(paged["operations"]) == 1

        assert client.get("/api/v1/operation/load", params={"limit": 0}, headers=headers).status_code == 422

    def test_update(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        headers = auth_headers(token)
        lunch = next(
            o
            for o in client.get("/api/v1/operation/load", headers=headers).json()["operations"]
            if o["comment"] == "lunch"
        )
        resp = client.post("/api/v1/operation/update", json={"_id": lunch["_id"], "amount": -15}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["amount"] == -15
        assert resp.json()["category"] == lunch["category"]

        cleared = client.post("/api/v1/operation/update", json={"_id": lunch["_id"], "category": None}, headers=headers)
        assert cleared.status_code == 200
        assert cleared.json()["category"] is None

        missing = client.post("/api/v1/operation/update", json={"_id": 99999, "amount": 1}, headers=headers)
        assert missing.status_code == 404
        assert _error_code(missing) == "operation.update.error._id.notFound"

    def test_remove(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        headers = auth_headers(token)
        ops = client.get("/api/v1/operation/load", params={"account": wallet_id}, headers=headers).json()["operations"]
        target = ops[0]["_id"]

        resp = client.post("/api/v1/operation/remove", json={"_id": target}, headers=headers)
        assert resp.status_code == 204

        again = client.post("/api/v1/operation/remove", json={"_id": target}, headers=headers)
        assert again.status_code == 404

    def test_removing_category_keeps_operations(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        headers = auth_headers(token)
        food = _find(_tree(client, token), "Food")
        op = client.post(
            "/api/v1/operation/add",
            json={"account": wallet_id, "category": food["_id"], "amount": -3, "created": "2024-03-05T08:00:00"},
            headers=headers,
        ).json()

        client.post("/api/v1/category/remove", json={"_id": food["_id"]}, headers=headers)

        ops = client.get("/api/v1/operation/load", params={"account": wallet_id}, headers=headers).json()["operations"]
        kept = next(o for o in ops if o["_id"] == op["_id"])
        assert kept["category"] is None

    def test_mixed_offsets_listed_by_utc(self, api_client: tuple[TestClient, str, int], wallet_id: int) -> None:
        client, token, _ = api_client
        headers = auth_headers(token)
        # 04:30 UTC on June 2nd, although the client's local date is June 1st.
        west = client.post(
            "/api/v1/operation/add",
            json={"account": wallet_id, "amount": -1, "created": "2024-06-01T23:30:00-05:00", "comment": "west"},
            headers=headers,
        ).json()
        client.post(
            "/api/v1/operation/add",
            json={"account": wallet_id, "amount": -2, "created": "2024-06-02T01:00:00+00:00", "comment": "utc"},
            headers=headers,
        )
        assert west["created"] == "2024-06-02T04:30:00+00:00"

        june = client.get(
            "/api/v1/operation/load", params={"account": wallet_id, "dateFrom": "2024-06-01"}, headers=headers
        ).json()["operations"]
        assert [o["comment"] for o in june] == ["west", "utc"]

        june_first = client.get(
            "/api/v1/operation/load", params={"dateFrom": "2024-06-01", "dateTo": "2024-06-01"}, headers=headers
        ).json()["operations"]
        assert june_first == []
