"""
tests/integration/test_balance_routes.py — Group balance endpoints.

Endpoints covered:
  GET /groups/:id/debts
  GET /groups/:id/member-balances
  GET /groups/:id/stats
  GET /groups/:id/members/:uid/outstanding

Properties verified:
  - Settlements reduce, clear, or flip the pairwise debt
  - Soft-deleted expenses never count
  - Every current member appears in member-balances and the sum is "0.00"
  - Debts involving someone outside the roster are still reported
  - Only members may read a group's balances (403); unknown group is 404
"""

from __future__ import annotations

from datetime import timedelta

import pytest


def _get(client, headers, url):
    resp = client.get(url, headers=headers)
    return resp, resp.get_json()


@pytest.fixture
def pair(ledger):
    """alice and bob in one group."""
    alice = ledger.user("alice")
    bob = ledger.user("bob")
    group = ledger.group(alice, bob)
    return alice, bob, group


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups/:id/debts
# ═══════════════════════════════════════════════════════════════════════════

class TestDebts:

    def test_empty_group_has_no_debts(self, client, auth_headers, pair):
        alice, _, group = pair

        resp, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        assert resp.status_code == 200
        assert body == {"data": {"group_id": group, "debts": []}, "warnings": []}

    def test_even_split_creates_single_debt(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "50.00", bob: "50.00"})

        _, body = _get(client, auth_headers(bob), f"/api/v1/groups/{group}/debts")

        assert body["data"]["debts"] == [{
            "from_user_id": bob,
            "to_user_id": alice,
            "amount": "50.00",
            "from_name": "bob",
            "to_name": "alice",
        }]

    @pytest.mark.parametrize("paid, expected", [
        ("30.00", [("bob", "alice", "20.00")]),
        ("50.00", []),
        ("70.00", [("alice", "bob", "20.00")]),
    ])
    def test_settlement_reduces_clears_or_flips(
            self, client, auth_headers, ledger, pair, paid, expected):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "50.00", bob: "50.00"})
        ledger.settlement(group, bob, alice, paid)

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        got = [(d["from_name"], d["to_name"], d["amount"]) for d in body["data"]["debts"]]
        assert got == expected

    def test_mutual_expenses_offset(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "30.00", bob: "30.00"})
        ledger.expense(group, bob, {alice: "20.00", bob: "20.00"})

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        [debt] = body["data"]["debts"]
        assert (debt["from_user_id"], debt["to_user_id"], debt["amount"]) == (bob, alice, "10.00")

    def test_soft_deleted_expense_is_ignored(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "50.00", bob: "50.00"}, deleted=True)

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        assert body["data"]["debts"] == []

    def test_one_cent_debt_cleared_by_settlement(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "0.50", bob: "0.01"})
        ledger.settlement(group, bob, alice, "0.01")

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        assert body["data"]["debts"] == []

    def test_three_members_sorted_by_debtor(self, client, auth_headers, ledger):
        alice = ledger.user("alice")
        bob = ledger.user("bob")
        cara = ledger.user("cara")
        group = ledger.group(alice, bob, cara)
        ledger.expense(group, alice, {alice: "30.00", bob: "30.00", cara: "30.00"})

        _, body = _get(client, auth_headers(cara), f"/api/v1/groups/{group}/debts")

        assert [(d["from_user_id"], d["to_user_id"], d["amount"]) for d in body["data"]["debts"]] == [
            (bob, alice, "30.00"),
            (cara, alice, "30.00"),
        ]

    def test_debt_with_non_member_is_reported(self, client, auth_headers, ledger, pair):
        alice, _, group = pair
        outsider = ledger.user("olga")
        ledger.expense(group, alice, {alice: "10.00", outsider: "10.00"})

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/debts")

        [debt] = body["data"]["debts"]
        assert debt["from_user_id"] == outsider
        assert debt["from_name"] == "olga"


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups/:id/member-balances
# ═══════════════════════════════════════════════════════════════════════════

class TestMemberBalances:

    def test_every_member_listed_and_sum_is_zero(self, client, auth_headers, ledger):
        alice = ledger.user("alice")
        bob = ledger.user("bob")
        cara = ledger.user("cara")
        dave = ledger.user("dave")
        group = ledger.group(alice, bob, cara, dave)
        ledger.expense(group, alice, {alice: "30.00", bob: "30.00", cara: "30.00"})

        resp, body = _get(client, auth_headers(dave), f"/api/v1/groups/{group}/member-balances")

        assert resp.status_code == 200
        balances = {row["user_id"]: row for row in body["data"]["balances"]}
        assert set(balances) == {alice, bob, cara, dave}
        assert balances[alice]["net_balance"] == "60.00"
        assert balances[bob]["net_balance"] == "-30.00"
        assert balances[cara]["net_balance"] == "-30.00"
        assert balances[dave]["net_balance"] == "0.00"
        assert balances[dave]["name"] == "dave"
        assert body["data"]["balance_sum"] == "0.00"

    def test_non_member_has_no_row(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        outsider = ledger.user("olga")
        ledger.expense(group, alice, {alice: "10.00", outsider: "10.00"})

        _, body = _get(client, auth_headers(alice), f"/api/v1/groups/{group}/member-balances")

        rows = {row["user_id"]: row["net_balance"] for row in body["data"]["balances"]}
        assert rows == {alice: "10.00", bob: "0.00"}


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups/:id/stats and /outstanding
# ═══════════════════════════════════════════════════════════════════════════

class TestStats:

    def test_totals_ignore_settlements_and_deleted(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "30.00", bob: "30.00"})
        ledger.expense(group, bob, {alice: "5.00", bob: "5.00"})
        ledger.expense(group, bob, {alice: "500.00"}, deleted=True)
        ledger.settlement(group, bob, alice, "10.00")

        _, body = _get(client, auth_headers(bob), f"/api/v1/groups/{group}/stats")

        assert body["data"] == {
            "group_id": group,
            "total_expenses": "70.00",
            "user_balance": "-15.00",
        }


class TestOutstanding:

    def test_member_with_debt(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "50.00", bob: "50.00"})

        _, body = _get(
            client, auth_headers(alice),
            f"/api/v1/groups/{group}/members/{bob}/outstanding",
        )

        data = body["data"]
        assert data["has_balance"] is True
        assert data["balance"] == "-50.00"
        assert [d["amount"] for d in data["debts"]] == ["50.00"]

    def test_settled_member(self, client, auth_headers, ledger, pair):
        alice, bob, group = pair
        ledger.expense(group, alice, {alice: "50.00", bob: "50.00"})
        ledger.settlement(group, bob, alice, "50.00")

        _, body = _get(
            client, auth_headers(bob),
            f"/api/v1/groups/{group}/members/{bob}/outstanding",
        )

        assert body["data"]["has_balance"] is False
        assert body["data"]["balance"] == "0.00"
        assert body["data"]["debts"] == []


# ═══════════════════════════════════════════════════════════════════════════
# Access control
# ═══════════════════════════════════════════════════════════════════════════

class TestAccess:

    @pytest.mark.parametrize("suffix", ["debts", "member-balances", "stats"])
    def test_non_member_forbidden(self, client, auth_headers, ledger, pair, suffix):
        _, _, group = pair
        stranger = ledger.user("sam")

        resp, body = _get(client, auth_headers(stranger), f"/api/v1/groups/{group}/{suffix}")

        assert resp.status_code == 403
        assert body["error"]["code"] == "FORBIDDEN"

    def test_unknown_group(self, client, auth_headers, ledger):
        alice = ledger.user("alice")

        resp, body = _get(client, auth_headers(alice), "/api/v1/groups/999999/debts")

        assert resp.status_code == 404
        assert body["error"]["code"] == "GROUP_NOT_FOUND"

    def test_missing_token(self, client, pair):
        _, _, group = pair

        resp = client.get(f"/api/v1/groups/{group}/debts")

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_expired_token(self, client, auth_headers, pair):
        alice, _, group = pair

        resp = client.get(
            f"/api/v1/groups/{group}/debts",
            headers=auth_headers(alice, expires_in=timedelta(seconds=-60)),
        )

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_malformed_header(self, client, pair):
        _, _, group = pair

        resp = client.get(f"/api/v1/groups/{group}/debts", headers={"Authorization": "Token abc"})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"
