import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from engage_api.models import LedgerEntryKind, Member
from engage_api.services.rewards import PointsLedger


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_adjustments_update_balance_and_progress_tier(app_with_db, seeded) -> None:
    app, _ = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}

    async with _client(app) as client:
        earned = await client.post(
            f"/api/v1/ledger/members/{seeded.member_id}/adjustments",
            json={"amount": 1200, "kind": "earned", "referenceId": "order-42", "referenceKind": "order"},
            headers=headers,
        )
        assert earned.status_code == 201
        payload = earned.json()
        assert payload["entry"]["sequence"] == 1
        assert payload["entry"]["classification"] == "earning"
        assert payload["balance"]["pointsBalance"] == 1200
        assert payload["tierChange"]["toTierSlug"] == "silver"
        assert payload["tierChange"]["reason"] == "progression"

        spent = await client.post(
            f"/api/v1/ledger/members/{seeded.member_id}/adjustments",
            json={"amount": -2000, "kind": "spent", "description": "Redeemed voucher"},
            headers=headers,
        )
        assert spent.status_code == 201
        assert spent.json()["balance"]["pointsBalance"] == 0
        assert spent.json()["balance"]["totalPointsEarned"] == 1200
        assert spent.json()["tierChange"] is None

        balance = await client.get(f"/api/v1/ledger/members/{seeded.member_id}/balance", headers=headers)
        assert balance.status_code == 200
        assert balance.json()["pointsBalance"] == 0
        assert balance.json()["currentTierId"] == str(seeded.silver_id)


@pytest.mark.asyncio
async def test_adjustment_validation(app_with_db, seeded) -> None:
    app, _ = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}
    url = f"/api/v1/ledger/members/{seeded.member_id}/adjustments"

    async with _client(app) as client:
        zero = await client.post(url, json={"amount": 0}, headers=headers)
        positive_spend = await client.post(url, json={"amount": 10, "kind": "spent"}, headers=headers)
        reversal = await client.post(url, json={"amount": -10, "kind": "reversal"}, headers=headers)
        unknown = await client.post(url, json={"amount": 10, "kind": "gift"}, headers=headers)

    assert zero.status_code == 400
    assert positive_spend.status_code == 400
    assert reversal.status_code == 422
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_history_pagination_and_filters(app_with_db, seeded) -> None:
    app, session_factory = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}

    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        ledger = PointsLedger(session)
        await ledger.append(member, amount=100, kind=LedgerEntryKind.EARNED)
        await ledger.append(member, amount=25, kind=LedgerEntryKind.BONUS)
        await ledger.append(member, amount=-40, kind=LedgerEntryKind.SPENT)
        await session.commit()

    url = f"/api/v1/ledger/members/{seeded.member_id}/entries"
    async with _client(app) as client:
        first = await client.get(url, params={"limit": 2}, headers=headers)
        assert first.status_code == 200
        first_payload = first.json()
        assert [entry["sequence"] for entry in first_payload["entries"]] == [3, 2]
        assert first_payload["nextCursor"]

        second = await client.get(
            url,
            params={"limit": 2, "cursor": first_payload["nextCursor"]},
            headers=headers,
        )
        assert [entry["sequence"] for entry in second.json()["entries"]] == [1]
        assert second.json()["nextCursor"] is None

        spending = await client.get(url, params={"kinds": ["spent"]}, headers=headers)
        assert [entry["kind"] for entry in spending.json()["entries"]] == ["spent"]

        bad_kind = await client.get(url, params={"kinds": ["gift"]}, headers=headers)
        bad_cursor = await client.get(url, params={"cursor": "%%%"}, headers=headers)
        too_large = await client.get(url, params={"limit": 1000}, headers=headers)

    assert bad_kind.status_code == 400
    assert bad_cursor.status_code == 400
    assert bad_cursor.json()["detail"] == "Invalid ledger cursor"
    assert too_large.status_code == 422


@pytest.mark.asyncio
async def test_reversal_endpoint_counters_entry_once(app_with_db, seeded) -> None:
    app, _ = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}

    async with _client(app) as client:
        earned = await client.post(
            f"/api/v1/ledger/members/{seeded.member_id}/adjustments",
            json={"amount": 300, "kind": "bonus"},
            headers=headers,
        )
        entry_id = earned.json()["entry"]["id"]

        reversed_once = await client.post(
            f"/api/v1/ledger/entries/{entry_id}/reversal",
            json={"reason": "Issued in error", "actorRef": "ops@acme"},
            headers=headers,
        )
        reversed_twice = await client.post(f"/api/v1/ledger/entries/{entry_id}/reversal", headers=headers)

    assert reversed_once.status_code == 201
    reversal = reversed_once.json()
    assert reversal["entry"]["kind"] == "reversal"
    assert reversal["entry"]["amount"] == -300
    assert reversal["entry"]["reversalOfId"] == entry_id
    assert reversal["entry"]["classification"] == "neutral"
    assert reversal["balance"]["pointsBalance"] == 0
    assert reversal["balance"]["totalPointsEarned"] == 300
    assert reversed_twice.status_code == 400


@pytest.mark.asyncio
async def test_audit_endpoint_reports_divergence(app_with_db, seeded) -> None:
    app, session_factory = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}
    url = f"/api/v1/ledger/members/{seeded.member_id}/audit"

    async with session_factory() as session:
        member = await session.get(Member, seeded.member_id)
        await PointsLedger(session).append(member, amount=70, kind=LedgerEntryKind.EARNED)
        await session.commit()

    async with _client(app) as client:
        consistent = await client.get(url, headers=headers)

        async with session_factory() as session:
            await session.execute(update(Member).where(Member.id == seeded.member_id).values(points_balance=5))
            await session.commit()

        divergent = await client.get(url, headers=headers)

    assert consistent.status_code == 200
    assert consistent.json()["consistent"] is True
    assert consistent.json()["entryCount"] == 1

    assert divergent.status_code == 409
    detail = divergent.json()["detail"]
    assert detail["storedBalance"] == 5
    assert detail["replayedBalance"] == 70


@pytest.mark.asyncio
async def test_tier_override_endpoint(app_with_db, seeded) -> None:
    app, _ = app_with_db
    headers = {"X-Brand-Id": str(seeded.brand_id)}

    async with _client(app) as client:
        override = await client.post(
            f"/api/v1/tiers/members/{seeded.member_id}/override",
            json={"tierId": str(seeded.gold_id), "actorRef": "ops@acme", "note": "Launch partner"},
            headers=headers,
        )
        held = await client.post(
            f"/api/v1/ledger/members/{seeded.member_id}/adjustments",
            json={"amount": 50, "kind": "earned"},
            headers=headers,
        )
        balance = await client.get(f"/api/v1/ledger/members/{seeded.member_id}/balance", headers=headers)

    assert override.status_code == 200
    assert override.json()["toTierSlug"] == "gold"
    assert override.json()["reason"] == "manual_override"
    assert held.json()["tierChange"] is None
    assert balance.json()["currentTierId"] == str(seeded.gold_id)
