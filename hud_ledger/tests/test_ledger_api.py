"""
Integration tests for the ledger HTTP surface.

Covers status codes, camelCase wire format, membership guards and audit records.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from hud_ledger.app.domain.ledger.hashing import GENESIS_HASH
from hud_ledger.app.domain.ledger.periods import current_accounting_period
from hud_ledger.app.models.enums import MemberRole
from hud_ledger.app.services import ledger_engine
from hud_ledger.app.services.audit import AuditAction, get_audit_trail

ENTRIES_URL = "/v1/ledger/entries"


@pytest.fixture
def payload(entry_factory):
    def _make(**overrides):
        body = entry_factory().model_dump(by_alias=True, mode="json")
        body.update(overrides)
        return body

    return _make


@pytest.fixture
async def manager(member_factory, org_id):
    _, headers = await member_factory(org_id)
    return headers


# TEST 1: Append
@pytest.mark.asyncio
async def test_append_entry_created(client, db_session, manager, payload, org_id):
    response = await client.post(ENTRIES_URL, json=payload(), headers=manager)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Ledger entry created successfully"

    data = body["data"]
    assert data["organizationId"] == org_id
    assert data["transactionType"] == "CHARGE"
    assert data["amount"] == "1250.00"
    assert data["accountingPeriod"] == "2026-02"
    assert data["isPeriodClosed"] is False
    assert data["previousHash"] == GENESIS_HASH
    assert len(data["entryHash"]) == 64
    assert response.headers["X-Correlation-ID"]

    [audit] = await get_audit_trail(db_session, organization_id=org_id, action=AuditAction.LEDGER_ENTRY_CREATED)
    assert audit.resource_id == data["id"]
    assert audit.organization_id == org_id
    assert audit.meta_data["amount"] == "1250.00"
    assert audit.meta_data["correlation_id"] == response.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_append_chains_successive_entries(client, manager, payload):
    first = (await client.post(ENTRIES_URL, json=payload(description="First"), headers=manager)).json()["data"]
    second = (await client.post(ENTRIES_URL, json=payload(description="Second"), headers=manager)).json()["data"]

    assert second["previousHash"] == first["entryHash"]
    assert second["chainPosition"] == first["chainPosition"] + 1


@pytest.mark.asyncio
async def test_append_negative_amount_is_400(client, manager, payload):
    response = await client.post(ENTRIES_URL, json=payload(amount="-0.01"), headers=manager)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION_001"
    assert response.json()["details"]["field"] == "amount"


@pytest.mark.asyncio
async def test_append_bad_period_is_400(client, manager, payload):
    response = await client.post(ENTRIES_URL, json=payload(accountingPeriod="2026-13"), headers=manager)

    assert response.status_code == 400
    assert response.json()["details"]["field"] == "accountingPeriod"


@pytest.mark.asyncio
async def test_append_unknown_transaction_type_is_400(client, manager, payload):
    response = await client.post(ENTRIES_URL, json=payload(transactionType="RENT"), headers=manager)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_append_missing_field_is_400(client, manager, payload):
    body = payload()
    del body["unitId"]

    response = await client.post(ENTRIES_URL, json=body, headers=manager)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_append_to_closed_period_is_400(client, member_factory, manager, payload, org_id):
    _, admin = await member_factory(org_id, MemberRole.SUPER_ADMIN)
    closed = await client.post(
        "/v1/ledger/periods/close",
        json={"organizationId": org_id, "accountingPeriod": "2026-02"},
        headers=admin,
    )
    assert closed.status_code == 201

    response = await client.post(ENTRIES_URL, json=payload(), headers=manager)

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_LEDGER_002"


# TEST 2: Authentication and membership
@pytest.mark.asyncio
async def test_append_without_token_is_401(client, payload):
    response = await client.post(ENTRIES_URL, json=payload())

    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_append_with_garbage_token_is_401(client, payload):
    response = await client.post(ENTRIES_URL, json=payload(), headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_append_by_non_member_is_403(client, member_factory, payload):
    _, outsider = await member_factory("some-other-organization")

    response = await client.post(ENTRIES_URL, json=payload(), headers=outsider)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_close_period_requires_super_admin(client, manager, org_id):
    response = await client.post(
        "/v1/ledger/periods/close",
        json={"organizationId": org_id, "accountingPeriod": "2026-01"},
        headers=manager,
    )

    assert response.status_code == 403


# TEST 3: Conflict and storage failures
@pytest.mark.asyncio
async def test_append_conflict_is_409(client, manager, payload, mocker):
    first = await client.post(ENTRIES_URL, json=payload(), headers=manager)
    assert first.status_code == 201

    # Pretend the chain was still empty when the tail was read
    mocker.patch.object(ledger_engine, "get_chain_tail", new=mocker.AsyncMock(return_value=None))

    response = await client.post(ENTRIES_URL, json=payload(), headers=manager)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_LEDGER_001"
    assert response.json()["details"]["retryable"] is True


@pytest.mark.asyncio
async def test_append_stale_mid_chain_tail_is_409(client, manager, payload, mocker):
    first = (await client.post(ENTRIES_URL, json=payload(), headers=manager)).json()["data"]
    await client.post(ENTRIES_URL, json=payload(), headers=manager)

    stale = SimpleNamespace(entry_hash=first["entryHash"], chain_position=first["chainPosition"])
    mocker.patch.object(ledger_engine, "get_chain_tail", new=mocker.AsyncMock(return_value=stale))

    response = await client.post(ENTRIES_URL, json=payload(), headers=manager)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_storage_failure_is_500(client, manager, payload, mocker):
    mocker.patch.object(
        ledger_engine,
        "get_chain_tail",
        side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")),
    )

    response = await client.post(ENTRIES_URL, json=payload(), headers=manager)

    assert response.status_code == 500
    assert response.json()["error_code"] == "ERR_STORAGE_001"


# TEST 4: Retrieval
@pytest.mark.asyncio
async def test_list_entries_for_period(client, manager, payload, org_id):
    await client.post(ENTRIES_URL, json=payload(description="Feb"), headers=manager)
    await client.post(ENTRIES_URL, json=payload(description="Mar", accountingPeriod="2026-03"), headers=manager)

    response = await client.get(
        ENTRIES_URL, params={"organizationId": org_id, "accountingPeriod": "2026-02"}, headers=manager
    )

    assert response.status_code == 200
    body = response.json()
    assert body["accountingPeriod"] == "2026-02"
    assert body["count"] == 1
    assert [e["description"] for e in body["data"]] == ["Feb"]


@pytest.mark.asyncio
async def test_list_entries_defaults_to_current_period(client, manager, payload, org_id):
    period = current_accounting_period()
    await client.post(ENTRIES_URL, json=payload(accountingPeriod=period), headers=manager)

    response = await client.get(ENTRIES_URL, params={"organizationId": org_id}, headers=manager)

    assert response.status_code == 200
    assert response.json()["accountingPeriod"] == period
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_list_entries_invalid_period_is_400(client, manager, org_id):
    response = await client.get(
        ENTRIES_URL, params={"organizationId": org_id, "accountingPeriod": "Feb-2026"}, headers=manager
    )

    assert response.status_code == 400


# TEST 5: Verify, health, export
@pytest.mark.asyncio
async def test_verify_reports_valid_chain(client, db_session, manager, payload, org_id):
    for i in range(3):
        await client.post(ENTRIES_URL, json=payload(description=f"Entry {i}"), headers=manager)

    response = await client.post("/v1/ledger/verify", json={"organizationId": org_id}, headers=manager)

    assert response.status_code == 200
    report = response.json()["verification"]
    assert report["isValid"] is True
    assert report["totalEntries"] == 3
    assert report["brokenChainAt"] is None
    assert report["invalidHashes"] == []

    [audit] = await get_audit_trail(db_session, organization_id=org_id, action=AuditAction.LEDGER_VERIFICATION)
    assert audit.meta_data["is_valid"] is True


@pytest.mark.asyncio
async def test_compliance_health_endpoint(client, manager, payload, org_id):
    await client.post(ENTRIES_URL, json=payload(), headers=manager)

    response = await client.get(
        "/v1/ledger/compliance-health", params={"organizationId": org_id}, headers=manager
    )

    assert response.status_code == 200
    body = response.json()
    assert body["healthScore"] == 30
    assert body["totalEntries"] == 1
    assert body["openPeriods"] == 1
    assert body["lastEntryAt"] is not None


@pytest.mark.asyncio
async def test_export_returns_csv(client, manager, payload, org_id):
    await client.post(ENTRIES_URL, json=payload(), headers=manager)

    response = await client.get("/v1/ledger/export", params={"organizationId": org_id}, headers=manager)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert f'filename="ledger-{org_id}.csv"' in response.headers["content-disposition"]
    assert "# HUD LEDGER EXPORT" in response.text
    assert "# HASH CHAIN VERIFICATION" in response.text


@pytest.mark.asyncio
async def test_export_empty_ledger_is_404(client, manager, org_id):
    response = await client.get("/v1/ledger/export", params={"organizationId": org_id}, headers=manager)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_correlation_id_is_echoed_and_audited(client, db_session, manager, payload, org_id):
    headers = dict(manager, **{"X-Correlation-ID": "req-42"})

    response = await client.post(ENTRIES_URL, json=payload(), headers=headers)

    assert response.status_code == 201
    assert response.headers["X-Correlation-ID"] == "req-42"
    assert float(response.headers["X-Process-Time"]) >= 0

    [audit] = await get_audit_trail(db_session, organization_id=org_id)
    assert audit.meta_data["correlation_id"] == "req-42"
