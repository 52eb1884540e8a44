"""
Persistence check: a ledger chain must survive a server restart and still verify.

Requires a reachable database at DATABASE_URL.
"""

import asyncio
import time
import subprocess
import httpx
import sys
import signal

from hud_ledger.app.domain.ledger.periods import current_accounting_period
from hud_ledger.seed_members import seed_members, DEMO_ORGANIZATION_ID

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
SERVER_CMD = [sys.executable, "-m", "uvicorn", "hud_ledger.app.main:app", "--host", "127.0.0.1", "--port", "8000"]


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for _ in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def run_verification():
    print("\n--- [Step 1] Seeding Organization Members ---")
    tokens = asyncio.run(seed_members())
    headers = {"Authorization": f"Bearer {tokens['PROPERTY_MANAGER']}"}

    print("\n--- [Step 2] Starting Server (Initial) ---")
    proc = subprocess.Popen(SERVER_CMD, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    try:
        if not wait_for_server():
            raise Exception("Server start failed")

        print("\n--- [Step 3] Appending Ledger Entry ---")
        payload = {
            "organizationId": DEMO_ORGANIZATION_ID,
            "propertyId": "44444444-4444-4444-8444-444444444444",
            "unitId": "55555555-5555-4555-8555-555555555555",
            "transactionType": "CHARGE",
            "amount": 1250.00,
            "description": "Persistence check rent charge",
            "accountingPeriod": current_accounting_period(),
        }
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/ledger/entries", json=payload, headers=headers)
        if resp.status_code != 201:
            raise Exception(f"Append failed: {resp.status_code} {resp.text}")
        appended = resp.json()["data"]
        print(f"✅ Appended entry {appended['id']} at position {appended['chainPosition']}")
    finally:
        print("\n--- [Step 4] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 5] Restarting Server (Verification) ---")
    proc2 = subprocess.Popen(SERVER_CMD, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 6] Verifying Chain (Post-Restart) ---")
        resp = httpx.post(
            f"{BASE_URL}{API_PREFIX}/ledger/verify",
            json={"organizationId": DEMO_ORGANIZATION_ID},
            headers=headers,
        )
        report = resp.json()["verification"]
        if resp.status_code == 200 and report["isValid"] and report["totalEntries"] >= 1:
            print(f"✅ Chain persisted and verified ({report['totalEntries']} entries)")
        else:
            print(f"❌ Verification failed: {resp.status_code} {resp.text}")
            raise Exception("Ledger did not verify after restart")
    finally:
        print("\n--- [Step 7] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
