import os
import sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import requests
import concurrent.futures
import argparse
import json

BASE = os.environ.get("CHECKOUT_BASE", "http://127.0.0.1:8000")

CUSTOMER = {"email": "load@example.com", "first_name": "Load", "last_name": "Test", "phone": "555-0000"}


def start_session(tenant_id, gateway_type):
    r = requests.post(
        f"{BASE}/api/checkout/sessions",
        params={"tenantId": tenant_id, "gatewayType": gateway_type},
        timeout=10,
    )
    body = r.json()
    if "session_id" not in body:
        print("Checkout did not start:", body)
        sys.exit(1)
    sid = body["session_id"]
    requests.post(f"{BASE}/api/checkout/sessions/{sid}/customer-info", json=CUSTOMER, timeout=10)
    requests.post(f"{BASE}/api/checkout/sessions/{sid}/fulfillment", json={"method": "pickup"}, timeout=10)
    return sid


def complete_task(i, sid, order_number):
    try:
        r = requests.post(
            f"{BASE}/api/checkout/sessions/{sid}/complete",
            json={"order_number": order_number, "gateway_transaction_id": f"txn-{i}"},
            timeout=20,
        )
        return (i, r.status_code, r.text)
    except Exception as e:
        return (i, "ERR", str(e))


def run_complete_concurrent(workers, sid, order_number):
    print(f"Running complete test: workers={workers}, session={sid}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(complete_task, i, sid, order_number) for i in range(workers)]
        results = [f.result() for f in futures]
        print("Results:")
        for r in results:
            print(r)
        completions = [json.loads(r[2]).get("completion", {}).get("gatewayTransactionId") for r in results if r[1] == 200]
        # every caller should see the first caller's transaction id
        print("Unique completions:", set(completions))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fire concurrent payment confirmations at one checkout session.")
    parser.add_argument("--tenant", default="demo-shop")
    parser.add_argument("--gateway", default="square")
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--order-number", default="ORD-LOADTEST")
    args = parser.parse_args()

    sid = start_session(args.tenant, args.gateway)
    run_complete_concurrent(args.workers, sid, args.order_number)
