"""
Fire concurrent status changes at one order against a running server. Exactly
one write wins. Writers whose conditional update loses an in-flight race get
409; writers that read the order after the winner committed see the new status
and get 403 for an illegal transition instead.

    python tools/status_race.py --order 12 --staff staff-main --workers 6
"""
import os
import sys
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import argparse
import concurrent.futures

import requests

BASE = os.environ.get("CANTEEN_BASE", "http://127.0.0.1:8000")


def transition_task(i, order_id, staff_id, status):
    headers = {"X-User-Id": staff_id, "X-User-Role": "canteen_staff"}
    try:
        r = requests.post(
            f"{BASE}/api/orders/{order_id}/status",
            json={"status": status},
            headers=headers,
            timeout=10,
        )
        return (i, status, r.status_code, r.text)
    except requests.RequestException as e:
        return (i, status, "ERR", str(e))


def sweep_task(i, token):
    headers = {"X-Scheduler-Token": token} if token else {}
    try:
        r = requests.post(f"{BASE}/api/admin/auto-advance", headers=headers, timeout=10)
        return (i, "sweep", r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "sweep", "ERR", str(e))


def run(order_id, staff_id, status, workers, with_sweep, token):
    print(f"Racing {workers} '{status}' updates on order {order_id} (sweep={with_sweep})")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers + 1) as ex:
        futures = [ex.submit(transition_task, i, order_id, staff_id, status) for i in range(workers)]
        if with_sweep:
            futures.append(ex.submit(sweep_task, workers, token))
        results = [f.result() for f in futures]
    for r in results:
        print(r)
    winners = [r for r in results if r[1] != "sweep" and r[2] == 200]
    print("Successful manual transitions:", len(winners))
    manual = [r for r in results if r[1] != "sweep"]
    print("Lost in-flight races (409):", sum(1 for r in manual if r[2] == 409))
    print("Rejected after the winner committed (403):", sum(1 for r in manual if r[2] == 403))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent status transition check.")
    parser.add_argument("--order", type=int, required=True)
    parser.add_argument("--staff", required=True)
    parser.add_argument("--status", default="preparing")
    parser.add_argument("--workers", type=int, default=6)
    parser.add_argument("--sweep", action="store_true", help="also trigger the auto-advance sweep")
    parser.add_argument("--token", default=os.environ.get("AUTO_ADVANCE_TOKEN"))
    args = parser.parse_args()
    run(args.order, args.staff, args.status, args.workers, args.sweep, args.token)
