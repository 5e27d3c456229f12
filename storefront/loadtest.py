"""
Fire concurrent CreateOrder requests at one variant to watch the stock
ledger refuse to oversell.

    python loadtest.py --variant 12 --requests 50 --workers 10 --stock 20

With ``--stock`` given, the run fails if more units were sold than existed.
"""
import argparse
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime

import requests
from faker import Faker

fake = Faker()

DEFAULT_API_URL = "http://localhost:8000/orders/"


def send_single_request(api_url, request_id, variant_id, quantity):
    """
    Place one guest order.

    Returns:
        dict: request_id, status_code, elapsed_time, code, error
    """
    data = {
        "items": [{"variant_id": variant_id, "quantity": quantity}],
        "guest": {
            "name": fake.name(),
            "contact": fake.msisdn()[:8],
            "email": fake.email(),
        },
        "shipping_address": {
            "street": fake.street_address(),
            "city": fake.city(),
            "country": "CR",
        },
    }
    headers = {
        "Content-Type": "application/json",
        "X-Idempotency-Key": f"load-{request_id}-{int(time.time())}",
    }

    start_time = time.time()
    try:
        response = requests.post(api_url, json=data, headers=headers, timeout=10)
        elapsed = time.time() - start_time
        body = response.json() if response.headers.get('Content-Type', '').startswith('application/json') else {}
        print(f"Request #{request_id}: {response.status_code} - {elapsed:.3f}s")
        return {
            "request_id": request_id,
            "status_code": response.status_code,
            "elapsed_time": round(elapsed, 3),
            "code": body.get('code'),
            "error": None,
        }

    except requests.exceptions.Timeout:
        elapsed = time.time() - start_time
        print(f"Request #{request_id}: TIMEOUT after {elapsed:.3f}s")
        return {
            "request_id": request_id,
            "status_code": None,
            "elapsed_time": round(elapsed, 3),
            "code": None,
            "error": "Timeout",
        }

    except requests.exceptions.RequestException as e:
        elapsed = time.time() - start_time
        print(f"Request #{request_id}: ERROR - {e}")
        return {
            "request_id": request_id,
            "status_code": None,
            "elapsed_time": round(elapsed, 3),
            "code": None,
            "error": str(e),
        }


def summarize(results, quantity, initial_stock=None):
    """
    Aggregate request results.

    Returns:
        dict: totals per outcome, units sold and whether stock was oversold
    """
    created = sum(1 for r in results if r["status_code"] == 201)
    out_of_stock = sum(1 for r in results if r["code"] == 'out_of_stock')
    errors = len(results) - created - out_of_stock
    times = [r["elapsed_time"] for r in results]
    units_sold = created * quantity

    return {
        "total": len(results),
        "created": created,
        "out_of_stock": out_of_stock,
        "errors": errors,
        "units_sold": units_sold,
        "avg_time": round(sum(times) / len(times), 3) if times else 0.0,
        "max_time": max(times) if times else 0.0,
        "oversold": initial_stock is not None and units_sold > initial_stock,
    }


def run(api_url, variant_id, num_requests, num_workers, quantity):
    results = []
    with ThreadPoolExecutor(max_workers=num_workers) as executor:
        futures = [
            executor.submit(send_single_request, api_url, request_id, variant_id, quantity)
            for request_id in range(1, num_requests + 1)
        ]
        for future in as_completed(futures):
            results.append(future.result())
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description="Concurrent order creation against one variant")
    parser.add_argument('--url', default=DEFAULT_API_URL)
    parser.add_argument('--variant', type=int, required=True)
    parser.add_argument('--requests', type=int, default=50)
    parser.add_argument('--workers', type=int, default=10)
    parser.add_argument('--quantity', type=int, default=1)
    parser.add_argument('--stock', type=int, default=None, help="stock before the run, to check for overselling")
    args = parser.parse_args(argv)

    print(f"Started at {datetime.now():%Y-%m-%d %H:%M:%S}: {args.requests} requests, "
          f"{args.workers} workers, variant {args.variant} x {args.quantity}")

    start = time.time()
    results = run(args.url, args.variant, args.requests, args.workers, args.quantity)
    summary = summarize(results, args.quantity, args.stock)
    elapsed = time.time() - start

    print(f"""
{'=' * 70}
Total requests:   {summary['total']}
Created:          {summary['created']}
Out of stock:     {summary['out_of_stock']}
Other failures:   {summary['errors']}
Units sold:       {summary['units_sold']}
Avg response:     {summary['avg_time']:.3f}s (max {summary['max_time']:.3f}s)
Throughput:       {summary['total'] / elapsed:.2f} req/s
{'=' * 70}
""")

    if summary['oversold']:
        print(f"OVERSOLD: {summary['units_sold']} units sold with only {args.stock} in stock")
        return 1
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
