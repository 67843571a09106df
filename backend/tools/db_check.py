import argparse
import json
import sqlite3


def show_markers(cur, key=None):
    print("=== Finalization Markers ===")
    cols = "id, key, tenant_id, status, owner, response_body, created_at, completed_at"
    if key:
        cur.execute(f"SELECT {cols} FROM idempotency_records WHERE key=?", (key,))
    else:
        cur.execute(f"SELECT {cols} FROM idempotency_records ORDER BY created_at DESC LIMIT 20")
    for r in cur.fetchall():
        rb = r[5]
        try:
            rb = json.loads(rb) if isinstance(rb, str) else rb
        except ValueError:
            pass
        print(dict(zip(["id", "key", "tenant_id", "status", "owner", "response_body", "created_at", "completed_at"],
                       r[:5] + (rb,) + r[6:])))


def show_orders(cur, tenant=None):
    print("\n=== Recent Orders ===")
    sql = "SELECT order_number, tenant_id, gateway_type, fulfillment_method, total_cents, customer_email, created_at FROM orders"
    params = ()
    if tenant:
        sql += " WHERE tenant_id=?"
        params = (tenant,)
    cur.execute(sql + " ORDER BY created_at DESC LIMIT 20", params)
    for r in cur.fetchall():
        print(r)


def show_carts(cur, tenant):
    print(f"\n=== Carts for tenant={tenant} ===")
    cur.execute(
        "SELECT c.id, c.gateway_type, c.status, COUNT(i.id) FROM carts c "
        "LEFT JOIN cart_items i ON i.cart_id = c.id WHERE c.tenant_id=? GROUP BY c.id ORDER BY c.id DESC",
        (tenant,),
    )
    for r in cur.fetchall():
        print(r)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Inspect checkout state in a SQLite database.")
    parser.add_argument("db", nargs="?", default="dev.db")
    parser.add_argument("--key", help="idempotency key, e.g. checkout-finalize:<session id>")
    parser.add_argument("--tenant")
    args = parser.parse_args()

    conn = sqlite3.connect(args.db)
    cur = conn.cursor()
    show_markers(cur, args.key)
    show_orders(cur, args.tenant)
    if args.tenant:
        show_carts(cur, args.tenant)
    conn.close()
