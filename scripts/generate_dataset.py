"""
Sales Dataset Generator
Writes a synthetic sales export in the seed command's CSV format.

Usage:
    python scripts/generate_dataset.py [rows]
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
rng = np.random.default_rng(42)
Faker.seed(42)

OUTPUT_FILE = Path(__file__).parent.parent / "data" / "sales.csv"

REGIONS = ["North", "South", "East", "West", "Central"]
GENDERS = ["Male", "Female"]
CUSTOMER_TYPES = ["New", "Returning", "Loyal"]
CATEGORIES = {
    "Electronics": ["Nova", "Voltix", "Pixelon"],
    "Clothing": ["Threadline", "UrbanFit", "Loomcraft"],
    "Beauty": ["Glowly", "PureSkin", "Lumina"],
    "Home": ["Nestware", "Casa", "Hearth"],
}
TAGS = ["organic", "wireless", "gadgets", "fashion", "casual", "skincare", "makeup", "portable", "smart", "cotton"]
PAYMENT_METHODS = ["Credit Card", "Debit Card", "UPI", "Cash", "Net Banking", "Wallet"]
ORDER_STATUSES = ["Completed", "Pending", "Cancelled", "Returned"]
DELIVERY_TYPES = ["Standard", "Express", "Store Pickup"]
STORES = [("ST-%03d" % i, fake.city()) for i in range(1, 21)]
EMPLOYEES = [("EMP-%04d" % i, fake.name()) for i in range(1, 51)]


def generate_sales(n: int = 10000) -> pl.DataFrame:
    print(f"📊 Generating {n:,} sales lines...")

    categories = rng.choice(list(CATEGORIES), n)
    quantities = rng.integers(1, 10, n)
    prices = np.round(rng.uniform(5, 1500, n), 2)
    discounts = rng.choice([0, 5, 10, 15, 20, 25], n)
    totals = np.round(quantities * prices, 2)
    finals = np.round(totals * (1 - discounts / 100), 2)

    base_date = datetime.now() - timedelta(days=730)
    dates = [
        (base_date + timedelta(days=int(d))).strftime("%Y-%m-%d")
        for d in rng.integers(0, 730, n)
    ]
    stores = [STORES[i] for i in rng.integers(0, len(STORES), n)]
    employees = [EMPLOYEES[i] for i in rng.integers(0, len(EMPLOYEES), n)]

    df = pl.DataFrame({
        "Customer ID": [f"CUST-{i:05d}" for i in rng.integers(1, n // 3 + 2, n)],
        "Customer Name": [fake.name() for _ in range(n)],
        "Phone Number": [fake.numerify("##########") for _ in range(n)],
        "Gender": rng.choice(GENDERS, n),
        "Age": rng.integers(18, 70, n),
        "Customer Region": rng.choice(REGIONS, n),
        "Customer Type": rng.choice(CUSTOMER_TYPES, n),
        "Product ID": [f"PROD-{i:04d}" for i in rng.integers(1, 500, n)],
        "Product Name": [f"{fake.word().title()} {c}" for c in categories],
        "Brand": [str(rng.choice(CATEGORIES[c])) for c in categories],
        "Product Category": categories,
        "Tags": [",".join(rng.choice(TAGS, int(k), replace=False)) for k in rng.integers(0, 4, n)],
        "Product Description": [fake.sentence(nb_words=8) for _ in range(n)],
        "Quantity": quantities,
        "Price per Unit": prices,
        "Discount Percentage": discounts,
        "Total Amount": totals,
        "Final Amount": finals,
        "Date": dates,
        "Payment Method": rng.choice(PAYMENT_METHODS, n),
        "Order Status": rng.choice(ORDER_STATUSES, n),
        "Delivery Type": rng.choice(DELIVERY_TYPES, n),
        "Store ID": [s[0] for s in stores],
        "Store Location": [s[1] for s in stores],
        "Salesperson ID": [e[0] for e in employees],
        "Employee Name": [e[1] for e in employees],
    })
    return df


def main():
    n = int(sys.argv[1]) if len(sys.argv) > 1 else 10000

    OUTPUT_FILE.parent.mkdir(parents=True, exist_ok=True)
    df = generate_sales(n)
    df.write_csv(OUTPUT_FILE)

    size = OUTPUT_FILE.stat().st_size / 1024 / 1024
    print(f"   ✅ {OUTPUT_FILE.name}: {len(df):,} rows ({size:.2f} MB)")
    print(f"\n📁 Output: {OUTPUT_FILE}\n")


if __name__ == "__main__":
    main()
