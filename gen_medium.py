# gen_medium.py
"""
Generate a synthetic people CSV (id, price, name, email, city).

Usage:
  python gen_medium.py sample_medium.csv.gz --rows 10000
"""
import argparse
import csv
import gzip
import random

from faker import Faker

HEADER = ['id', 'price', 'name', 'email', 'city']


def generate_csv(path, rows=10000, seed=None):
    """Write `rows` fake rows to `path`; gzip-compressed when it ends in .gz."""
    fake = Faker()
    rnd = random.Random(seed)
    if seed is not None:
        fake.seed_instance(seed)

    path = str(path)
    if path.endswith('.gz'):
        f = gzip.open(path, 'wt', newline='', encoding='utf-8')
    else:
        f = open(path, 'w', newline='', encoding='utf-8')
    with f:
        writer = csv.writer(f)
        writer.writerow(HEADER)
        for i in range(1, rows + 1):
            # %.3f keeps the decimal point so the column is always a float
            writer.writerow([i, '%.3f' % rnd.uniform(0, 1000), fake.first_name(), fake.email(), fake.city()])
    return path


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Generate a synthetic CSV file')
    parser.add_argument('output', nargs='?', default='sample_medium.csv', help='Output .csv[.gz] path')
    parser.add_argument('--rows', type=int, default=10000, help='Number of rows')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    args = parser.parse_args()
    generate_csv(args.output, args.rows, args.seed)
