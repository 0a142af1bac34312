"""Create the database tables and, with ``--seed``, a few sample systems.

Usage::

    python scripts/init_db.py [--seed] [--drop]

Seeding goes through the provisioning service, so the sample systems get
real id codes and QR images.  It is skipped if any system already exists.
"""

import argparse

from labinventory import create_app, db
from labinventory.models import System

SAMPLE = [
    ("MCA", 3, None),
    ("BCA", 2, "INTEL CORE I5 3.20 GHZ, 8GB RAM, 500GB HDD, LED MONITOR, KB & MOUSE"),
    ("UIT", 2, None),
]


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--seed", action="store_true", help="add sample systems")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.drop:
            db.drop_all()
        db.create_all()

        if args.seed and System.query.count() == 0:
            service = app.extensions["provisioning"]
            for lab, count, description in SAMPLE:
                created = service.create_systems(lab, count=count, description=description)
                print(f"{lab}: {', '.join(s.id_code for s in created)}")

        print("Database initialized.")


if __name__ == "__main__":
    main()
