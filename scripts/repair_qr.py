"""Render and upload QR codes for every system that does not have one.

Run after a storage outage, or from cron.  Re-running is harmless: systems
that already have a QR image are left alone.
"""

from labinventory import create_app


def main():
    app = create_app()
    with app.app_context():
        repaired = app.extensions["provisioning"].repair_missing_qr()
        print(f"Repaired {repaired} QR code(s).")


if __name__ == "__main__":
    main()
