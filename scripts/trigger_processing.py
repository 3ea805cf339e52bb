#!/usr/bin/env python3
"""
Dev helper: trigger pipeline processing for a raw email already in storage.

POSTs ``{"key": ...}`` to the local /api/trigger endpoint
and prints the run result. Can also write a sample .eml (two PDF
attachments) to upload to the inbound bucket first.

Usage
-----
# Write a sample email to upload to the inbound bucket
python scripts/trigger_processing.py --write-sample sample.eml \
    --to onboarding@acme.example --from "Jane Roe <jane.roe@example.com>"

# Trigger processing of an object key
python scripts/trigger_processing.py --key incoming/abc123

# Target a different backend URL
python scripts/trigger_processing.py --key incoming/abc123 \
    --url http://staging.example.com

Environment / .env
------------------
API_KEY   Shared key sent as X-API-Key (optional in development).
"""

import argparse
import json
import os
import sys
import textwrap
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path

import httpx
from dotenv import load_dotenv

# Minimal single-page PDF; content is never validated by the pipeline.
_SAMPLE_PDF = (
    b"%PDF-1.4\n1 0 obj<</Type/Catalog/Pages 2 0 R>>endobj\n"
    b"2 0 obj<</Type/Pages/Kids[3 0 R]/Count 1>>endobj\n"
    b"3 0 obj<</Type/Page/Parent 2 0 R/MediaBox[0 0 612 792]>>endobj\n"
    b"trailer<</Root 1 0 R>>\n%%EOF\n"
)


def build_sample_email(from_address: str, to_address: str) -> bytes:
    """Return a raw MIME email with a passport and a driving-licence PDF."""
    message = EmailMessage()
    message["From"] = from_address
    message["To"] = to_address
    message["Subject"] = "My onboarding documents"
    message["Message-ID"] = make_msgid(domain="example.com")
    message.set_content("Please find my documents attached.")
    for filename in ("Passport scan.pdf", "driving licence.pdf"):
        message.add_attachment(
            _SAMPLE_PDF, maintype="application", subtype="pdf", filename=filename
        )
    return message.as_bytes()


def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="trigger_processing.py",
        description=textwrap.dedent("""\
            Trigger processing of one stored raw email, or write a sample
            email to upload to the inbound bucket.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--key", default=None, help="Object key of the raw email")
    parser.add_argument("--api-key", default=None, help="Override API_KEY")
    parser.add_argument("--write-sample", default=None, metavar="PATH",
                        help="Write a sample .eml to PATH and exit")
    parser.add_argument("--from", dest="from_address",
                        default="Jane Roe <jane.roe@example.com>",
                        help="Sender for --write-sample")
    parser.add_argument("--to", dest="to_address", default="onboarding@acme.example",
                        help="Tenant receiving address for --write-sample")
    args = parser.parse_args()

    if args.write_sample:
        raw = build_sample_email(args.from_address, args.to_address)
        Path(args.write_sample).write_bytes(raw)
        print(f"Wrote sample email ({len(raw):,} bytes) to {args.write_sample}")
        return 0

    if not args.key:
        print("ERROR: --key is required unless --write-sample is used", file=sys.stderr)
        return 1

    payload = {"key": args.key}

    headers = {}
    api_key = args.api_key or os.getenv("API_KEY")
    if api_key:
        headers["X-API-Key"] = api_key

    endpoint = f"{args.url.rstrip('/')}/api/trigger"
    print(f"Endpoint : {endpoint}")
    print(f"Key      : {args.key}")

    try:
        response = httpx.post(endpoint, json=payload, headers=headers, timeout=120)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1

    symbol = "OK" if response.status_code == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {response.status_code}")
    try:
        body = response.json()
        print(json.dumps(body, indent=2))
    except ValueError:
        print(response.text)
        return 1

    return 0 if response.status_code == 200 and body.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
