#!/usr/bin/env python3
import argparse

from puremeds.services.hashing import derive_fingerprint
from puremeds.services.qr_codec import encode


def main() -> None:
    parser = argparse.ArgumentParser(description="Write the verification QR code for a medicine batch.")
    parser.add_argument("--batch-code", required=True, help="PM-<number>")
    parser.add_argument("--manufacturer", required=True)
    parser.add_argument("--product-name", required=True)
    parser.add_argument("--expiry-date", required=True, help="ISO date, e.g. 2027-06-30")
    parser.add_argument("--out", default=None)
    args = parser.parse_args()

    fingerprint = derive_fingerprint(args.batch_code, args.manufacturer, args.expiry_date, args.product_name)
    out = args.out or f"{args.batch_code}.png"
    with open(out, "wb") as fh:
        fh.write(encode(fingerprint, args.batch_code))
    print(f"Fingerprint: {fingerprint}")
    print(f"Wrote QR image to {out}")


if __name__ == "__main__":
    main()
