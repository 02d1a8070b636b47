"""Run the Google OAuth installed-app flow and write the Drive token file.

The Drive image store (``UPLOAD_BACKEND=drive``) loads this token from
``GDRIVE_TOKEN_PATH`` and uploads photos as the consenting user. Without a
token it falls back to the service account at ``GDRIVE_CREDENTIALS_PATH``.

Usage:
  python scripts/get_token.py --client environment/credentials_oauth.json

Requires the ``oauth`` extra (google-auth-oauthlib).
"""
import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from api.config import Settings  # noqa: E402
from api.uploads import DRIVE_SCOPES  # noqa: E402

try:
    from google_auth_oauthlib.flow import InstalledAppFlow
except ImportError:
    raise SystemExit("google-auth-oauthlib is required. Install with: pip install -e .[oauth]")


def main():
    settings = Settings()
    p = argparse.ArgumentParser()
    p.add_argument("--client", default="environment/credentials_oauth.json", help="OAuth client JSON file (from Google Cloud Console)")
    p.add_argument("--output", default=settings.gdrive_token_path, help="Where to write the user token JSON")
    args = p.parse_args()

    if not os.path.exists(args.client):
        raise SystemExit(f"Client JSON not found at {args.client}")

    flow = InstalledAppFlow.from_client_secrets_file(args.client, DRIVE_SCOPES)
    creds = flow.run_local_server(port=0)

    outdir = os.path.dirname(args.output)
    if outdir:
        os.makedirs(outdir, exist_ok=True)

    # to_json() is the format Credentials.from_authorized_user_file reads back.
    with open(args.output, "w", encoding="utf-8") as f:
        f.write(creds.to_json())
    print(f"Wrote user token to {args.output}")


if __name__ == "__main__":
    main()
