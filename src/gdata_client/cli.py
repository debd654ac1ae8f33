"""CLI for gdata-client - credentials and feed access.

Usage:
    gdata-client init                        # Create directories, show setup instructions
    gdata-client status                      # Show all credential status
    gdata-client fetch <uri>                 # Download and summarize a feed
    gdata-client fetch <uri> --raw -o FILE   # Download raw bytes with progress
    gdata-client google login                # Interactive OAuth login
    gdata-client google status               # Show OAuth token status
    gdata-client google revoke               # Revoke OAuth token
    gdata-client google import <path>        # Import OAuth credentials
    gdata-client google import-key <path>    # Import service account key
"""

from __future__ import annotations

import argparse
import json
import logging
import shutil
import sys
import webbrowser
from pathlib import Path

FETCH_OPERATION = "gdata-client-fetch"


def cmd_init() -> int:
    """Initialize the credential directory structure."""
    from gdata_client.config import (
        CLIENT_HOME,
        ENV_FILE,
        GOOGLE_CREDENTIALS,
        GOOGLE_DIR,
        GOOGLE_SERVICE_ACCOUNT,
        GOOGLE_TOKEN,
        ensure_google_dir,
    )

    print("=" * 60)
    print("GDATA-CLIENT SETUP")
    print("=" * 60)
    print()
    print(f"Home: {CLIENT_HOME}")
    print()

    ensure_google_dir()
    print(f"Created: {GOOGLE_DIR}/")
    print()

    print("Credential locations:")
    print()
    print(f"  {ENV_FILE}")
    print("    ClientLogin: GDATA_USERNAME, GDATA_PASSWORD")
    print("    Settings:    GDATA_APPLICATION_NAME, GDATA_CHUNK_SIZE, GDATA_RETRIES")
    print()
    print(f"  {GOOGLE_CREDENTIALS}")
    print("    OAuth client credentials from Google Cloud Console")
    print()
    print(f"  {GOOGLE_TOKEN}")
    print("    OAuth tokens (created by 'gdata-client google login')")
    print()
    print(f"  {GOOGLE_SERVICE_ACCOUNT}")
    print("    Service account key from Google Cloud Console")
    print()
    print("-" * 60)
    print()

    status = _check_status()

    if status["env_file"]:
        print(".env exists")
    else:
        print("Create .env with your settings:")
        print()
        print(f"  cat > {ENV_FILE} << 'EOF'")
        print("  GDATA_APPLICATION_NAME=my-app")
        print("  GDATA_USERNAME=me@example.com")
        print("  GDATA_PASSWORD=...")
        print("  EOF")
        print()

    if status["google"]["credentials"]:
        print("Google credentials.json exists")
    else:
        print("For Google OAuth, download credentials from:")
        print("  https://console.cloud.google.com/apis/credentials")
        print(f"  Save as: {GOOGLE_CREDENTIALS}")
        print()

    return 0


def cmd_status() -> int:
    """Show status of all configured credentials."""
    from gdata_client.config import CLIENT_HOME

    status = _check_status()

    print("=" * 60)
    print("GDATA-CLIENT CREDENTIAL STATUS")
    print("=" * 60)
    print()
    print(f"Home: {CLIENT_HOME}")
    print()

    print("Google:")
    print(f"  credentials.json:       {'[x]' if status['google']['credentials'] else '[ ]'}")
    print(f"  token.json:             {'[x]' if status['google']['token'] else '[ ]'}")
    print(f"  service_account_key:    {'[x]' if status['google']['service_account'] else '[ ]'}")
    print()

    print("ClientLogin:")
    for name, configured in status["client_login"].items():
        mark = "[x]" if configured else "[ ]"
        print(f"  {mark} {name}")
    print()

    return 0


def _check_status() -> dict:
    """Get credential status."""
    from gdata_client.config import get_credential_status

    return get_credential_status()


def _build_authenticator(auth_mode: str, scopes: list[str], service: str):
    """Create the authenticator for the fetch command."""
    from gdata_client.auth import (
        ClientLoginAuthenticator,
        GoogleOAuth,
        GoogleServiceAccount,
        OAuth2Authenticator,
    )
    from gdata_client.config import APPLICATION_NAME

    if auth_mode == "oauth":
        return OAuth2Authenticator(APPLICATION_NAME, GoogleOAuth(scopes=scopes))
    if auth_mode == "service-account":
        return OAuth2Authenticator(APPLICATION_NAME, GoogleServiceAccount(scopes=scopes))
    if auth_mode == "clientlogin":
        return ClientLoginAuthenticator(APPLICATION_NAME, service)
    return None


def cmd_fetch(
    uri: str,
    raw: bool = False,
    output: str | None = None,
    auth_mode: str = "none",
    scopes: list[str] | None = None,
    service: str = "cl",
    timeout: float | None = None,
) -> int:
    """Fetch a feed asynchronously, printing progress. Ctrl-C cancels."""
    from gdata_client.async_ops import QueueContext
    from gdata_client.auth import GDataAuthError
    from gdata_client.service import GDataService

    try:
        authenticator = _build_authenticator(auth_mode, scopes or ["calendar"], service)
    except GDataAuthError as e:
        print(f"Error: {e}")
        print("Run 'gdata-client init' for setup instructions")
        return 1

    context = QueueContext()
    result = {}

    def on_progress(handler, event):
        if event.percentage:
            print(f"\r  {event.position} bytes ({event.percentage}%)", end="", file=sys.stderr)
        else:
            print(f"\r  {event.position} bytes", end="", file=sys.stderr)

    def on_completed(handler, event):
        result["event"] = event

    with GDataService(service, authenticator=authenticator) as gdata:
        gdata.add_progress_listener(on_progress)
        gdata.add_completed_listener(on_completed)

        if raw:
            gdata.query_stream_async(uri, FETCH_OPERATION, context=context)
        else:
            gdata.query_feed_async(uri, FETCH_OPERATION, context=context)

        try:
            finished = context.run_until_complete(lambda: "event" in result, timeout=timeout)
        except KeyboardInterrupt:
            print("\nCancelling...", file=sys.stderr)
            finished = False

        if not finished:
            gdata.cancel_async(FETCH_OPERATION)
            context.run_until_complete(lambda: "event" in result, timeout=5)

    print(file=sys.stderr)
    event = result.get("event")
    if event is None or event.cancelled:
        print("Fetch cancelled")
        return 130
    if event.error is not None:
        print(f"Error: {event.error}")
        return 1

    if raw:
        body = event.response_stream.getvalue() if event.response_stream else b""
        if output:
            Path(output).expanduser().write_bytes(body)
            print(f"Saved {len(body)} bytes to {output}")
        else:
            sys.stdout.buffer.write(body)
        return 0

    document = event.feed or event.entry
    summary = _summarize(document)
    if output:
        Path(output).expanduser().write_text(json.dumps(summary, indent=2))
        print(f"Saved summary to {output}")
    else:
        print(json.dumps(summary, indent=2))
    return 0


def _summarize(document) -> dict:
    """Reduce a feed or entry to printable fields."""
    from gdata_client.atom import AtomFeed

    title = document.title.text if document.title else None
    if isinstance(document, AtomFeed):
        return {
            "id": document.id,
            "title": title,
            "total_results": document.total_results,
            "next": document.next_uri,
            "entries": [
                {
                    "id": entry.id,
                    "title": entry.title.text if entry.title else None,
                    "updated": entry.updated.isoformat() if entry.updated else None,
                    "edit": entry.edit_uri,
                }
                for entry in document.entries
            ],
        }
    return {"id": document.id, "title": title, "edit": document.edit_uri}


def google_login(scopes: list[str], no_browser: bool = False) -> int:
    """Interactive Google OAuth login."""
    from gdata_client.auth import CredentialsNotFoundError, GoogleOAuth

    print("=" * 60)
    print("GDATA-CLIENT GOOGLE LOGIN")
    print("=" * 60)

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"\nError: {e}")
        print("Run 'gdata-client init' for setup instructions")
        return 1

    if auth.is_authorized() and auth.status().state == "valid":
        print("\nAlready authorized with valid token")
        return google_status(scopes)

    print(f"\nScopes: {', '.join(scopes)}")
    print("\nA browser window will open for Google consent.")
    print("After granting access, copy the redirect URL back here.\n")

    url = auth.get_authorization_url()
    print(f"Authorization URL:\n{url}\n")

    if not no_browser:
        webbrowser.open(url)

    redirect_url = input("Paste redirect URL: ").strip()
    if not redirect_url:
        print("No URL provided; aborting.")
        return 1

    try:
        auth.fetch_token(redirect_url)
        print("\nToken saved successfully!")
        return google_status(scopes)
    except Exception as e:
        print(f"\nError: {e}")
        return 1


def google_status(scopes: list[str]) -> int:
    """Show Google OAuth token status."""
    from gdata_client.auth import CredentialsNotFoundError, GoogleOAuth

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError as e:
        print(f"Error: {e}")
        print("Run 'gdata-client init' for setup instructions")
        return 1

    status = auth.status()
    if status.state == "no_token":
        print("No token found - run 'gdata-client google login'")
        return 1

    print(f"Status     : {status.state}")
    print(f"Scopes     : {', '.join(status.scopes)}")
    print(f"Expires in : {status.expires_in or 'unknown'}")
    print(f"Refresh    : {'yes' if status.has_refresh_token else 'no'}")
    return 0


def google_revoke(scopes: list[str]) -> int:
    """Revoke Google OAuth token."""
    from gdata_client.auth import CredentialsNotFoundError, GoogleOAuth

    try:
        auth = GoogleOAuth(scopes=scopes)
    except CredentialsNotFoundError:
        print("No credentials to revoke")
        return 0

    auth.revoke_token()
    print("Token revoked and local cache cleared")
    return 0


def google_import(source_path: str) -> int:
    """Import OAuth credentials from a file."""
    from gdata_client.config import GOOGLE_CREDENTIALS, ensure_google_dir

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if "installed" not in data and "web" not in data:
        print("Error: Invalid OAuth credentials format")
        print("Expected 'installed' or 'web' key in JSON")
        return 1

    key = "installed" if "installed" in data else "web"
    client_id = data[key].get("client_id", "unknown")

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_CREDENTIALS)

    print("Imported OAuth credentials")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_CREDENTIALS}")
    print(f"  Client ID: {client_id[:40]}...")
    print()
    print("Next: Run 'gdata-client google login' to authorize")
    return 0


def google_import_key(source_path: str) -> int:
    """Import service account key from a file."""
    from gdata_client.config import GOOGLE_SERVICE_ACCOUNT, ensure_google_dir

    source = Path(source_path).expanduser()

    if not source.exists():
        print(f"Error: File not found: {source}")
        return 1

    try:
        with open(source) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON: {e}")
        return 1

    if data.get("type") != "service_account":
        print("Error: Invalid service account key format")
        print(f"Expected type 'service_account', got '{data.get('type')}'")
        return 1

    ensure_google_dir()
    shutil.copy2(source, GOOGLE_SERVICE_ACCOUNT)

    print("Imported service account key")
    print(f"  From: {source}")
    print(f"  To:   {GOOGLE_SERVICE_ACCOUNT}")
    print(f"  Email: {data.get('client_email', 'unknown')}")
    print(f"  Project: {data.get('project_id', 'unknown')}")
    print()
    print("Remember to share your feeds with the service account email!")
    return 0


def parse_scopes(scope_str: str | None) -> list[str]:
    """Parse comma-separated scopes."""
    if not scope_str:
        return ["calendar"]
    return [s.strip() for s in scope_str.split(",") if s.strip()]


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="gdata-client",
        description="GData client - credentials and feed access",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    subparsers.add_parser("init", help="Initialize credential directories")
    subparsers.add_parser("status", help="Show all credential status")

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch a feed with progress")
    fetch_parser.add_argument("uri", help="Feed or entry URI")
    fetch_parser.add_argument("--raw", action="store_true", help="Keep the raw response bytes")
    fetch_parser.add_argument("-o", "--output", help="Write the result to a file")
    fetch_parser.add_argument(
        "--auth",
        choices=["none", "oauth", "service-account", "clientlogin"],
        default="none",
        help="Authentication to use (default: none)",
    )
    fetch_parser.add_argument(
        "--scopes",
        type=str,
        default="calendar",
        help="Comma-separated scopes (default: calendar)",
    )
    fetch_parser.add_argument(
        "--service",
        default="cl",
        help="GData service code, used by ClientLogin (default: cl)",
    )
    fetch_parser.add_argument("--timeout", type=float, default=None, help="Give up after N seconds")

    # Google subcommand
    google_parser = subparsers.add_parser("google", help="Google OAuth management")
    google_subparsers = google_parser.add_subparsers(dest="google_command", help="Command")

    for name, help_text in (
        ("login", "Interactive OAuth login"),
        ("status", "Show token status"),
        ("revoke", "Revoke token"),
    ):
        sub = google_subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--scopes",
            type=str,
            default="calendar",
            help="Comma-separated scopes (default: calendar)",
        )
        if name == "login":
            sub.add_argument(
                "--no-browser",
                action="store_true",
                help="Don't open browser automatically",
            )

    import_parser = google_subparsers.add_parser("import", help="Import OAuth credentials")
    import_parser.add_argument("path", help="Path to credentials.json file")

    import_key_parser = google_subparsers.add_parser(
        "import-key", help="Import service account key"
    )
    import_key_parser.add_argument("path", help="Path to service account JSON key file")

    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "init":
        return cmd_init()

    if args.command == "status":
        return cmd_status()

    if args.command == "fetch":
        return cmd_fetch(
            args.uri,
            raw=args.raw,
            output=args.output,
            auth_mode=args.auth,
            scopes=parse_scopes(args.scopes),
            service=args.service,
            timeout=args.timeout,
        )

    if args.command == "google":
        scopes = parse_scopes(getattr(args, "scopes", None))

        if args.google_command == "login":
            return google_login(scopes, args.no_browser)
        elif args.google_command == "status":
            return google_status(scopes)
        elif args.google_command == "revoke":
            return google_revoke(scopes)
        elif args.google_command == "import":
            return google_import(args.path)
        elif args.google_command == "import-key":
            return google_import_key(args.path)
        else:
            google_parser.print_help()
            return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
