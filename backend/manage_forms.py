#!/usr/bin/env python3
"""
Command-line helper to check, push, export and submit FormFlow forms.

Usage:
    # Validate a form schema file locally
    python manage_forms.py check --file form.json

    # Upload a form schema (and optionally publish it)
    python manage_forms.py push --file form.json --publish

    # Export a form as pretty-printed JSON
    python manage_forms.py export --form-id my_form --output form.json

    # Fill in a preview session with values and submit it
    python manage_forms.py submit --form-id my_form --values values.json
"""
import argparse
import json
import sys
from pathlib import Path

import requests

from formflow.builder import FormBuilder
from formflow.config import settings
from formflow.errors import ConfigurationError
from formflow.schemas import Form


def load_form(path):
    """Parse and validate a form schema file."""
    text = Path(path).read_text(encoding="utf-8")
    form = Form.from_json(text)
    # rejects duplicate ids and dependency cycles
    FormBuilder.from_form(form)
    return form


def check_command(args):
    """Handle check command."""
    print(f"\nChecking {args.file}...")
    try:
        form = load_form(args.file)
    except (OSError, ConfigurationError) as e:
        print(f"ERROR: {e}")
        return 1

    fields = list(form.iter_fields())
    remote = [f.id for f in fields if getattr(f, "apiConfig", None) is not None]
    print(f"✓ Form '{form.name or form.id}' is valid")
    print(f"  Sections: {len(form.sections)}")
    print(f"  Fields: {len(fields)}")
    print(f"  Remote data sources: {len(remote)}")
    return 0


def push_command(args):
    """Handle push command."""
    try:
        form = load_form(args.file)
    except (OSError, ConfigurationError) as e:
        print(f"ERROR: {e}")
        return 1

    base_url = args.backend_url.rstrip("/")
    print(f"\nUploading form '{form.id}' to {base_url}...")
    try:
        r = requests.post(f"{base_url}/api/forms", json=form.model_dump(mode="json"))
        r.raise_for_status()
        if args.publish:
            r = requests.post(f"{base_url}/api/forms/{form.id}/publish")
            r.raise_for_status()
    except requests.RequestException as e:
        print(f"ERROR: Upload failed: {e}")
        return 1

    print(f"✓ Form uploaded: {form.id}")
    if args.publish:
        print(f"✓ Published version {r.json()['version']}")
    return 0


def export_command(args):
    """Handle export command."""
    base_url = args.backend_url.rstrip("/")
    try:
        r = requests.get(f"{base_url}/api/forms/{args.form_id}/export")
        r.raise_for_status()
    except requests.RequestException as e:
        print(f"ERROR: Export failed: {e}")
        return 1

    if args.output:
        Path(args.output).write_text(r.text, encoding="utf-8")
        print(f"✓ Form exported to: {args.output}")
    else:
        print(r.text)
    return 0


def submit_command(args):
    """Handle submit command."""
    base_url = args.backend_url.rstrip("/")
    try:
        values = json.loads(Path(args.values).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: Could not read values: {e}")
        return 1

    try:
        r = requests.post(f"{base_url}/api/forms/{args.form_id}/sessions")
        r.raise_for_status()
        session_id = r.json()["sessionId"]
        r = requests.patch(f"{base_url}/api/sessions/{session_id}/values", json={"values": values})
        r.raise_for_status()
        r = requests.post(f"{base_url}/api/sessions/{session_id}/submit")
    except requests.RequestException as e:
        print(f"ERROR: Submit failed: {e}")
        return 1

    data = r.json()
    if r.status_code == 422:
        print("✗ Submission rejected:")
        for field_id, message in data["errors"].items():
            print(f"  - {field_id}: {message}")
        return 1
    if r.status_code != 200:
        print(f"ERROR: Unexpected response {r.status_code}: {r.text}")
        return 1

    print(f"✓ Submitted at {data['submittedAt']}")
    print(json.dumps(data["values"], indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Check, push, export and submit FormFlow forms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python manage_forms.py check --file ./forms/daily_qa.json
  python manage_forms.py push --file ./forms/daily_qa.json --publish
  python manage_forms.py export --form-id daily_qa --output ./daily_qa.json
  python manage_forms.py submit --form-id daily_qa --values ./values.json
        """
    )
    parser.add_argument("--backend-url", default=settings.BACKEND_URL,
                        help=f"Backend base URL (default: {settings.BACKEND_URL})")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    check_parser = subparsers.add_parser("check", help="Validate a form schema file")
    check_parser.add_argument("--file", required=True, help="Form schema JSON file")

    push_parser = subparsers.add_parser("push", help="Upload a form schema")
    push_parser.add_argument("--file", required=True, help="Form schema JSON file")
    push_parser.add_argument("--publish", action="store_true", help="Publish the form after uploading")

    export_parser = subparsers.add_parser("export", help="Export a form schema as JSON")
    export_parser.add_argument("--form-id", required=True, help="Form id")
    export_parser.add_argument("--output", help="Output file (default: stdout)")

    submit_parser = subparsers.add_parser("submit", help="Submit values through a preview session")
    submit_parser.add_argument("--form-id", required=True, help="Form id")
    submit_parser.add_argument("--values", required=True, help="JSON file with field values")

    args = parser.parse_args()

    commands = {
        "check": check_command,
        "push": push_command,
        "export": export_command,
        "submit": submit_command,
    }
    if args.command not in commands:
        parser.print_help()
        return 1
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
