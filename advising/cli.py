"""CLI tools for advising dashboard administration."""

import json
from pathlib import Path
from typing import Any

import anyio
import click

from advising.core.config import settings
from advising.services.firestore_store import STUDENTS_COLLECTION
from advising.services.reconciler import COLLECTIONS
from advising.services.store_factory import (
    FirestoreConfigurationError,
    build_firestore_client,
)

SUBCOLLECTIONS_KEY = "__collections__"


def bundled_seed_documents() -> dict[str, dict[str, Any]]:
    """
    Bundled roster as seed documents.

    Each parent keeps its inline arrays and also gets one subcollection
    document per record, so both representations start out in agreement.
    """
    from advising.data import load_seed_documents

    documents: dict[str, dict[str, Any]] = {}
    for raw in load_seed_documents():
        student_id = raw["id"]
        document = {key: value for key, value in raw.items() if key != "id"}
        document[SUBCOLLECTIONS_KEY] = {
            spec.subcollection: {
                record["id"]: {k: v for k, v in record.items() if k != "id"}
                for record in raw.get(spec.field, [])
                if record.get("id")
            }
            for spec in COLLECTIONS
        }
        documents[student_id] = document
    return documents


def load_seed_file(path: Path) -> dict[str, dict[str, Any]]:
    """Read a seed file of the form ``{"students": {id: {..., "__collections__": {...}}}}``."""
    with path.open(encoding="utf-8") as handle:
        data = json.load(handle)
    students = data.get("students") if isinstance(data, dict) else None
    if not isinstance(students, dict):
        raise click.BadParameter("seed file must contain a 'students' object keyed by id")
    return students


async def seed_firestore(client: Any, documents: dict[str, dict[str, Any]]) -> int:
    """Write parent documents and their subcollection records. Returns records written."""
    written = 0
    for student_id, document in documents.items():
        parent = {k: v for k, v in document.items() if k != SUBCOLLECTIONS_KEY}
        student_ref = client.collection(STUDENTS_COLLECTION).document(student_id)
        await student_ref.set(parent)
        for name, records in (document.get(SUBCOLLECTIONS_KEY) or {}).items():
            for record_id, payload in records.items():
                await student_ref.collection(name).document(record_id).set(payload)
                written += 1
    return written


@click.group()
def cli():
    """Advising dashboard CLI tools."""
    pass


@cli.command()
@click.option(
    "--file",
    "seed_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Seed JSON file (defaults to the bundled demo roster)",
)
def seed(seed_file: Path | None):
    """
    Seed Firestore with student records.

    Example:
        advising seed --file firestoreSeed.json
    """
    try:
        client = build_firestore_client(settings)
    except FirestoreConfigurationError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    documents = load_seed_file(seed_file) if seed_file else bundled_seed_documents()
    written = anyio.run(seed_firestore, client, documents)

    click.echo(f"✓ Seeded {len(documents)} students ({written} records)")


@cli.command()
@click.option("--email", required=True, help="Email carried by the session")
@click.option("--name", default=None, help="Optional display name")
@click.option("--user-id", default=None, help="Subject id (defaults to the email)")
def issue_token(email: str, name: str | None, user_id: str | None):
    """
    Mint a development session token.

    Send it as the advising_session cookie or an Authorization: Bearer header.

    Example:
        advising issue-token --email "advisor@example.com" --name "Jane Doe"
    """
    from advising.core.security import create_session_token

    email = email.strip().lower()
    token = create_session_token(user_id or email, email, name)
    click.echo(token)


if __name__ == "__main__":
    cli()
