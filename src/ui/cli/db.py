"""
CLI commands for the local MongoDB database.

Thin wrappers over ``src.core.services.mongo_ops``.  Every command
connects, runs one operation and disconnects.
"""

from __future__ import annotations

import json
import sys

import click

from src.core.services import mongo_ops
from src.core.services.mongo_ops import DatabaseError, MongoConnection


def _connection(ctx: click.Context, uri: str | None) -> MongoConnection:
    from src.core.config.loader import ConfigError, load_settings

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    factory = ctx.obj.get("connection_factory") or MongoConnection
    conn = factory(settings.database_name)
    try:
        conn.connect(uri or settings.connection_uri)
    except DatabaseError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    return conn


def _parse_json(raw: str, what: str) -> dict:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        click.secho(f"❌ Invalid {what}: {e}", fg="red", err=True)
        sys.exit(2)
    if not isinstance(value, dict):
        click.secho(f"❌ Invalid {what}: expected a JSON object", fg="red", err=True)
        sys.exit(2)
    return value


def _run(ctx: click.Context, uri: str | None, op, *args):  # type: ignore[no-untyped-def]
    conn = _connection(ctx, uri)
    try:
        return op(conn, *args)
    except DatabaseError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    finally:
        conn.disconnect()


_uri_option = click.option("--uri", default=None, help="Connection URI (default: from config).")


@click.group()
def db() -> None:
    """Database — query and edit documents in the local MongoDB."""


@db.command()
@_uri_option
@click.pass_context
def ping(ctx: click.Context, uri: str | None) -> None:
    """Check that the server answers."""
    conn = _connection(ctx, uri)
    conn.disconnect()
    click.secho("✅ MongoDB is reachable", fg="green")


@db.command("collections")
@_uri_option
@click.pass_context
def collections_cmd(ctx: click.Context, uri: str | None) -> None:
    """List collections."""
    names = _run(ctx, uri, mongo_ops.list_collections)
    if not names:
        click.echo("(no collections)")
    for name in names:
        click.echo(name)


@db.command()
@click.argument("collection")
@click.argument("document")
@_uri_option
@click.pass_context
def insert(ctx: click.Context, collection: str, document: str, uri: str | None) -> None:
    """Insert DOCUMENT (JSON object) into COLLECTION."""
    doc = _parse_json(document, "document")
    doc_id = _run(ctx, uri, mongo_ops.insert_document, collection, doc)
    click.secho(f"✅ Inserted {doc_id}", fg="green")


@db.command()
@click.argument("collection")
@click.option("--filter", "query", default="{}", help="JSON filter.")
@_uri_option
@click.pass_context
def find(ctx: click.Context, collection: str, query: str, uri: str | None) -> None:
    """Print documents from COLLECTION as JSON."""
    docs = _run(ctx, uri, mongo_ops.find_documents, collection, _parse_json(query, "filter"))
    click.echo(json.dumps(docs, indent=2, default=str))


@db.command()
@click.argument("collection")
@click.argument("document_id")
@click.argument("fields")
@_uri_option
@click.pass_context
def update(ctx: click.Context, collection: str, document_id: str, fields: str, uri: str | None) -> None:
    """Set FIELDS (JSON object) on one document."""
    changes = _parse_json(fields, "fields")
    modified = _run(ctx, uri, mongo_ops.update_document, collection, document_id, changes)
    click.echo("Modified" if modified else "No changes")


@db.command()
@click.argument("collection")
@click.argument("document_id")
@_uri_option
@click.pass_context
def delete(ctx: click.Context, collection: str, document_id: str, uri: str | None) -> None:
    """Delete one document by id."""
    deleted = _run(ctx, uri, mongo_ops.delete_document, collection, document_id)
    click.echo("Deleted" if deleted else "Not found")
