"""CLI tools for Quickdesk administration."""

import asyncio

import click

from quickdesk.db.session import SessionLocal
from quickdesk.services import (
    auth_service,
    email_sync_service,
    reminder_service,
    subscription_service,
    ticket_service,
)
from quickdesk.services.workflow import run_action


@click.group()
def cli():
    """Quickdesk CLI tools."""
    pass


@cli.command()
@click.option("--name", required=True, help="Organization name")
@click.option("--domain", required=True, help="E-mail domain, e.g. acme.com")
@click.option("--owner-name", required=True, help="Owner's display name")
@click.option("--owner-email", required=True, help="Owner e-mail (must be @domain)")
@click.password_option("--password", help="Owner password")
def create_org(name: str, domain: str, owner_name: str, owner_email: str, password: str):
    """
    Create an organization, its owner account and a trial subscription.

    Example:
        python -m quickdesk.cli create-org --name "Acme Corp" --domain acme.com \\
            --owner-name "Jan Cruz" --owner-email jan@acme.com
    """
    db = SessionLocal()
    try:
        result = run_action(
            db,
            auth_service.signup,
            org_name=name,
            domain=domain,
            name=owner_name,
            email=owner_email,
            password=password,
        )
        if not result.success:
            click.echo(f"❌ {result.error}")
            return
        user, org = result.data
        click.echo(f"✓ Created organization: {org.name}")
        click.echo(f"  ID: {org.id}")
        click.echo(f"✓ Owner {user.email} can now log in")
    finally:
        db.close()


@cli.command()
def repair_archive_flags():
    """Make archived_at agree with the Archived status on every ticket."""
    db = SessionLocal()
    try:
        result = run_action(db, ticket_service.repair_archive_flags)
        if not result.success:
            click.echo(f"❌ {result.error}")
            return
        click.echo(f"✓ Stamped {result.data['stamped']}, cleared {result.data['cleared']}")
    finally:
        db.close()


@cli.command()
def expire_subscriptions():
    """Expire ended trials and mark lapsed periods PAST_DUE."""
    db = SessionLocal()
    try:
        result = run_action(db, subscription_service.expire_subscriptions)
        if not result.success:
            click.echo(f"❌ {result.error}")
            return
        click.echo(f"✓ Expired {result.data['expired']}, past due {result.data['past_due']}")
    finally:
        db.close()


@cli.command()
def send_reminders():
    """Send deadline reminders for tickets due within 24 hours or overdue."""
    db = SessionLocal()
    try:
        stats = asyncio.run(reminder_service.process_deadline_reminders(db))
        click.echo(
            f"✓ {stats['reminders_created']} reminders created, {stats['reminders_sent']} sent "
            f"across {stats['orgs_processed']} organizations"
        )
        for error in stats["errors"]:
            click.echo(f"❌ {error['org_name']}: {error['error']}")
    finally:
        db.close()


@cli.command()
def sync_email():
    """Turn new inbox messages into tickets for every organization."""
    db = SessionLocal()
    try:
        stats = asyncio.run(email_sync_service.process_email_sync(db))
        click.echo(
            f"✓ {stats['tickets_created']} tickets created across "
            f"{stats['orgs_processed']} organizations"
        )
        for error in stats["errors"]:
            click.echo(f"❌ {error['org_name']}: {error['error']}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
