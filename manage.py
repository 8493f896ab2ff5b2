"""
manage.py — CLI admin commands for Travel Notes.

Usage:
    python manage.py init-db
    python manage.py create-user
    python manage.py create-user --email traveller@example.com --profile "Loves old towns"
    python manage.py purge-attractions --note-id <uuid>
"""

import click

from auth import hash_password
from database import SessionLocal, init_db
from models import Attraction, TravelNote, User


@click.group()
def cli():
    """Travel Notes administration."""


@cli.command('init-db')
def init_db_command():
    """Create all tables."""
    init_db()
    click.echo('✓ Database tables created')


@cli.command('create-user')
@click.option('--email',    prompt=True,  help='Account email address')
@click.option('--password', prompt=True,  hide_input=True, confirmation_prompt=True,
              help='Login password (hidden)')
@click.option('--profile',  default=None, help='Optional profile description')
def create_user(email: str, password: str, profile: str | None):
    """Create a new traveller account."""
    email = email.strip().lower()

    with SessionLocal() as session:
        existing = session.query(User).filter_by(email=email).first()
        if existing:
            click.echo(f'✗ An account with email {email!r} already exists (id={existing.id}).', err=True)
            raise SystemExit(1)

        user = User(
            email               = email,
            password_hash       = hash_password(password),
            profile_description = (profile or '').strip() or None,
            is_active           = True,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        click.echo(f'✓ Created account for {email!r} (id={user.id})')


@cli.command('purge-attractions')
@click.option('--note-id', required=True, help='Travel note whose attractions are removed')
@click.confirmation_option(prompt='Remove every attraction from this note?')
def purge_attractions(note_id: str):
    """Remove all attractions from one travel note."""
    with SessionLocal() as session:
        if session.get(TravelNote, note_id) is None:
            click.echo(f'✗ Travel note {note_id!r} not found.', err=True)
            raise SystemExit(1)
        deleted = session.query(Attraction).filter_by(travel_note_id=note_id).delete()
        session.commit()
        click.echo(f'✓ Removed {deleted} attraction(s) from note {note_id}')


if __name__ == '__main__':
    cli()
