import json
import sys

import typer

from backend.app.core.auth import UserStore
from backend.app.core.database import Database
from backend.app.core.errors import LedgerError
from backend.app.core.logging import setup_logging
from backend.app.db.models import Role, TransactionType
from backend.app.services.allocation import run_monthly_allocation
from backend.app.services.points import PointsLedger

app = typer.Typer(help="Administer the kudos points ledger.")


@app.callback()
def _configure() -> None:
    setup_logging(stream=sys.stderr)


@app.command("init-db")
def init_db(
    database_url: str = typer.Option(
        None,
        "--database-url",
        envvar="KUDOS_DATABASE_URL",
        help="Database URL (defaults to the configured one).",
    ),
) -> None:
    """Create all tables that do not exist yet."""
    db = Database(url=database_url)
    try:
        db.create_all()
    finally:
        db.dispose()
    typer.echo("Database schema created.")


@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="Login email of the new user."),
    first_name: str = typer.Option(..., "--first-name"),
    last_name: str = typer.Option(..., "--last-name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    department: str = typer.Option(None, "--department"),
    role: Role = typer.Option(Role.EMPLOYEE, "--role", case_sensitive=False),
) -> None:
    """Create a user with any role; self-registration only creates employees."""
    db = Database()
    try:
        user = UserStore(db).register_local_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            department=department,
            role=role,
        )
    except LedgerError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.dispose()
    typer.echo(f"Created {user.role} {user.email} ({user.id})")


@app.command("allocate")
def allocate() -> None:
    """Credit every active user's monthly allocation now."""
    db = Database()
    try:
        report = run_monthly_allocation(PointsLedger(db))
    finally:
        db.dispose()
    typer.echo(json.dumps(report.as_dict(), indent=2))
    if report.failed:
        for user_id, reason in report.failed.items():
            typer.echo(f"Failed for {user_id}: {reason}", err=True)
        raise typer.Exit(code=1)


@app.command("grant")
def grant(
    user_id: str = typer.Argument(..., help="Id of the user to credit."),
    amount: int = typer.Argument(..., min=1, help="Points to add."),
    description: str = typer.Option(
        "Points granted by administrator",
        "--description",
        "-d",
        help="Ledger description recorded with the credit.",
    ),
) -> None:
    """Add points to a user's balance outside the monthly cycle."""
    db = Database()
    try:
        result = PointsLedger(db).credit(user_id, amount, description, type=TransactionType.EARNED)
    except LedgerError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.dispose()
    typer.echo(f"Granted {result.amount} points; new balance {result.new_balance}")


def main() -> None:
    """Entry point for `python -m backend.cli`."""
    app()  # pragma: no cover


if __name__ == "__main__":
    main()  # pragma: no cover
