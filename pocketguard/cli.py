# pocketguard/cli.py
import logging
import os

import click
from dotenv import load_dotenv

from pocketguard import database
from pocketguard.auth import TokenIssuer, register
from pocketguard.config import load_config
from pocketguard.dashboard import build_dashboard
from pocketguard.errors import PocketGuardError
from pocketguard.manual import load_expense_file
from pocketguard.settings import SettingsService
from pocketguard.utils import dedupe_transactions, filter_transactions_by_month


def _configure_logging(level):
    logging.basicConfig(
        level=str(os.getenv("POCKETGUARD_LOG_LEVEL", level)).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _require_user(db_path, email):
    user = database.get_user_by_email(db_path, email)
    if user is None:
        raise click.ClickException(f"No user with email {email}")
    return user


@click.group()
@click.option(
    '--config', 'config_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='Path to config.yaml (defaults are used when it does not exist)'
)
@click.option(
    '--env-file', 'env_file',
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help='Optional .env file with secrets such as JWT_SECRET'
)
@click.option(
    '--db', 'db_path',
    default=None,
    type=click.Path(dir_okay=False),
    help='SQLite database file (overrides config)'
)
@click.pass_context
def main(ctx, config_path, env_file, db_path):
    """
    PocketGuard: track expenses, budgets and savings milestones.
    """
    if env_file:
        load_dotenv(env_file)
    try:
        cfg = load_config(config_path)
    except PocketGuardError as e:
        raise click.ClickException(str(e))
    if db_path:
        cfg['db_path'] = db_path
    _configure_logging(cfg.get('log_level', 'INFO'))
    ctx.obj = cfg


@main.command('init-db')
@click.pass_obj
def init_db(cfg):
    """Create the database schema."""
    database.init_db(cfg['db_path'])
    click.echo(f"Initialized database at {cfg['db_path']}.")


@main.command('create-user')
@click.argument('name')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.pass_obj
def create_user(cfg, name, email, password):
    """Register a user with NAME and EMAIL."""
    issuer = TokenIssuer(secret=str(cfg['jwt_secret']), ttl_days=int(cfg['token_ttl_days']))
    try:
        session = register(cfg['db_path'], issuer, name, email, password)
    except PocketGuardError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created user {session['user']['id']} ({email}).")


@main.command('import-expenses')
@click.argument('email')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def import_expenses(cfg, email, path):
    """Load expenses for EMAIL from a YAML file of entries or a JSON export."""
    user = _require_user(cfg['db_path'], email)
    try:
        txs = load_expense_file(path)
    except PocketGuardError as e:
        raise click.ClickException(f"Error loading expenses: {e}")
    unique_txs = dedupe_transactions(txs)
    stored = database.append_expenses(cfg['db_path'], user.id, unique_txs)
    click.echo(f"Stored {stored} expense(s) for {email}.")


@main.command('report')
@click.argument('email')
@click.option('--hide', 'hidden', multiple=True, help='Category to leave out of the chart view (repeatable)')
@click.option('--budget', type=click.FloatRange(min=0), default=None, help='Save a new budget limit first')
@click.option('--balance', type=click.FloatRange(min=0), default=None, help='Save a new initial balance first')
@click.option('--month', default=None, help='Only count expenses from this YYYY-MM')
@click.pass_obj
def report(cfg, email, hidden, budget, balance, month):
    """Print the spending dashboard for EMAIL."""
    user = _require_user(cfg['db_path'], email)
    txs = database.list_expenses(cfg['db_path'], user.id)
    if month:
        try:
            txs = filter_transactions_by_month(txs, month)
        except PocketGuardError as e:
            raise click.ClickException(str(e))

    service = SettingsService(cfg['db_path'])
    settings = service.get(user.id)
    if budget is not None or balance is not None:
        settings = service.update(user.id, budget_limit=budget, initial_balance=balance)

    dash = build_dashboard(txs, settings, hidden=hidden)

    click.echo(f"Total spent: {dash['total_spent']:.2f} across {dash['transaction_count']} expense(s)")
    click.echo("\nCategories:")
    for row in dash['categories']:
        flag = ' (hidden)' if row['hidden'] else ''
        click.echo(f"  {row['category']:<15} {row['amount']:>10.2f}  {row['percentage']:5.1f}%{flag}")
    if dash['hidden']:
        click.echo(f"Visible total: {dash['chart']['visible_total']:.2f}")

    budget_info = dash['budget']
    if budget_info['configured']:
        click.echo(
            f"\nBudget: {budget_info['total_spent']:.2f} / {budget_info['limit']:.2f} "
            f"({budget_info['percentage']:.1f}%, {budget_info['severity']})"
        )
    else:
        click.echo("\nBudget: not configured")

    bal = dash['balance']
    if bal['initial'] > 0:
        click.echo(
            f"Balance: {bal['current']:.2f} of {bal['initial']:.2f} left "
            f"({bal['spending_percentage']:.1f}% spent, {bal['severity']})"
        )
        click.echo(f"Spending of balance: {bal['spending_severity']}")
        click.echo(f"Suggested savings: {bal['suggested_savings']:.2f}")
    else:
        click.echo("Balance: not configured")

    if dash['monthly']:
        click.echo("\nBy month:")
        for row in dash['monthly']:
            click.echo(f"  {row['label']:<10} {row['amount']:>10.2f}")


@main.command('serve')
@click.option('--host', default=None, help='Host to bind (default from config)')
@click.option('--port', type=int, default=None, help='Port to bind (default from config)')
@click.pass_obj
def serve(cfg, host, port):
    """Run the REST API."""
    import uvicorn

    from pocketguard.api import create_app

    host = host or cfg['host']
    port = port or int(cfg['port'])
    click.echo(f"PocketGuard API running at http://{host}:{port} (db: {cfg['db_path']})")
    uvicorn.run(create_app(cfg), host=host, port=port, log_level=str(cfg.get('log_level', 'info')).lower())


if __name__ == '__main__':
    main()
