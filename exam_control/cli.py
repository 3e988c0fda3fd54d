import click
from exam_control.bootstrap import bootstrap, ensure_super_admin


def register_commands(app):

    @app.cli.command("init-db")
    def init_db():
        """Create tables, run pending migrations and seed starter data."""
        applied = bootstrap(app)
        if not applied:
            click.echo("Schema up to date. No migrations applied.")
        for version, name in applied:
            click.echo(f"Applied migration {version}: {name}")
        click.echo("Done.")

    @app.cli.command("reset-admin")
    def reset_admin():
        """Restore the super admin account and its canonical password."""
        outcome = ensure_super_admin()
        click.echo(f"Super admin {app.config['SUPER_ADMIN_USERNAME']}: {outcome}")
