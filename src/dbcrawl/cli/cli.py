"""CLI application for database metadata crawling."""

import typer

from dbcrawl.cli.commands.crawl import crawl_app

app = typer.Typer(
    help="dbcrawl - database metadata crawler",
    no_args_is_help=True,
)

app.add_typer(crawl_app, name="crawl")


if __name__ == "__main__":
    app()
