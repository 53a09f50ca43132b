"""Command-line interface for mdimgsize."""

import tomllib
from pathlib import Path

import click

from .config import Config


def load_config(config_path: Path | None, start: Path) -> Config:
    """Load an explicit config file, or the nearest .mdimgsize.toml above start."""
    try:
        if config_path is not None:
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            return Config.load(config_path)
        return Config.find_and_load(start if start.is_dir() else start.parent)
    except (FileNotFoundError, tomllib.TOMLDecodeError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to .mdimgsize.toml",
)
verbose_option = click.option("--verbose", "-v", is_flag=True, help="Verbose output")


@click.group()
@click.version_option()
def main():
    """mdimgsize - Frontmatter-aware image src rewriting and sizing for markdown."""
    pass


@main.command()
@click.argument("source", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file (or directory when SOURCE is a directory)",
)
@config_option
@verbose_option
def render(source: Path, output: Path | None, config_path: Path | None, verbose: bool):
    """Render markdown to HTML with image src and size attributes."""
    from .logging import setup_logging
    from .markdown_utils import render_directory, render_markdown_file

    setup_logging(verbose=verbose)
    config = load_config(config_path, source)

    if source.is_dir():
        if output is None:
            click.echo("Error: --output is required when SOURCE is a directory", err=True)
            raise SystemExit(1)
        count = render_directory(source, output, config.render)
        click.echo(f"Rendered {count} files to {output}")
        return

    html_content = render_markdown_file(source, config.render)
    if output is None:
        click.echo(html_content)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html_content, encoding="utf-8")
        click.echo(f"Wrote {output}")


@main.command()
@click.argument("html", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--markdown",
    "-m",
    "markdown_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Markdown source providing the frontmatter",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Output file (default: rewrite HTML in place)",
)
@config_option
@verbose_option
def postprocess(
    html: Path,
    markdown_file: Path | None,
    output: Path | None,
    config_path: Path | None,
    verbose: bool,
):
    """Rewrite and size the images of an already rendered HTML file."""
    from .logging import setup_logging
    from .postprocess import process_html_file

    setup_logging(verbose=verbose)
    config = load_config(config_path, html)

    if not process_html_file(html, markdown_file, config.dom, output):
        raise SystemExit(1)
    click.echo(f"Processed {html}")


@main.command()
@click.argument("source_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@config_option
@verbose_option
def watch(source_dir: Path, output_dir: Path, config_path: Path | None, verbose: bool):
    """Render markdown and re-render when files or images change."""
    from .watch import watch as do_watch

    config = load_config(config_path, source_dir)
    do_watch(source_dir, output_dir, config.render, verbose=verbose)


if __name__ == "__main__":
    main()
