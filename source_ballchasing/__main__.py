"""Main entry point for the source-ballchasing connector."""

from source_ballchasing.cli import cli


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
