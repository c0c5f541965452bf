from dotenv import load_dotenv

from booklyo.app.billing.repository import create_schema
from booklyo.app_context import build_connection_factory
from booklyo.config import load_database_config

load_dotenv()


def main():
    database = load_database_config()
    create_schema(build_connection_factory(database))
    print(f"Done. Schema applied to {database.dbname} on {database.host}:{database.port}.")


if __name__ == "__main__":
    main()
