"""Create missing tables and seed the module/rule catalog on a development database."""
from sitecraft.features.analysis import models  # noqa: F401
from sitecraft.features.analysis.catalog import seed_catalog
from sitecraft.platform.config import get_settings
from sitecraft.platform.db.base import Base
from sitecraft.platform.db.session import create_db_engine, create_session_factory


def main():
    engine = create_db_engine(get_settings())
    Base.metadata.create_all(engine)
    session_factory = create_session_factory(engine)
    with session_factory.begin() as session:
        added = seed_catalog(session)
    engine.dispose()
    print(f"✅ Catalog ready ({added['modules']} module(s), {added['rules']} rule(s) added)")


if __name__ == "__main__":
    main()
