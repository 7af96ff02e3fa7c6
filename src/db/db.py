from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from db.models import Base


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite:///") and not database_url.startswith("sqlite:///:memory:"):
        Path(database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, echo=echo)
    Base.metadata.create_all(engine)
    return engine


def init_db(database_url: str, *, echo: bool = False) -> Session:
    engine = create_db_engine(database_url, echo=echo)
    return sessionmaker(engine)()
