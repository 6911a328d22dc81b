import pathlib

from sqlalchemy.ext.asyncio import create_async_engine

file_path = pathlib.Path(__file__).parents[1]
file_path /= "./casino.sqlite3"
sqlite_url = f"sqlite+aiosqlite:///{file_path}"


def create_sqlite_engine(url: str = sqlite_url):
    return create_async_engine(url=url, echo=False)
