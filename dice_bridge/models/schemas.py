from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import Integer, String


class Base(DeclarativeBase):
    pass


class Dice(Base):
    __tablename__ = "dice"
    id = Column(String, primary_key=True)
    style = Column(String, nullable=False)
    type = Column(String, nullable=False)
    position = Column(Integer, nullable=False, default=0)  # catalog order, first match wins
