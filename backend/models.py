from sqlalchemy import (create_engine, Boolean, Column, Integer, String, Numeric,
                        DateTime, UniqueConstraint, func, select)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone
from decimal import Decimal

Base = declarative_base()

class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, index=True)
    balance = Column(Numeric(18, 2), default=Decimal("1000.00"))

class BetHistory(Base):
    __tablename__ = 'bets'
    __table_args__ = (UniqueConstraint('chain_anchor', 'nonce'),)  # cada índice da corrente só uma vez
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    chain_anchor = Column(String(64), nullable=False, index=True)
    nonce = Column(Integer, nullable=False)
    bet_amount = Column(Numeric(18, 2))
    target = Column(Numeric(5, 2))
    condition = Column(String(5))
    roll = Column(Numeric(5, 2))
    profit = Column(Numeric(18, 2))
    is_win = Column(Boolean)
    client_seed = Column(String)
    server_seed = Column(String(64))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            'nonce': self.nonce,
            'betAmount': float(self.bet_amount),
            'target': float(self.target),
            'condition': self.condition,
            'roll': float(self.roll),
            'profit': float(self.profit),
            'isWin': self.is_win,
            'clientSeed': self.client_seed,
            'serverSeed': self.server_seed,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


def make_engine(url: str):
    if url.startswith('sqlite'):
        kw = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in url or url == 'sqlite://':
            kw['poolclass'] = StaticPool
        return create_engine(url, echo=False, **kw)
    return create_engine(url, echo=False)


def make_session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine):
    Base.metadata.create_all(engine)


def get_or_create_user(db, username: str, balance: Decimal):
    u = db.query(User).filter_by(username=username).first()
    if not u:
        u = User(username=username, balance=balance)
        db.add(u)
        db.commit()
    return u


def next_game_index(db, chain_anchor: str) -> int:
    # retoma depois do último índice gravado para nunca reutilizar uma semente revelada
    last = db.execute(
        select(func.max(BetHistory.nonce)).where(BetHistory.chain_anchor == chain_anchor)
    ).scalar()
    return (last or 0) + 1
