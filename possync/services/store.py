"""
Store - keyed upsert and simple queries over the relational store
"""
from typing import Any, Dict, List, Sequence
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert is not supported on dialect: {dialect}")


def upsert(db: Session, model, record: Dict[str, Any], conflict_keys: Sequence[str]) -> Any:
    """
    Insert `record`, or update the existing row with the same `conflict_keys`.
    `conflict_keys` must match a unique constraint on the table.
    Returns the row's primary key. Does not commit.
    """
    missing = [key for key in conflict_keys if record.get(key) is None]
    if missing:
        raise ValueError(f"Upsert into {model.__tablename__} without conflict key(s): {missing}")

    insert = _insert_for(db)
    stmt = insert(model).values(**record)
    update_columns = {
        key: stmt.excluded[key]
        for key in record
        if key not in conflict_keys and key != "id"
    }
    if update_columns:
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=update_columns)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
    db.execute(stmt)

    return db.query(model.id).filter_by(**{key: record[key] for key in conflict_keys}).scalar()


def query(db: Session, model, **filters) -> List[Any]:
    """All rows of `model` matching the equality filters"""
    return db.query(model).filter_by(**filters).all()
