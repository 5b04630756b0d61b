import datetime

from sqlalchemy import inspect


def now_iso() -> str:
    return datetime.datetime.now(datetime.UTC).isoformat()


def row_to_dict(row, exclude=()):
    """Column values of an ORM row as a plain dict."""
    if row is None:
        return None
    data = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in exclude:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, datetime.datetime):
            value = value.isoformat()
        data[attr.key] = value
    return data


def user_to_dict(user):
    return row_to_dict(user, exclude=("password",))


def student_brief(user):
    if user is None:
        return None
    return {"user_id": user.user_id, "name": user.name, "number": user.number}
