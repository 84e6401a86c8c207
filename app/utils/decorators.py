from functools import wraps

from flask import abort, session


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if "uid" not in session:
            abort(401, description="Please login first")
        return fn(*args, **kwargs)

    return wrapper


def role_required(*roles):
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            role = session.get("role")
            if role not in roles:
                abort(403, description="Insufficient permission")
            return fn(*args, **kwargs)

        return wrapper

    return deco
