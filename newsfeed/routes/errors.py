from contextlib import contextmanager

from fastapi import HTTPException

from newsfeed.exceptions import ConfigurationError, PreconditionError


@contextmanager
def command_errors():
    """Translate command failures into HTTP errors: 400 for configuration, 409 for preconditions."""
    try:
        yield
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except PreconditionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
