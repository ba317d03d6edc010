"""Map service exceptions onto HTTP responses.

Services raise plain exceptions; routers wrap calls in
`with service_errors():` so the mapping lives in one place.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from app.services.activity_service import ActivityValidationError, NotFoundError

logger = logging.getLogger(__name__)


@contextmanager
def service_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(e)
        ) from None
    except ActivityValidationError as e:
        logger.warning("Rejected activity write: %s", e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)
        ) from None
