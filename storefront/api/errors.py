# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import StorefrontError


def http_error(e: StorefrontError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_dict())
