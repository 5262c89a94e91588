from __future__ import annotations

from fastapi import HTTPException, Request, status


# PUBLIC_INTERFACE
def get_current_owner(request: Request) -> str:
    """
    FastAPI dependency returning the authenticated caller's identity.

    Token issuance and verification live in an upstream authentication layer
    (gateway or middleware) which forwards the verified user id in the header
    named by settings.owner_header (X-User-Id by default).

    Raises:
        HTTPException(401) if the header is missing or blank.
    """
    header = request.app.state.settings.owner_header
    owner_id = (request.headers.get(header) or "").strip()
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return owner_id
