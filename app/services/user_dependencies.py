from __future__ import annotations

from fastapi import HTTPException, Request

from app.db.users import MongoUserGateway


def get_user_gateway(request: Request) -> MongoUserGateway:
    gateway = getattr(request.app.state, "user_gateway", None)
    if gateway is None:
        # Only reachable when the lifespan did not run.
        raise HTTPException(status_code=503, detail="User store is not configured")
    return gateway
