from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.db.users import InvalidUserId, MongoUserGateway, StoreFailure, UserNotFound, parse_user_id
from app.models.schemas import ErrorResponse, MessageResponse, User, UserPayload
from app.observability.tracing import operation_span
from app.services.user_dependencies import get_user_gateway

router = APIRouter(tags=["users"])


class InvalidInput(ValueError):
    pass


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{field}: {err.get('msg')}")
    return "; ".join(parts)


async def _read_payload(request: Request) -> UserPayload:
    raw = await request.body()
    try:
        return UserPayload.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidInput(_describe(exc)) from exc


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _message(message: str) -> JSONResponse:
    return JSONResponse(status_code=200, content=MessageResponse(message=message).model_dump())


@router.post("/users", status_code=201)
async def create_user(request: Request, gateway: MongoUserGateway = Depends(get_user_gateway)) -> JSONResponse:
    with operation_span(request, "createUser") as op:
        try:
            payload = await _read_payload(request)
        except InvalidInput as exc:
            op.log.error("user.bind_failed", error=str(exc))
            return _error(400, str(exc))

        try:
            user_id = await gateway.insert(payload)
        except StoreFailure as exc:
            op.fail(exc)
            op.log.error("user.insert_failed", error=str(exc))
            return _error(500, "Failed to create user")

        user = User(id=str(user_id), name=payload.name, email=payload.email)
        op.set_user_id(user.id)
        op.log.info("user.created")
        return JSONResponse(status_code=201, content=user.to_wire())


@router.get("/users/{user_id}")
async def get_user(user_id: str, request: Request, gateway: MongoUserGateway = Depends(get_user_gateway)) -> JSONResponse:
    with operation_span(request, "getUser") as op:
        try:
            oid = parse_user_id(user_id)
        except InvalidUserId as exc:
            op.log.error("user.invalid_id", error=str(exc))
            return _error(400, "Invalid user ID")
        op.set_user_id(str(oid))

        try:
            user = await gateway.find_by_id(oid)
        except UserNotFound:
            op.log.warning("user.not_found")
            return _error(404, "User not found")
        except StoreFailure as exc:
            op.fail(exc)
            op.log.error("user.get_failed", error=str(exc))
            return _error(500, "Failed to get user")

        op.log.info("user.retrieved")
        return JSONResponse(status_code=200, content=user.to_wire())


@router.put("/users/{user_id}")
async def update_user(user_id: str, request: Request, gateway: MongoUserGateway = Depends(get_user_gateway)) -> JSONResponse:
    with operation_span(request, "updateUser") as op:
        try:
            oid = parse_user_id(user_id)
        except InvalidUserId as exc:
            op.log.error("user.invalid_id", error=str(exc))
            return _error(400, "Invalid user ID")
        op.set_user_id(str(oid))

        try:
            payload = await _read_payload(request)
        except InvalidInput as exc:
            op.log.error("user.bind_failed", error=str(exc))
            return _error(400, str(exc))

        try:
            matched = await gateway.replace_fields(oid, payload.name, payload.email)
        except StoreFailure as exc:
            op.fail(exc)
            op.log.error("user.update_failed", error=str(exc))
            return _error(500, "Failed to update user")

        if matched == 0:
            op.log.warning("user.not_found")
            return _error(404, "User not found")

        op.log.info("user.updated")
        return _message("User updated successfully")


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, request: Request, gateway: MongoUserGateway = Depends(get_user_gateway)) -> JSONResponse:
    with operation_span(request, "deleteUser") as op:
        try:
            oid = parse_user_id(user_id)
        except InvalidUserId as exc:
            op.log.error("user.invalid_id", error=str(exc))
            return _error(400, "Invalid user ID")
        op.set_user_id(str(oid))

        try:
            deleted = await gateway.delete(oid)
        except StoreFailure as exc:
            op.fail(exc)
            op.log.error("user.delete_failed", error=str(exc))
            return _error(500, "Failed to delete user")

        if deleted == 0:
            op.log.warning("user.not_found")
            return _error(404, "User not found")

        op.log.info("user.deleted")
        return _message("User deleted successfully")
