"""FastAPI application entrypoint, HTTP controllers and WebSocket endpoint.

Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Sending a message goes through the
same `MessageService.save_message` call whether it arrives over the
WebSocket or the REST route.

Endpoints implemented:
- WS   /ws                      (publishes to settings.MESSAGE_TOPIC)
- POST /message/send
- GET  /message/chat/{chat_id}
- POST /chat-create
- GET  /chat/{chat_id}
- DELETE /chat-delete/{chat_id}
- POST /user/register
- GET  /user/student-count, /user/tutor-count
- GET  /user/{user_id}, /tutor/{tutor_id}
- POST /user/{user_id}/roles/{role_name}
- POST /user/{user_id}/verify
- DELETE /user/{user_id}
- POST /category/create
- GET  /category/get-all
- GET  /health
"""

from fastapi import FastAPI, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from typing import List
import json
import logging
import time
import uuid
from .database import engine, create_db_and_tables, get_session
from . import services
from .config import settings
from .exceptions import ConflictError, InvalidInputError, NotFoundError, StorageError
from .schemas import (
    AccountCreate,
    AccountOut,
    ChatCreate,
    ChatOut,
    CourseCategoryIn,
    CourseCategoryOut,
    MessageDraft,
    MessageOut,
)
from .utils.broadcast import broker

app = FastAPI(title="Tutorium API")
logger = logging.getLogger("tutorium.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_LOGGED_PREFIXES = ("/message", "/chat")

# Allow simple browser testing from file:// or localhost frontends
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    logged = request.url.path.startswith(_LOGGED_PREFIXES)
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if logged:
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if logged:
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    """Surface persistence failures as 500 instead of a successful-looking reply."""
    logger.error("storage_failure path=%s error=%s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "storage failure"})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database_failure path=%s error=%s", request.url.path, exc.__class__.__name__)
    return JSONResponse(status_code=500, content={"detail": "storage failure"})


def _http_error(exc: Exception) -> HTTPException:
    """Map a domain error to the HTTP status clients see."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _ws_error(exc: Exception) -> dict:
    status = _http_error(exc).status_code if isinstance(exc, (NotFoundError, InvalidInputError)) else 500
    return {"error": str(exc) if status != 500 else "storage failure", "status": status}


def _persist_message(draft: MessageDraft) -> MessageOut:
    with Session(engine) as session:
        return services.MessageService(session).save_message(draft)


@app.websocket("/ws")
async def message_socket(websocket: WebSocket):
    """Real-time message channel.

    Every connection is subscribed to `settings.MESSAGE_TOPIC`. Each text
    frame is parsed as a message draft, persisted, and the persisted
    projection is published to all subscribers. Errors are reported as
    an `{"error", "status"}` frame to the sending connection only.
    """
    await websocket.accept()
    topic = settings.MESSAGE_TOPIC
    broker.subscribe(topic, websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                logger.info("ws_binary_frame_rejected")
                await websocket.send_json({"error": "invalid message payload", "status": 400})
                continue
            try:
                draft = MessageDraft.model_validate_json(raw)
            except ValidationError as exc:
                logger.info("ws_invalid_payload errors=%s", exc.error_count())
                await websocket.send_json({"error": "invalid message payload", "status": 400})
                continue
            try:
                saved = await run_in_threadpool(_persist_message, draft)
            except (NotFoundError, InvalidInputError) as exc:
                await websocket.send_json(_ws_error(exc))
                continue
            except StorageError as exc:
                logger.exception("ws_message_failed sender=%s", draft.sender_id)
                await websocket.send_json(_ws_error(exc))
                continue
            await broker.publish(topic, saved.model_dump(mode="json"))
    except WebSocketDisconnect:
        logger.debug("ws_disconnected topic=%s", topic)
    finally:
        broker.unsubscribe(topic, websocket)


@app.post('/message/send', response_model=MessageOut)
def send_message(draft: MessageDraft, db: Session = Depends(get_session)):
    """Persist a new message and return its canonical projection."""
    try:
        return services.MessageService(db).save_message(draft)
    except (NotFoundError, InvalidInputError) as e:
        raise _http_error(e)


@app.get('/message/chat/{chat_id}', response_model=List[MessageOut])
def chat_messages(chat_id: int, db: Session = Depends(get_session)):
    """Return the messages of a chat ordered by timestamp."""
    try:
        return services.MessageService(db).list_chat_messages(chat_id)
    except NotFoundError as e:
        raise _http_error(e)


@app.post('/chat-create', status_code=201)
def create_chat(payload: ChatCreate, db: Session = Depends(get_session)):
    """Create a chat session; the new chat's URL is in the `Location` header."""
    try:
        chat_id = services.ChatService(db).create_chat(payload)
    except InvalidInputError as e:
        raise _http_error(e)
    return PlainTextResponse("Chat created successfully!", status_code=201, headers={"Location": f"/chat/{chat_id}"})


@app.get('/chat/{chat_id}', response_model=ChatOut)
def get_chat(chat_id: int, db: Session = Depends(get_session)):
    try:
        return services.ChatService(db).get_chat(chat_id)
    except NotFoundError as e:
        raise _http_error(e)


@app.delete('/chat-delete/{chat_id}', status_code=204)
def delete_chat(chat_id: int, db: Session = Depends(get_session)):
    """Delete a chat by id. Its messages are retained."""
    try:
        services.ChatService(db).delete_chat(chat_id)
    except NotFoundError as e:
        raise _http_error(e)
    return Response(status_code=204)


@app.post('/user/register', response_model=AccountOut, status_code=201)
def register(payload: AccountCreate, db: Session = Depends(get_session)):
    """Register a new account. Duplicate emails are rejected with 409."""
    try:
        return services.AccountService(db).register(payload)
    except InvalidInputError as e:
        raise _http_error(e)


@app.get('/user/student-count')
def student_count(db: Session = Depends(get_session)):
    return services.AccountService(db).student_count()


@app.get('/user/tutor-count')
def tutor_count(db: Session = Depends(get_session)):
    return services.AccountService(db).tutor_count()


@app.get('/user/{user_id}', response_model=AccountOut)
def get_user(user_id: int, db: Session = Depends(get_session)):
    try:
        return services.AccountService(db).find_account_by_id(user_id)
    except NotFoundError as e:
        raise _http_error(e)


@app.get('/tutor/{tutor_id}', response_model=AccountOut)
def get_tutor(tutor_id: int, db: Session = Depends(get_session)):
    try:
        return services.AccountService(db).find_tutor_by_id(tutor_id)
    except NotFoundError as e:
        raise _http_error(e)


@app.post('/user/{user_id}/roles/{role_name}', response_model=AccountOut)
def grant_role(user_id: int, role_name: str, db: Session = Depends(get_session)):
    """Grant an additional role; roles already held are kept."""
    try:
        return services.AccountService(db).grant_role(user_id, role_name)
    except (NotFoundError, InvalidInputError) as e:
        raise _http_error(e)


@app.post('/user/{user_id}/verify', response_model=AccountOut)
def verify_user(user_id: int, verifier_id: int, db: Session = Depends(get_session)):
    """Mark an account verified on behalf of an ADMIN/VERIFIER account."""
    try:
        return services.AccountService(db).verify_account(user_id, verifier_id)
    except (NotFoundError, InvalidInputError) as e:
        raise _http_error(e)


@app.delete('/user/{user_id}')
def remove_user(user_id: int, db: Session = Depends(get_session)):
    """Delete or archive an account depending on retained messages."""
    try:
        outcome = services.AccountService(db).remove_account(user_id)
    except NotFoundError as e:
        raise _http_error(e)
    return {'status': outcome}


@app.post('/category/create', response_model=CourseCategoryOut, status_code=201)
def create_category(payload: CourseCategoryIn, db: Session = Depends(get_session)):
    try:
        return services.CategoryService(db).create_category(payload)
    except InvalidInputError as e:
        raise _http_error(e)


@app.get('/category/get-all', response_model=List[CourseCategoryOut])
def list_categories(db: Session = Depends(get_session)):
    return services.CategoryService(db).list_categories()


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tutorium.main:app", host=settings.API_HOST, port=settings.API_PORT)
