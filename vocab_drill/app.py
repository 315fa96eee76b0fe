"""FastAPI application with all routes."""
from __future__ import annotations

import logging
import math

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request

from vocab_drill.config import Settings, load_settings, save_settings
from vocab_drill.db import Database, DuplicateWordError, InvalidWordError
from vocab_drill.matcher import EmptyAnswerError
from vocab_drill.models import Direction, OrderMode
from vocab_drill.practice import (
    AlreadyChecked,
    PracticeSession,
    SessionComplete,
    SessionNotReady,
)
from vocab_drill.quiz import (
    AlreadyAnswered,
    InvalidSampleSize,
    ItemLoadError,
    NoItemsError,
    NotAnswered,
    TestSession,
    WrongStage,
)

app = FastAPI(title="Vocab Drill")

# Global state (initialized in startup)
_db: Database | None = None
_settings: Settings | None = None
_practice_sessions: dict[str, PracticeSession] = {}  # user_id -> free practice
_test_sessions: dict[str, TestSession] = {}  # user_id -> fixed test

_log = logging.getLogger("vocab_drill.app")


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def _user_id(request: Request) -> str:
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise HTTPException(401, "Missing X-User-Id header")
    return user_id


async def _json_body(request: Request) -> dict:
    if not await request.body():
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, "Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(400, "Expected a JSON object")
    return body


@app.on_event("startup")
async def startup():
    global _db, _settings
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    logging.getLogger("vocab_drill").setLevel(_settings.log_level.upper())
    _db = Database(_settings.db_full_path)


@app.on_event("shutdown")
async def shutdown():
    if _db:
        _db.close()


# ── API: Stats ────────────────────────────────────────────────────────────

@app.get("/api/stats")
async def api_stats(request: Request):
    return get_db().get_stats(_user_id(request))


# ── API: Words ────────────────────────────────────────────────────────────

def _reconcile_practice(user_id: str) -> None:
    """Let an open practice session drop queue entries for deleted words."""
    session = _practice_sessions.get(user_id)
    if session is not None and session.ready:
        session.reload()


def _word_fields(body: dict, partial: bool) -> dict:
    fields = {}
    for name in ("headword", "definitions", "description", "part_of_speech"):
        if name in body:
            fields[name] = body[name]
        elif not partial and name in ("headword", "definitions"):
            raise HTTPException(400, f"Missing field: {name}")
    if "definitions" in fields:
        defs = fields["definitions"]
        if isinstance(defs, str):
            defs = defs.split(",")
        if not isinstance(defs, list):
            raise HTTPException(400, "definitions must be a list of strings")
        fields["definitions"] = [str(d) for d in defs]
    return fields


@app.get("/api/words")
async def api_words(request: Request):
    user_id = _user_id(request)
    q = request.query_params
    s = get_settings()
    try:
        page = max(1, int(q.get("page", 1)))
        page_size = max(1, int(q.get("page_size", s.page_size)))
    except ValueError:
        raise HTTPException(400, "page and page_size must be integers")
    term = q.get("q", "")

    db = get_db()
    total = db.count_items(user_id, term)
    try:
        items = db.search_items(
            user_id, term,
            offset=(page - 1) * page_size,
            limit=page_size,
            sort=q.get("sort", "headword"),
            order=q.get("order", "asc"),
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {
        "items": [i.to_dict() for i in items],
        "total": total,
        "page": page,
        "pages": max(1, math.ceil(total / page_size)),
    }


@app.post("/api/words")
async def api_word_create(request: Request):
    user_id = _user_id(request)
    fields = _word_fields(await _json_body(request), partial=False)
    try:
        item = get_db().insert_item(user_id, **fields)
    except DuplicateWordError as e:
        raise HTTPException(409, {"message": str(e), "existing": e.existing.to_dict()})
    except InvalidWordError as e:
        raise HTTPException(400, str(e))
    return item.to_dict()


@app.get("/api/words/{item_id}")
async def api_word_get(item_id: str, request: Request):
    item = get_db().get_item(_user_id(request), item_id)
    if item is None:
        raise HTTPException(404, "Word not found")
    return item.to_dict()


@app.put("/api/words/{item_id}")
async def api_word_update(item_id: str, request: Request):
    user_id = _user_id(request)
    fields = _word_fields(await _json_body(request), partial=True)
    try:
        item = get_db().update_item(user_id, item_id, **fields)
    except DuplicateWordError as e:
        raise HTTPException(409, {"message": str(e), "existing": e.existing.to_dict()})
    except InvalidWordError as e:
        raise HTTPException(400, str(e))
    if item is None:
        raise HTTPException(404, "Word not found")
    _reconcile_practice(user_id)
    return item.to_dict()


@app.delete("/api/words/{item_id}")
async def api_word_delete(item_id: str, request: Request):
    user_id = _user_id(request)
    if not get_db().delete_item(user_id, item_id):
        raise HTTPException(404, "Word not found")
    _reconcile_practice(user_id)
    return {"ok": True}


@app.post("/api/words/bulk-delete")
async def api_words_bulk_delete(request: Request):
    user_id = _user_id(request)
    ids = (await _json_body(request)).get("ids", [])
    if not isinstance(ids, list) or not ids:
        raise HTTPException(400, "No ids provided")
    deleted = get_db().delete_items(user_id, [str(i) for i in ids])
    _reconcile_practice(user_id)
    return {"deleted": deleted}


# ── API: Free practice ────────────────────────────────────────────────────

def _practice(user_id: str) -> PracticeSession:
    session = _practice_sessions.get(user_id)
    if session is None:
        db = get_db()
        s = get_settings()
        session = PracticeSession(
            user_id, db, db, db,
            direction=s.default_direction,
            order=s.default_order,
            allow_reguess=s.allow_reguess,
        )
        _practice_sessions[user_id] = session
    if not session.ready:
        session.load()
    return session


def _practice_error(e: Exception) -> HTTPException:
    if isinstance(e, SessionNotReady):
        return HTTPException(503, str(e))
    if isinstance(e, (SessionComplete, AlreadyChecked)):
        return HTTPException(409, str(e))
    return HTTPException(400, str(e))


def _finish_payload(session: PracticeSession) -> dict:
    finished = session.finish()
    return {
        "summary": finished.summary.to_dict(),
        "history_recorded": finished.recorded,
        "history_error": finished.error,
    }


@app.get("/api/practice")
async def api_practice_state(request: Request):
    return _practice(_user_id(request)).to_dict()


@app.post("/api/practice/reload")
async def api_practice_reload(request: Request):
    session = _practice(_user_id(request))
    session.reload()
    return session.to_dict()


@app.post("/api/practice/check")
async def api_practice_check(request: Request):
    session = _practice(_user_id(request))
    body = await _json_body(request)
    answer = body.get("answer", "")
    if not isinstance(answer, (str, list)):
        raise HTTPException(400, "answer must be a string or a list of strings")
    try:
        result = session.check(answer)
    except (SessionNotReady, SessionComplete, AlreadyChecked, EmptyAnswerError) as e:
        raise _practice_error(e)
    return {"result": result.to_dict(), "state": session.to_dict()}


@app.post("/api/practice/advance")
async def api_practice_advance(request: Request):
    session = _practice(_user_id(request))
    try:
        session.advance()
    except (SessionNotReady, SessionComplete) as e:
        raise _practice_error(e)

    result = {"session_complete": session.completed}
    if session.completed:
        result["finished"] = _finish_payload(session)
    result["state"] = session.to_dict()
    return result


@app.post("/api/practice/reset")
async def api_practice_reset(request: Request):
    session = _practice(_user_id(request))
    try:
        session.reset()
    except SessionNotReady as e:
        raise _practice_error(e)
    return session.to_dict()


@app.post("/api/practice/finish")
async def api_practice_finish(request: Request):
    session = _practice(_user_id(request))
    try:
        result = _finish_payload(session)
    except SessionNotReady as e:
        raise _practice_error(e)
    result["state"] = session.to_dict()
    return result


@app.post("/api/practice/direction")
async def api_practice_direction(request: Request):
    session = _practice(_user_id(request))
    body = await _json_body(request)
    try:
        session.set_direction(body.get("direction"))
    except ValueError:
        raise HTTPException(400, f"Unknown direction: {body.get('direction')!r}")
    return session.to_dict()


@app.post("/api/practice/order")
async def api_practice_order(request: Request):
    session = _practice(_user_id(request))
    body = await _json_body(request)
    try:
        session.set_order(body.get("order"))
    except ValueError:
        raise HTTPException(400, f"Unknown order: {body.get('order')!r}")
    return session.to_dict()


@app.post("/api/practice/reguess")
async def api_practice_reguess(request: Request):
    session = _practice(_user_id(request))
    body = await _json_body(request)
    allow = body.get("allow_reguess")
    if not isinstance(allow, bool):
        raise HTTPException(400, "allow_reguess must be true or false")
    session.set_allow_reguess(allow)
    return session.to_dict()


# ── API: Test ─────────────────────────────────────────────────────────────

def _test(user_id: str) -> TestSession:
    session = _test_sessions.get(user_id)
    if session is None:
        db = get_db()
        session = TestSession(
            user_id, db, history=db, options_count=get_settings().options_count
        )
        _test_sessions[user_id] = session
    return session


@app.get("/api/test")
async def api_test_state(request: Request):
    return _test(_user_id(request)).to_dict()


@app.post("/api/test/start")
async def api_test_start(request: Request):
    session = _test(_user_id(request))
    body = await _json_body(request)
    s = get_settings()
    try:
        session.start(
            body.get("size", s.default_test_size),
            direction=body.get("direction", s.default_direction),
            input_mode=body.get("input_mode", "multiple"),
        )
    except WrongStage as e:
        raise HTTPException(409, str(e))
    except ItemLoadError as e:
        raise HTTPException(503, f"Could not load words: {e}")
    except (InvalidSampleSize, NoItemsError, ValueError) as e:
        raise HTTPException(400, str(e))
    return session.to_dict()


@app.post("/api/test/answer")
async def api_test_answer(request: Request):
    session = _test(_user_id(request))
    body = await _json_body(request)
    answer = body.get("answer", "")
    if not isinstance(answer, (str, list)):
        raise HTTPException(400, "answer must be a string or a list of strings")
    try:
        correct = session.submit(answer)
    except (WrongStage, AlreadyAnswered) as e:
        raise HTTPException(409, str(e))
    except EmptyAnswerError as e:
        raise HTTPException(400, str(e))
    question = session.current
    return {
        "correct": correct,
        "accepted": question.item.accepted(session.direction),
        "is_last": session.is_last,
        "state": session.to_dict(),
    }


@app.post("/api/test/next")
async def api_test_next(request: Request):
    session = _test(_user_id(request))
    try:
        session.advance()
    except (WrongStage, NotAnswered) as e:
        raise HTTPException(409, str(e))
    return session.to_dict()


@app.get("/api/test/results")
async def api_test_results(request: Request):
    session = _test(_user_id(request))
    try:
        results = session.results()
    except WrongStage as e:
        raise HTTPException(409, str(e))
    return results.to_dict()


@app.post("/api/test/retake")
async def api_test_retake(request: Request):
    session = _test(_user_id(request))
    session.retake()
    return session.to_dict()


# ── API: History ──────────────────────────────────────────────────────────

@app.get("/api/history")
async def api_history(request: Request):
    user_id = _user_id(request)
    q = request.query_params
    try:
        records = get_db().list_history(
            user_id,
            direction=q.get("direction") or None,
            score_band=q.get("score") or None,
            mode=q.get("mode") or None,
            sort=q.get("sort", "date"),
            order=q.get("order", "desc"),
        )
    except ValueError as e:
        raise HTTPException(400, str(e))
    average = round(sum(r["score"] for r in records) / len(records)) if records else 0
    return {"records": records, "total": len(records), "average_score": average}


@app.delete("/api/history")
async def api_history_clear(request: Request):
    return {"deleted": get_db().clear_history(_user_id(request))}


@app.delete("/api/history/{record_id}")
async def api_history_delete(record_id: str, request: Request):
    if not get_db().delete_history(_user_id(request), [record_id]):
        raise HTTPException(404, "History record not found")
    return {"ok": True}


@app.post("/api/history/bulk-delete")
async def api_history_bulk_delete(request: Request):
    user_id = _user_id(request)
    ids = (await _json_body(request)).get("ids", [])
    if not isinstance(ids, list) or not ids:
        raise HTTPException(400, "No ids provided")
    return {"deleted": get_db().delete_history(user_id, [str(i) for i in ids])}


# ── API: Settings ─────────────────────────────────────────────────────────

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _is_count(v) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v > 0


_SETTING_CHECKS = {
    "db_path": lambda v: isinstance(v, str) and bool(v.strip()),
    "default_direction": lambda v: isinstance(v, str) and v in {d.value for d in Direction},
    "default_order": lambda v: isinstance(v, str) and v in {o.value for o in OrderMode},
    "allow_reguess": lambda v: isinstance(v, bool),
    "test_sizes": lambda v: isinstance(v, list) and bool(v) and all(_is_count(n) for n in v),
    "default_test_size": _is_count,
    "options_count": lambda v: _is_count(v) and v >= 2,
    "page_size": _is_count,
    "log_level": lambda v: isinstance(v, str) and v.upper() in _LOG_LEVELS,
}


@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await _json_body(request)
    s = get_settings()
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    updates = {k: v for k, v in body.items() if k in known}
    for k, v in updates.items():
        if not _SETTING_CHECKS[k](v):
            raise HTTPException(400, f"Invalid value for {k}: {v!r}")
    for k, v in updates.items():
        setattr(s, k, v)
    save_settings(s)
    return s.to_dict()
